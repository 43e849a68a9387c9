"""Gateway: SenseVoice transcriber in a worker process — implements Transcriber port."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path

from speechtide.l1_entities.config import EngineConfig
from speechtide.l1_entities.errors import TranscriberError
from speechtide.l1_entities.transcription import ResolvedModel, TranscriptionResult
from speechtide.l1_entities.worker_protocol import InitPayload
from speechtide.l2_use_cases.ports.model_resolver import ModelResolver
from speechtide.l3_interface_adapters.gateways.worker_channel import WorkerChannel

log = logging.getLogger('tide.engine')


class SenseVoiceTranscriber:
    """Transcriber that keeps the sherpa-onnx runtime in a child process.

    Construction returns immediately: it must happen inside a running event
    loop, and it schedules spawn → model resolution → worker init as a
    background task. Every ``transcribe()`` waits for that bootstrap first, so
    callers never race initialization. A bootstrap failure (missing files,
    a path outside the allowed roots, init error) is stored and re-raised by
    every call; fix the configuration and build a new instance to recover.
    Likewise a worker crash is final for this instance.
    """

    def __init__(
        self,
        config: EngineConfig,
        resolver: ModelResolver,
        command: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._config = config
        self._resolver = resolver
        self._channel = WorkerChannel(command, env=env)
        self._resolved: ResolvedModel | None = None
        self._bootstrap_task = asyncio.get_running_loop().create_task(self._bootstrap())

    @property
    def resolved_model(self) -> ResolvedModel | None:
        return self._resolved

    @property
    def channel(self) -> WorkerChannel:
        return self._channel

    async def wait_ready(self) -> None:
        """Wait until the worker has loaded the model. Raises the bootstrap error, if any."""
        await self._channel.wait_ready()

    async def transcribe(self, audio_path: str | Path) -> TranscriptionResult:
        await self._channel.wait_ready()
        log.debug('transcribing %s', audio_path)
        reply = await self._channel.transcribe(str(audio_path))
        return TranscriptionResult(
            text=reply.text,
            duration_ms=reply.duration_ms,
            model_id=self._config.model_id,
            language=reply.language or self._config.language or None,
        )

    def destroy(self) -> None:
        """Terminate the worker and fail in-flight calls. Safe before init completes."""
        self._channel.destroy()

    async def wait_closed(self) -> None:
        await self._bootstrap_task
        await self._channel.wait_closed()

    async def _bootstrap(self) -> None:
        try:
            await self._channel.start()
            resolved = self._resolver.resolve()
            self._resolved = resolved
            log.info('initializing SenseVoice (language=%s, itn=%s)', self._config.language, self._config.use_itn)
            await self._channel.initialize(
                InitPayload(
                    model_path=str(resolved.model_path),
                    tokens_path=str(resolved.tokens_path),
                    language=self._config.language,
                    use_itn=self._config.use_itn,
                    num_threads=self._config.num_threads,
                    provider=self._config.provider,
                )
            )
        except TranscriberError as exc:
            if not self._channel.exited:
                log.error('SenseVoice bootstrap failed: %s', exc)
            self._channel.close(exc)
        except Exception as exc:  # noqa: BLE001 -- any bootstrap failure must reach the ready gate
            log.exception('SenseVoice bootstrap crashed')
            self._channel.close(TranscriberError(f'SenseVoice bootstrap failed: {exc}'))
