"""Dependency container — composition root for wiring all layers together."""

from __future__ import annotations

import sys
from collections.abc import Mapping, Sequence

from speechtide.l1_entities.config import AppConfig, EngineConfig
from speechtide.l2_use_cases.cached_transcription_use_case import CachedTranscriptionUseCase
from speechtide.l2_use_cases.ports.transcriber import Transcriber
from speechtide.l3_interface_adapters.gateways.local_model_resolver import LocalModelResolver
from speechtide.l3_interface_adapters.gateways.paths import EnginePaths
from speechtide.l3_interface_adapters.gateways.sense_voice_transcriber import SenseVoiceTranscriber

WORKER_MODULE = 'speechtide.l4_frameworks_and_drivers.sense_voice_worker'


def worker_command() -> list[str]:
    """Command line that starts a SenseVoice worker with the current interpreter."""
    return [sys.executable, '-m', WORKER_MODULE]


def create_engine(
    config: EngineConfig,
    paths: EnginePaths | None = None,
    *,
    command: Sequence[str] | None = None,
    env: Mapping[str, str] | None = None,
) -> Transcriber:
    """Build a SenseVoice engine. Returns at once; the worker initializes in the background."""
    paths = paths or EnginePaths.default()
    resolver = LocalModelResolver(config, paths)
    return SenseVoiceTranscriber(config, resolver, command or worker_command(), env=env)


class DependencyContainer:
    """Creates and wires all concrete instances. Easy to override for testing."""

    def __init__(
        self,
        config: AppConfig,
        paths: EnginePaths | None = None,
        *,
        worker_env: Mapping[str, str] | None = None,
    ) -> None:
        self.config = config
        self.paths = paths or EnginePaths.default()
        self._worker_env = worker_env
        self.transcription = CachedTranscriptionUseCase(
            factory=self.create_engine,
            ttl_minutes=config.cache.ttl_minutes,
        )

    def create_engine(self) -> Transcriber:
        return create_engine(self.config.engine, self.paths, env=self._worker_env)
