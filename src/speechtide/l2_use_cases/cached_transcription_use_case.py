"""Use case: lazily built transcription engine with idle-TTL unloading."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

from speechtide.l1_entities.errors import (
    InitializationError,
    ResolutionError,
    SecurityError,
    WorkerExitedError,
)
from speechtide.l1_entities.transcription import TranscriptionResult
from speechtide.l2_use_cases.ports.transcriber import Transcriber

log = logging.getLogger('tide.cache')

VALID_CACHE_TTL_MINUTES = (0, 5, 15, 30, 60)
DEFAULT_CACHE_TTL_MINUTES = 30

# Errors after which the engine instance is useless; the next call builds a new one.
_FATAL_ENGINE_ERRORS = (WorkerExitedError, ResolutionError, SecurityError, InitializationError)


def validate_cache_ttl(value: object) -> int:
    """Return *value* if it is an allowed TTL in minutes, else the default (with a warning)."""
    if isinstance(value, int) and not isinstance(value, bool) and value in VALID_CACHE_TTL_MINUTES:
        return value
    log.warning('invalid cache TTL %r, falling back to %d minutes', value, DEFAULT_CACHE_TTL_MINUTES)
    return DEFAULT_CACHE_TTL_MINUTES


class CachedTranscriptionUseCase:
    """Owns an optional engine: built on first use, destroyed after an idle TTL.

    ``ensure()`` cancels any pending unload before handing out the engine, and
    ``transcribe()`` re-arms the timer only after the call settles, so a slow
    transcription can never be unloaded mid-request. A TTL of 0 keeps the
    engine forever. Must be used from within a running event loop.
    """

    def __init__(
        self,
        factory: Callable[[], Transcriber],
        ttl_minutes: int = DEFAULT_CACHE_TTL_MINUTES,
    ) -> None:
        self._factory = factory
        self._ttl_minutes = validate_cache_ttl(ttl_minutes)
        self._engine: Transcriber | None = None
        self._unload_handle: asyncio.TimerHandle | None = None
        self._in_flight = 0

    @property
    def engine(self) -> Transcriber | None:
        return self._engine

    @property
    def ttl_minutes(self) -> int:
        return self._ttl_minutes

    @property
    def unload_scheduled(self) -> bool:
        return self._unload_handle is not None

    def ensure(self) -> Transcriber:
        """Return the live engine, constructing one if needed."""
        self.cancel_unload()
        if self._engine is None:
            log.info('creating transcription engine')
            self._engine = self._factory()
        return self._engine

    async def transcribe(self, audio_path: str | Path) -> TranscriptionResult:
        engine = self.ensure()
        self._in_flight += 1
        try:
            return await engine.transcribe(audio_path)
        except _FATAL_ENGINE_ERRORS as exc:
            log.warning('dropping transcription engine after failure: %s', exc)
            if self._engine is engine:
                self.unload()
            raise
        finally:
            self._in_flight -= 1
            if self._engine is not None and self._in_flight == 0:
                self.schedule_unload()

    def schedule_unload(self) -> None:
        self.cancel_unload()
        if self._ttl_minutes <= 0:
            log.debug('engine cache set to never unload')
            return
        log.info('engine will unload in %d minutes', self._ttl_minutes)
        self._unload_handle = asyncio.get_running_loop().call_later(self._ttl_minutes * 60, self.unload)

    def cancel_unload(self) -> None:
        if self._unload_handle is not None:
            self._unload_handle.cancel()
            self._unload_handle = None

    def set_ttl(self, minutes: int) -> None:
        """Change the TTL; a live engine gets its timer re-armed with the new value."""
        minutes = validate_cache_ttl(minutes)
        if minutes == self._ttl_minutes:
            return
        log.info('cache TTL changed: %d -> %d minutes', self._ttl_minutes, minutes)
        self._ttl_minutes = minutes
        if self._engine is not None and self._in_flight == 0:
            self.schedule_unload()

    def unload(self) -> None:
        """Destroy the engine (terminating its worker) and forget it."""
        self.cancel_unload()
        engine, self._engine = self._engine, None
        if engine is None:
            return
        log.info('unloading transcription engine')
        engine.destroy()

    async def aclose(self) -> None:
        """Cancel the timer, destroy the engine and wait for its worker to be reaped."""
        self.cancel_unload()
        engine, self._engine = self._engine, None
        if engine is not None:
            engine.destroy()
            await engine.wait_closed()
