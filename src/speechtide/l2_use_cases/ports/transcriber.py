"""Port: speech-to-text transcription engine."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from speechtide.l1_entities.transcription import TranscriptionResult


class Transcriber(Protocol):
    """Abstract transcription engine. Zero framework types leak through."""

    async def transcribe(self, audio_path: str | Path) -> TranscriptionResult:
        """Transcribe the audio file at *audio_path*."""
        ...

    def destroy(self) -> None:
        """Release the engine; fails in-flight calls. Safe to call repeatedly."""
        ...

    async def wait_closed(self) -> None:
        """Wait until resources released by ``destroy()`` are fully reclaimed."""
        ...
