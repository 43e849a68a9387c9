"""Transcription result and resolved-model entities."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, Field


class TranscriptionResult(BaseModel):
    """Text produced for one audio file."""

    text: str
    duration_ms: int = Field(description='Audio duration in milliseconds')
    model_id: str
    language: str | None = None


@dataclass(frozen=True)
class TokensInfo:
    """A tokens file on disk and how many tokens it holds."""

    path: Path
    count: int


@dataclass(frozen=True)
class ResolvedModel:
    """Everything the worker needs to build a recognizer.

    ``model_path`` may point at a patched copy rather than the configured file.
    """

    model_path: Path
    tokens_path: Path
    token_count: int


@dataclass(frozen=True)
class RecognitionResult:
    """Raw recognizer output for one waveform, before duration/model bookkeeping."""

    text: str
    language: str | None = None
