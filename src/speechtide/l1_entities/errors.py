"""Domain error types."""

from __future__ import annotations


class TranscriberError(Exception):
    """Base class for every failure surfaced by the transcription engine."""


class FormatError(TranscriberError):
    """Raised when an audio container is malformed or uses an unsupported encoding."""


class ResolutionError(TranscriberError):
    """Raised when the model or tokens file cannot be found or read."""


class SecurityError(TranscriberError):
    """Raised when a configured path escapes the allowed root directories."""


class PatchError(TranscriberError):
    """Raised when a model descriptor cannot be decoded or re-encoded."""


class InitializationError(TranscriberError):
    """Raised when the worker reports that the recognizer failed to initialize."""


class WorkerExitedError(TranscriberError):
    """Raised for every pending and future call once the worker process is gone."""

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class EngineDestroyedError(WorkerExitedError):
    """Raised for calls that were in flight (or issued) after ``destroy()``."""


class ProtocolError(TranscriberError):
    """Raised when a line on the worker channel is not a valid message."""


class TranscriptionError(TranscriberError):
    """Raised when the worker reports a per-request transcription failure."""
