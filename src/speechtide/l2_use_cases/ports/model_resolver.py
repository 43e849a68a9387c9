"""Port: SenseVoice model resolution."""

from __future__ import annotations

from typing import Protocol

from speechtide.l1_entities.transcription import ResolvedModel


class ModelResolver(Protocol):
    """Abstract model resolver — maps engine configuration to model and tokens files."""

    def resolve(self) -> ResolvedModel:
        """Resolve tokens, then a metadata-complete model path. Raises on failure."""
        ...
