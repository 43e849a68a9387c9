"""Port: in-process speech recognizer hosted by the worker."""

from __future__ import annotations

from typing import Protocol

import numpy as np

from speechtide.l1_entities.transcription import RecognitionResult


class Recognizer(Protocol):
    """A loaded acoustic model. Lives only inside the worker process."""

    def recognize(self, samples: np.ndarray, sample_rate: int) -> RecognitionResult:
        """Decode mono float32 *samples* recorded at *sample_rate*."""
        ...
