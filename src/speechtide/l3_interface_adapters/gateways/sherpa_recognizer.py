"""Gateway: sherpa-onnx SenseVoice recognizer — implements Recognizer port.

Imported only inside the worker process; the parent never loads the runtime.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import sherpa_onnx

from speechtide.l1_entities.audio_constants import FEATURE_DIM, SAMPLE_RATE
from speechtide.l1_entities.transcription import RecognitionResult
from speechtide.l1_entities.worker_protocol import InitPayload

log = logging.getLogger('tide.worker')

# SenseVoice language ids; anything else means auto-detect.
SUPPORTED_LANGUAGES = ('zh', 'en', 'yue', 'ja', 'ko')


def _strip_lang_tag(lang: str) -> str | None:
    """``'<|zh|>'`` → ``'zh'``; empty → None."""
    tag = lang.strip().removeprefix('<|').removesuffix('|>')
    return tag or None


class SherpaSenseVoiceRecognizer:
    """sherpa-onnx OfflineRecognizer adapter for SenseVoice models."""

    def __init__(self, payload: InitPayload) -> None:
        if not Path(payload.model_path).exists():
            raise FileNotFoundError(f'Model file not found: {payload.model_path}')
        if not Path(payload.tokens_path).exists():
            raise FileNotFoundError(f'Tokens file not found: {payload.tokens_path}')

        language = payload.language if payload.language in SUPPORTED_LANGUAGES else ''
        log.info(
            'creating recognizer: model=%s tokens=%s language=%s itn=%s threads=%d',
            Path(payload.model_path).name,
            Path(payload.tokens_path).name,
            language or 'auto',
            payload.use_itn,
            payload.num_threads,
        )
        self._recognizer = sherpa_onnx.OfflineRecognizer.from_sense_voice(
            model=payload.model_path,
            tokens=payload.tokens_path,
            num_threads=payload.num_threads,
            sample_rate=SAMPLE_RATE,
            feature_dim=FEATURE_DIM,
            provider=payload.provider,
            language=language,
            use_itn=payload.use_itn,
            debug=False,
        )

    def recognize(self, samples: np.ndarray, sample_rate: int) -> RecognitionResult:
        stream = self._recognizer.create_stream()
        stream.accept_waveform(sample_rate, samples)
        self._recognizer.decode_stream(stream)
        result = stream.result
        text = result.text.strip()
        if not text:
            log.warning('recognizer returned no text (quiet audio or language mismatch)')
        return RecognitionResult(text=text, language=_strip_lang_tag(getattr(result, 'lang', '') or ''))
