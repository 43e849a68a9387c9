"""Gateway: ONNX metadata patcher — injects the front-end parameters sherpa-onnx expects."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import onnx
from google.protobuf.message import DecodeError

from speechtide.l1_entities.audio_constants import (
    DITHER,
    FEATURE_DIM,
    HIGH_FREQ,
    LFR_WINDOW_SHIFT,
    LFR_WINDOW_SIZE,
    LOW_FREQ,
    NORMALIZE_SAMPLES,
    SAMPLE_RATE,
    SNIP_EDGES,
)
from speechtide.l1_entities.errors import PatchError

log = logging.getLogger('tide.resolver')

PATCHED_PREFIX = 'sensevoice-'


def required_metadata(vocab_size: int) -> dict[str, str]:
    """Metadata keys the recognizer needs, with the values to use when a key is missing."""
    return {
        'vocab_size': str(vocab_size),
        'feat_dim': str(FEATURE_DIM),
        'lfr_window_size': str(LFR_WINDOW_SIZE),
        'lfr_window_shift': str(LFR_WINDOW_SHIFT),
        'sampling_rate': str(SAMPLE_RATE),
        'low_freq': str(LOW_FREQ),
        'high_freq': str(HIGH_FREQ),
        'dither': str(DITHER),
        'normalize_samples': str(int(NORMALIZE_SAMPLES)),
        'snip_edges': str(int(SNIP_EDGES)),
    }


class OnnxMetadataPatcher:
    """Writes a patched copy of a model whose metadata_props lack required keys.

    Patched copies live in *patched_dir* as ``sensevoice-<original name>``.
    Re-patching the same input produces the same bytes, so concurrent writers
    only duplicate work.
    """

    def __init__(self, patched_dir: Path) -> None:
        self._patched_dir = patched_dir

    def ensure_metadata(self, model_path: Path, vocab_size: int) -> Path:
        """Return a path whose model carries complete metadata.

        Falls back to *model_path* (with a warning) when the descriptor cannot be
        decoded or the patched copy cannot be written.
        """
        try:
            return self._patch(model_path, vocab_size)
        except PatchError as exc:
            log.warning('SenseVoice metadata patch failed, using original model: %s', exc)
            return model_path

    def _patch(self, model_path: Path, vocab_size: int) -> Path:
        try:
            model = onnx.load_model_from_string(model_path.read_bytes())
        except (DecodeError, OSError, ValueError) as exc:
            raise PatchError(f'Cannot decode model descriptor {model_path}: {exc}') from exc
        if model.ir_version == 0:  # empty or foreign bytes can parse as a blank message
            raise PatchError(f'Not an ONNX model descriptor: {model_path}')

        present = {prop.key for prop in model.metadata_props}
        missing = {key: value for key, value in required_metadata(vocab_size).items() if key not in present}
        if not missing:
            log.debug('model metadata complete: %s', model_path)
            return model_path

        for key, value in missing.items():
            entry = model.metadata_props.add()
            entry.key = key
            entry.value = value

        target = self._patched_dir / f'{PATCHED_PREFIX}{model_path.name}'
        try:
            self._patched_dir.mkdir(parents=True, exist_ok=True)
            tmp = target.with_name(f'{target.name}.{os.getpid()}.tmp')
            tmp.write_bytes(model.SerializeToString(deterministic=True))
            os.replace(tmp, target)
        except (OSError, ValueError) as exc:
            raise PatchError(f'Cannot write patched model {target}: {exc}') from exc

        log.info('patched model metadata (%s) → %s', ', '.join(missing), target)
        return target
