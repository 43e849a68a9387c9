"""Gateway: RIFF/WAVE decoder — PCM container parsing without external codecs."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from speechtide.l1_entities.errors import FormatError

log = logging.getLogger('tide.audio')

_HEADER_SIZE = 44
_FIRST_CHUNK_OFFSET = 12
_FMT_BODY_SIZE = 16
_WAVE_FORMAT_PCM = 1
_SUPPORTED_BITS = (8, 16, 24, 32)
_UNKNOWN_DATA_SIZE = 0xFFFFFFFF  # streaming writers that never patched the header
_MAX_SILENT_TAIL_FRAMES = 1 << 20  # padding allowed for a data chunk cut short


@dataclass(frozen=True)
class AudioSampleBuffer:
    """Mono float32 samples in [-1, 1] tagged with their sample rate."""

    sample_rate: int
    samples: np.ndarray

    @property
    def duration_ms(self) -> int:
        return round(len(self.samples) / self.sample_rate * 1000)


@dataclass(frozen=True)
class _FmtChunk:
    audio_format: int
    channels: int
    sample_rate: int
    bits_per_sample: int


class _ByteCursor:
    """Little-endian reader over an immutable buffer; every read is bounds-checked."""

    def __init__(self, data: bytes, offset: int = 0) -> None:
        self._data = data
        self.offset = offset

    def can_read(self, size: int) -> bool:
        return self.offset + size <= len(self._data)

    def seek(self, offset: int) -> None:
        self.offset = offset

    def tag(self) -> bytes:
        return self._take(4)

    def u16(self) -> int:
        return struct.unpack('<H', self._take(2))[0]

    def u32(self) -> int:
        return struct.unpack('<I', self._take(4))[0]

    def _take(self, size: int) -> bytes:
        if not self.can_read(size):
            raise FormatError(f'Invalid WAV file: unexpected end of data at offset {self.offset}')
        chunk = self._data[self.offset : self.offset + size]
        self.offset += size
        return chunk


def read_wav(path: Path | str) -> AudioSampleBuffer:
    """Read and decode the WAV file at *path*."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f'Audio file not found: {path}')
    return decode_wav(path.read_bytes())


def decode_wav(data: bytes) -> AudioSampleBuffer:
    """Decode a RIFF/WAVE PCM byte string into a mono AudioSampleBuffer.

    Multi-channel frames are averaged into one channel. Frames declared by the
    data chunk but missing from a truncated buffer decode as silence, up to a
    bounded tail. A data size of 0xFFFFFFFF, or 0 with no chunk after it, means
    the samples run to end of file.

    Raises:
        FormatError: the container is malformed or not linear PCM.
    """
    if len(data) < _HEADER_SIZE:
        raise FormatError(f'Invalid WAV file: file too small ({len(data)} < {_HEADER_SIZE} bytes)')

    cursor = _ByteCursor(data)
    riff_tag = cursor.tag()
    cursor.u32()  # RIFF size; unreliable in the wild
    wave_tag = cursor.tag()
    if riff_tag != b'RIFF':
        raise FormatError(f'Invalid WAV file: expected RIFF header, got {riff_tag!r}')
    if wave_tag != b'WAVE':
        raise FormatError(f'Invalid WAV file: expected WAVE format, got {wave_tag!r}')

    fmt: _FmtChunk | None = None
    data_offset: int | None = None
    data_size = 0

    cursor.seek(_FIRST_CHUNK_OFFSET)
    while cursor.can_read(8):
        chunk_id = cursor.tag()
        chunk_size = cursor.u32()
        body_offset = cursor.offset

        if chunk_id == b'fmt ' and fmt is None:
            fmt = _read_fmt(cursor, chunk_size)
        elif chunk_id == b'data' and data_offset is None:
            data_offset = body_offset
            data_size = chunk_size

        if fmt is not None and data_offset is not None:
            break
        cursor.seek(body_offset + chunk_size + (chunk_size % 2))

    if fmt is None:
        raise FormatError('Invalid WAV file: fmt chunk not found')
    _validate_fmt(fmt)
    if data_offset is None:
        raise FormatError('Invalid WAV file: data chunk not found')

    if data_size == _UNKNOWN_DATA_SIZE or (data_size == 0 and not _chunk_follows(data, data_offset)):
        data_size = max(len(data) - data_offset, 0)

    samples = _pcm_to_mono(data, data_offset, data_size, fmt)
    log.debug(
        'decoded wav: %d Hz, %d ch, %d bit, %d frames',
        fmt.sample_rate,
        fmt.channels,
        fmt.bits_per_sample,
        len(samples),
    )
    return AudioSampleBuffer(sample_rate=fmt.sample_rate, samples=samples)


def resample_linear(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Linear-interpolation resample of mono *samples* from *source_rate* to *target_rate*."""
    if source_rate == target_rate or len(samples) == 0:
        return samples
    ratio = source_rate / target_rate
    out_len = int(len(samples) / ratio)
    positions = np.arange(out_len) * ratio
    return np.interp(positions, np.arange(len(samples)), samples).astype(np.float32)


def _read_fmt(cursor: _ByteCursor, chunk_size: int) -> _FmtChunk:
    if chunk_size < _FMT_BODY_SIZE or not cursor.can_read(_FMT_BODY_SIZE):
        raise FormatError('Invalid WAV file: fmt chunk is truncated')
    audio_format = cursor.u16()
    channels = cursor.u16()
    sample_rate = cursor.u32()
    cursor.u32()  # byte rate
    cursor.u16()  # block align
    bits_per_sample = cursor.u16()
    return _FmtChunk(audio_format, channels, sample_rate, bits_per_sample)


def _validate_fmt(fmt: _FmtChunk) -> None:
    if fmt.audio_format != _WAVE_FORMAT_PCM:
        raise FormatError(f'Unsupported audio format: {fmt.audio_format}. Only PCM (format=1) is supported')
    if fmt.bits_per_sample not in _SUPPORTED_BITS:
        raise FormatError(f'Unsupported bits per sample: {fmt.bits_per_sample}. Supported: 8, 16, 24, 32')
    if fmt.channels == 0:
        raise FormatError('Invalid WAV file: channel count is 0')
    if fmt.sample_rate == 0:
        raise FormatError('Invalid WAV file: sample rate is 0')


def _chunk_follows(data: bytes, offset: int) -> bool:
    """True when a well-formed chunk header starts at *offset* (a zero-size data chunk is then genuine)."""
    cursor = _ByteCursor(data, offset)
    if not cursor.can_read(8):
        return False
    chunk_id = cursor.tag()
    chunk_size = cursor.u32()
    return all(0x20 <= b < 0x7F for b in chunk_id) and cursor.can_read(chunk_size)


def _pcm_to_mono(data: bytes, offset: int, size: int, fmt: _FmtChunk) -> np.ndarray:
    frame_width = fmt.bits_per_sample // 8 * fmt.channels
    declared_frames = size // frame_width
    present_frames = min(max(len(data) - offset, 0) // frame_width, declared_frames)

    # The header is untrusted: pad a short chunk with a bounded amount of silence only.
    frame_count = min(declared_frames, present_frames + _MAX_SILENT_TAIL_FRAMES)
    if frame_count < declared_frames:
        log.warning(
            'data chunk declares %d frames but only %d are present; padding %d',
            declared_frames,
            present_frames,
            frame_count - present_frames,
        )

    raw = data[offset : offset + present_frames * frame_width]
    mono = np.zeros(frame_count, dtype=np.float32)  # unread tail stays silent
    frames = _pcm_to_float(raw, fmt.bits_per_sample).reshape(present_frames, fmt.channels)
    mono[:present_frames] = frames.mean(axis=1)
    return mono


def _pcm_to_float(raw: bytes, bits: int) -> np.ndarray:
    if bits == 8:
        return (np.frombuffer(raw, dtype=np.uint8).astype(np.float64) - 128.0) / 128.0
    if bits == 16:
        return np.frombuffer(raw, dtype='<i2').astype(np.float64) / 32768.0
    if bits == 24:
        triplets = np.frombuffer(raw, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
        value = triplets[:, 0] | (triplets[:, 1] << 8) | (triplets[:, 2] << 16)
        value = np.where(value & 0x800000, value - 0x1000000, value)  # sign-extend bit 23
        return value.astype(np.float64) / 8388608.0
    return np.frombuffer(raw, dtype='<i4').astype(np.float64) / 2147483648.0
