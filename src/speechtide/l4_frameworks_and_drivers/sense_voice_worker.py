"""SenseVoice worker process — hosts the recognizer behind the JSON-lines protocol.

Started by WorkerChannel as ``python -m speechtide.l4_frameworks_and_drivers.sense_voice_worker``.
Reads host records from stdin, one at a time, and writes replies to the
original stdout. fd 1 itself is pointed at stderr so native runtime prints
cannot corrupt the protocol stream.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable, Iterable
from typing import BinaryIO

import numpy as np

from speechtide.l1_entities.audio_constants import QUIET_AMPLITUDE, SAMPLE_RATE
from speechtide.l1_entities.errors import FormatError, ProtocolError
from speechtide.l1_entities.worker_protocol import (
    InitErrorMessage,
    InitMessage,
    InitPayload,
    ReadyMessage,
    TranscribeErrorMessage,
    TranscribeMessage,
    TranscribeSuccessMessage,
    decode_host_message,
    encode_message,
)
from speechtide.l2_use_cases.ports.recognizer import Recognizer
from speechtide.l3_interface_adapters.gateways.wav_decoder import read_wav, resample_linear

log = logging.getLogger('tide.worker')

RecognizerFactory = Callable[[InitPayload], Recognizer]


def _load_sherpa(payload: InitPayload) -> Recognizer:
    from speechtide.l3_interface_adapters.gateways.sherpa_recognizer import (  # noqa: PLC0415 -- deferred: runtime loads in the worker only
        SherpaSenseVoiceRecognizer,
    )

    return SherpaSenseVoiceRecognizer(payload)


class WorkerSession:
    """Dispatches host records for one worker lifetime."""

    def __init__(self, factory: RecognizerFactory, out: BinaryIO) -> None:
        self._factory = factory
        self._out = out
        self._recognizer: Recognizer | None = None
        self._language: str | None = None

    def handle_line(self, line: bytes | str) -> None:
        if not line.strip():
            return
        try:
            message = decode_host_message(line)
        except ProtocolError as exc:
            log.error('%s', exc)
            return
        if isinstance(message, InitMessage):
            self._handle_init(message.payload)
        elif isinstance(message, TranscribeMessage):
            self._handle_transcribe(message)

    def _handle_init(self, payload: InitPayload) -> None:
        try:
            self._recognizer = self._factory(payload)
        except Exception as exc:  # noqa: BLE001 -- reported to the host as init-error
            log.error('recognizer init failed: %s', exc)
            self._send(InitErrorMessage(error=str(exc) or type(exc).__name__))
            return
        self._language = payload.language
        log.info('recognizer ready (language=%s)', payload.language)
        self._send(ReadyMessage())

    def _handle_transcribe(self, message: TranscribeMessage) -> None:
        if self._recognizer is None:
            self._send(TranscribeErrorMessage(id=message.id, error='Recognizer not initialized'))
            return
        try:
            audio = read_wav(message.audio_path)
            if len(audio.samples) == 0:
                raise FormatError('Audio data is empty')
            _warn_if_quiet(audio.samples)
            samples = resample_linear(audio.samples, audio.sample_rate, SAMPLE_RATE)
            result = self._recognizer.recognize(samples, SAMPLE_RATE)
        except Exception as exc:  # noqa: BLE001 -- reported per request; the worker keeps serving
            log.error('transcribe %s failed: %s', message.id, exc)
            self._send(TranscribeErrorMessage(id=message.id, error=str(exc) or type(exc).__name__))
            return

        log.info('transcribe %s: %d ms audio → %d chars', message.id, audio.duration_ms, len(result.text))
        self._send(
            TranscribeSuccessMessage(
                id=message.id,
                text=result.text,
                duration_ms=audio.duration_ms,
                language=result.language or self._language,
            )
        )

    def _send(self, message: ReadyMessage | InitErrorMessage | TranscribeSuccessMessage | TranscribeErrorMessage) -> None:
        self._out.write(encode_message(message))
        self._out.flush()


def _warn_if_quiet(samples: np.ndarray) -> None:
    mean_amplitude = float(np.mean(np.abs(samples)))
    log.debug('mean amplitude %.6f', mean_amplitude)
    if mean_amplitude < QUIET_AMPLITUDE:
        log.warning('audio is very quiet (mean amplitude %.6f); transcript may be empty', mean_amplitude)


def serve(lines: Iterable[bytes], out: BinaryIO, factory: RecognizerFactory = _load_sherpa) -> None:
    """Handle host records until stdin closes or the host stops reading."""
    session = WorkerSession(factory, out)
    try:
        for line in lines:
            session.handle_line(line)
    except BrokenPipeError:
        log.info('host closed the channel')


def _claim_protocol_stream() -> BinaryIO:
    """Keep a private copy of fd 1 for replies and send fd 1 itself to stderr."""
    sys.stdout.flush()
    protocol_fd = os.dup(1)
    os.dup2(2, 1)
    return os.fdopen(protocol_fd, 'wb')


def main(factory: RecognizerFactory = _load_sherpa) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s [worker %(process)d] %(message)s'))
    root = logging.getLogger('tide')
    root.setLevel(os.environ.get('SPEECHTIDE_WORKER_LOG_LEVEL', 'INFO').upper())
    root.addHandler(handler)

    out = _claim_protocol_stream()
    serve(sys.stdin.buffer, out, factory)
    log.debug('stdin closed, worker exiting')


if __name__ == '__main__':
    main()
