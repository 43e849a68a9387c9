"""Stand-in worker: the real protocol loop around a scripted recognizer.

Behavior is picked with FAKE_WORKER_MODE:
  ok            transcribe and answer normally
  chatty        write a non-protocol line to stdout before serving
  init-error    recognizer construction raises
  crash         the process dies while transcribing
  crash-on-init the process dies while loading the model
  hang-on-init  model loading never finishes
  slow          every transcription sleeps FAKE_WORKER_DELAY seconds
"""

from __future__ import annotations

import os
import sys
import time

import numpy as np

from speechtide.l1_entities.transcription import RecognitionResult
from speechtide.l1_entities.worker_protocol import InitPayload
from speechtide.l4_frameworks_and_drivers.sense_voice_worker import main

MODE = os.environ.get('FAKE_WORKER_MODE', 'ok')


class ScriptedRecognizer:
    def __init__(self, payload: InitPayload) -> None:
        if MODE == 'init-error':
            raise RuntimeError('failed to load model')
        if MODE == 'crash-on-init':
            os._exit(3)
        if MODE == 'hang-on-init':
            time.sleep(3600)
        self._payload = payload

    def recognize(self, samples: np.ndarray, sample_rate: int) -> RecognitionResult:
        if MODE == 'crash':
            os._exit(7)
        if MODE == 'slow':
            time.sleep(float(os.environ.get('FAKE_WORKER_DELAY', '0.5')))
        os.write(1, b'native runtime chatter on fd 1\n')
        if float(np.max(np.abs(samples), initial=0.0)) < 1e-3:
            return RecognitionResult(text='')
        return RecognitionResult(text=f'{len(samples)} samples at {sample_rate} Hz', language='en')


if __name__ == '__main__':
    if MODE == 'chatty':
        sys.stdout.write('loading native libraries...\n')
        sys.stdout.flush()
    main(factory=ScriptedRecognizer)
