"""Shared test fixtures, protocol-conforming fakes and audio/model builders."""

from __future__ import annotations

import asyncio
import os
import struct
import sys
from pathlib import Path

import numpy as np
import onnx
import pytest
from onnx import TensorProto, helper

from speechtide.l1_entities.config import AppConfig, EngineConfig
from speechtide.l1_entities.transcription import TranscriptionResult
from speechtide.l3_interface_adapters.gateways.paths import EnginePaths
from speechtide.l4_frameworks_and_drivers.infra_config import build_app_config

ROOT = Path(__file__).resolve().parent.parent
SCRIPTED_WORKER = ROOT / 'tests' / 'fakes' / 'scripted_worker.py'

# --- Protocol-conforming Fakes ---


class FakeTranscriber:
    """Fake engine for L2 use case tests."""

    def __init__(
        self,
        text: str = 'fake transcript',
        *,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ):
        self.text = text
        self.error = error
        self.gate = gate
        self.transcribe_calls: list[Path] = []
        self.destroyed = False
        self.closed = False

    async def transcribe(self, audio_path: str | Path) -> TranscriptionResult:
        self.transcribe_calls.append(Path(audio_path))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return TranscriptionResult(text=self.text, duration_ms=1000, model_id='fake-model', language='zh')

    def destroy(self) -> None:
        self.destroyed = True

    async def wait_closed(self) -> None:
        self.closed = True


class FakeEngineFactory:
    """Hands out FakeTranscriber instances and remembers them."""

    def __init__(self, **engine_kwargs):
        self._engine_kwargs = engine_kwargs
        self.engines: list[FakeTranscriber] = []

    def __call__(self) -> FakeTranscriber:
        engine = FakeTranscriber(**self._engine_kwargs)
        self.engines.append(engine)
        return engine


# --- Builders ---


def build_wav(
    pcm: bytes,
    *,
    sample_rate: int = 16000,
    channels: int = 1,
    bits: int = 16,
    audio_format: int = 1,
    data_size: int | None = None,
    leading_chunks: bytes = b'',
) -> bytes:
    """Assemble a RIFF/WAVE byte string around raw *pcm* bytes."""
    block_align = channels * bits // 8
    fmt = struct.pack('<HHIIHH', audio_format, channels, sample_rate, sample_rate * block_align, block_align, bits)
    body = (
        b'WAVE'
        + leading_chunks
        + b'fmt '
        + struct.pack('<I', len(fmt))
        + fmt
        + b'data'
        + struct.pack('<I', len(pcm) if data_size is None else data_size)
        + pcm
    )
    return b'RIFF' + struct.pack('<I', len(body)) + body


def write_wav(path: Path, samples: np.ndarray, sample_rate: int = 16000, channels: int = 1) -> Path:
    """Write float samples in [-1, 1] as a 16-bit PCM WAV file."""
    pcm = (np.clip(samples, -1.0, 1.0) * 32767).astype('<i2').tobytes()
    path.write_bytes(build_wav(pcm, sample_rate=sample_rate, channels=channels))
    return path


def write_onnx_model(path: Path, metadata: dict[str, str] | None = None) -> Path:
    """Write a tiny Identity model, optionally carrying *metadata* props."""
    node = helper.make_node('Identity', ['x'], ['y'])
    graph = helper.make_graph(
        [node],
        'tiny',
        [helper.make_tensor_value_info('x', TensorProto.FLOAT, [1])],
        [helper.make_tensor_value_info('y', TensorProto.FLOAT, [1])],
    )
    model = helper.make_model(graph)
    if metadata:
        helper.set_model_props(model, metadata)
    path.parent.mkdir(parents=True, exist_ok=True)
    onnx.save_model(model, str(path))
    return path


def model_metadata(path: Path) -> dict[str, str]:
    return {prop.key: prop.value for prop in onnx.load_model(str(path)).metadata_props}


def scripted_worker_env(mode: str = 'ok', **extra: str) -> dict[str, str]:
    """Environment for the scripted worker; *mode* selects its behavior."""
    env = dict(os.environ)
    env['FAKE_WORKER_MODE'] = mode
    env['PYTHONPATH'] = os.pathsep.join(p for p in (str(ROOT / 'src'), env.get('PYTHONPATH')) if p)
    env['SPEECHTIDE_WORKER_LOG_LEVEL'] = 'DEBUG'
    env.update(extra)
    return env


# --- Standard Fixtures ---


@pytest.fixture
def default_config() -> AppConfig:
    return build_app_config({})


@pytest.fixture
def engine_paths(tmp_path: Path) -> EnginePaths:
    paths = EnginePaths(support_dir=tmp_path / 'support', install_root=tmp_path / 'app')
    paths.support_dir.mkdir(parents=True)
    paths.install_root.mkdir(parents=True)
    return paths


@pytest.fixture
def model_dir(engine_paths: EnginePaths) -> Path:
    d = engine_paths.install_root / 'models' / 'sensevoice-small'
    d.mkdir(parents=True)
    return d


@pytest.fixture
def engine_config(model_dir: Path) -> EngineConfig:
    return EngineConfig(
        model_dir=str(model_dir),
        language='zh',
        use_itn=True,
        model_id='SenseVoice-Small (中文)',
    )


@pytest.fixture
def installed_model(model_dir: Path) -> Path:
    """model.onnx without front-end metadata plus a 200-entry tokens.txt."""
    write_onnx_model(model_dir / 'model.onnx')
    (model_dir / 'tokens.txt').write_text(''.join(f'tok{i} {i}\n' for i in range(200)), encoding='utf-8')
    return model_dir


@pytest.fixture
def worker_command() -> list[str]:
    return [sys.executable, str(SCRIPTED_WORKER)]


@pytest.fixture
def silent_wav(tmp_path: Path) -> Path:
    return write_wav(tmp_path / 'silence.wav', np.zeros(16000, dtype=np.float32))


@pytest.fixture
def tone_wav(tmp_path: Path) -> Path:
    t = np.arange(16000) / 16000
    return write_wav(tmp_path / 'tone.wav', (0.5 * np.sin(2 * np.pi * 440 * t)).astype(np.float32))


@pytest.fixture
def fake_factory() -> FakeEngineFactory:
    return FakeEngineFactory()


@pytest.fixture
def sample_config_yaml(tmp_path: Path) -> Path:
    content = """\
engine:
  model_dir: "models/custom"
  language: "en"
  use_itn: false
  num_threads: 4
cache:
  ttl_minutes: 15
"""
    p = tmp_path / 'config.yaml'
    p.write_text(content, encoding='utf-8')
    return p
