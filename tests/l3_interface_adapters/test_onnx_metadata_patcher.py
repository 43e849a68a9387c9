"""Tests for the ONNX metadata patcher gateway."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from speechtide.l3_interface_adapters.gateways.onnx_metadata_patcher import (
    PATCHED_PREFIX,
    OnnxMetadataPatcher,
    required_metadata,
)
from tests.conftest import model_metadata, write_onnx_model


@pytest.fixture
def patched_dir(tmp_path: Path) -> Path:
    return tmp_path / 'support' / 'models' / 'patched'


class TestRequiredMetadata:
    def test_values(self):
        meta = required_metadata(25055)
        assert meta == {
            'vocab_size': '25055',
            'feat_dim': '80',
            'lfr_window_size': '7',
            'lfr_window_shift': '6',
            'sampling_rate': '16000',
            'low_freq': '20',
            'high_freq': '-400',
            'dither': '1.0',
            'normalize_samples': '1',
            'snip_edges': '0',
        }


class TestEnsureMetadata:
    def test_patches_bare_model(self, tmp_path: Path, patched_dir: Path):
        source = write_onnx_model(tmp_path / 'model.onnx')
        result = OnnxMetadataPatcher(patched_dir).ensure_metadata(source, 200)

        assert result == patched_dir / f'{PATCHED_PREFIX}model.onnx'
        assert model_metadata(result) == required_metadata(200)
        assert model_metadata(source) == {}

    def test_complete_model_used_as_is(self, tmp_path: Path, patched_dir: Path):
        source = write_onnx_model(tmp_path / 'model.onnx', required_metadata(200))
        result = OnnxMetadataPatcher(patched_dir).ensure_metadata(source, 200)
        assert result == source
        assert not patched_dir.exists()

    def test_existing_values_preserved(self, tmp_path: Path, patched_dir: Path):
        source = write_onnx_model(tmp_path / 'model.onnx', {'vocab_size': '25055', 'comment': 'keep me'})
        result = OnnxMetadataPatcher(patched_dir).ensure_metadata(source, 200)

        meta = model_metadata(result)
        assert meta['vocab_size'] == '25055'
        assert meta['comment'] == 'keep me'
        assert meta['feat_dim'] == '80'

    def test_patching_is_deterministic(self, tmp_path: Path, patched_dir: Path):
        source = write_onnx_model(tmp_path / 'model.onnx')
        patcher = OnnxMetadataPatcher(patched_dir)
        first = patcher.ensure_metadata(source, 200).read_bytes()
        second = patcher.ensure_metadata(source, 200).read_bytes()
        assert first == second

    def test_no_temp_files_left(self, tmp_path: Path, patched_dir: Path):
        source = write_onnx_model(tmp_path / 'model.int8.onnx')
        OnnxMetadataPatcher(patched_dir).ensure_metadata(source, 200)
        assert [p.name for p in patched_dir.iterdir()] == [f'{PATCHED_PREFIX}model.int8.onnx']


class TestFallback:
    @pytest.mark.parametrize('content', [b'not an onnx model', b''])
    def test_undecodable_model_falls_back(self, tmp_path: Path, patched_dir: Path, caplog, content):
        source = tmp_path / 'model.onnx'
        source.write_bytes(content)
        with caplog.at_level(logging.WARNING, logger='tide.resolver'):
            result = OnnxMetadataPatcher(patched_dir).ensure_metadata(source, 200)
        assert result == source
        assert 'metadata patch failed' in caplog.text

    def test_unwritable_target_falls_back(self, tmp_path: Path):
        blocker = tmp_path / 'patched'
        blocker.write_text('a file, not a directory', encoding='utf-8')
        source = write_onnx_model(tmp_path / 'model.onnx')
        result = OnnxMetadataPatcher(blocker).ensure_metadata(source, 200)
        assert result == source
