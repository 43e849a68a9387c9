"""Tests for domain error hierarchy."""

from __future__ import annotations

from speechtide.l1_entities.errors import (
    EngineDestroyedError,
    FormatError,
    SecurityError,
    TranscriberError,
    WorkerExitedError,
)


class TestErrors:
    def test_all_derive_from_base(self):
        for cls in (FormatError, SecurityError, WorkerExitedError, EngineDestroyedError):
            assert issubclass(cls, TranscriberError)

    def test_destroyed_is_an_exit(self):
        err = EngineDestroyedError('Transcriber destroyed')
        assert isinstance(err, WorkerExitedError)
        assert err.exit_code is None

    def test_exit_code_kept(self):
        err = WorkerExitedError('gone', exit_code=-9)
        assert err.exit_code == -9
        assert str(err) == 'gone'
