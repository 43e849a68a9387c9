"""Tests for configuration models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from speechtide.l1_entities.config import AppConfig, CacheConfig, EngineConfig


class TestEngineConfig:
    def test_minimal(self):
        cfg = EngineConfig(language='zh', use_itn=True, model_id='SenseVoice-Small')
        assert cfg.model_dir is None
        assert cfg.num_threads == 2
        assert cfg.provider == 'cpu'

    def test_is_frozen(self):
        cfg = EngineConfig(language='zh', use_itn=True, model_id='m')
        with pytest.raises(ValidationError):
            cfg.language = 'en'

    def test_defaults(self):
        cfg = EngineConfig()
        assert cfg.language == 'zh'
        assert cfg.use_itn is True
        assert cfg.model_id == 'SenseVoice-Small'

    def test_wrong_type_rejected(self):
        with pytest.raises(ValidationError):
            EngineConfig(num_threads='many')


class TestAppConfig:
    def test_nested(self):
        cfg = AppConfig(
            engine=EngineConfig(language='en', use_itn=False, model_id='m'),
            cache=CacheConfig(ttl_minutes=0),
        )
        assert cfg.engine.language == 'en'
        assert cfg.cache.ttl_minutes == 0

    def test_default_config_fixture(self, default_config: AppConfig):
        assert default_config.engine.language == 'zh'
        assert default_config.cache.ttl_minutes == 30
