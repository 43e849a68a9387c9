"""Configuration Pydantic models — schema and engine defaults; paths are filled in by infra_config."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class EngineConfig(BaseModel):
    """Immutable per-construction settings for one SenseVoice engine."""

    model_config = ConfigDict(frozen=True)

    model_dir: str | None = None
    model_file: str | None = None
    tokens_file: str | None = None
    language: str = 'zh'
    use_itn: bool = True
    model_id: str = 'SenseVoice-Small'
    num_threads: int = 2
    provider: str = 'cpu'


class CacheConfig(BaseModel):
    ttl_minutes: int  # 0 = never unload the engine


class AppConfig(BaseModel):
    engine: EngineConfig
    cache: CacheConfig
