"""Infrastructure defaults and raw-config normalization — lives in L4, not domain."""

from __future__ import annotations

import copy
from pathlib import Path

from speechtide.l1_entities.config import AppConfig
from speechtide.l2_use_cases.cached_transcription_use_case import DEFAULT_CACHE_TTL_MINUTES, validate_cache_ttl
from speechtide.l3_interface_adapters.gateways.paths import DEFAULT_MODEL_DIR, install_root
from speechtide.l3_interface_adapters.gateways.yaml_config_loader import deep_merge

APP_CONFIG_DEFAULTS: dict = {
    'engine': {
        'language': 'zh',
        'use_itn': True,
        'num_threads': 2,
        'provider': 'cpu',
    },
    'cache': {
        'ttl_minutes': DEFAULT_CACHE_TTL_MINUTES,
    },
}

# Older config files spell some engine keys differently.
ENGINE_KEY_ALIASES = {
    'model_path': 'model_dir',
    'model_filename': 'model_file',
    'tokens_path': 'tokens_file',
    'tokens': 'tokens_file',
    'use_inverse_text_normalization': 'use_itn',
}


def default_model_id(language: str) -> str:
    return 'SenseVoice-Small (中文)' if language == 'zh' else 'SenseVoice-Small'


def normalize_engine_raw(raw: dict, app_root: Path, default_model_dir: Path) -> dict:
    """Canonicalize engine keys and make every configured path absolute.

    Relative paths are taken relative to *app_root*. A ``model_dir`` that names
    an ``.onnx`` file is split into directory and ``model_file``.
    """
    engine = {key: value for key, value in raw.items() if key not in ENGINE_KEY_ALIASES}
    for alias, canonical in ENGINE_KEY_ALIASES.items():
        if alias in raw:
            engine.setdefault(canonical, raw[alias])

    model_dir = _absolute(engine.get('model_dir'), app_root) or default_model_dir
    model_file = engine.get('model_file')
    if not model_file and model_dir.suffix == '.onnx':
        model_file = model_dir.name
        model_dir = model_dir.parent
    engine['model_dir'] = str(model_dir)
    engine['model_file'] = model_file or None

    tokens_file = _absolute(engine.get('tokens_file'), app_root)
    engine['tokens_file'] = str(tokens_file) if tokens_file else None

    engine.setdefault('model_id', default_model_id(engine.get('language', '')))
    return engine


def build_app_config(
    raw: dict,
    *,
    app_root: Path | None = None,
    default_model_dir: Path | None = None,
) -> AppConfig:
    """Merge *raw* user overrides on top of defaults, normalize, then validate."""
    merged = copy.deepcopy(APP_CONFIG_DEFAULTS)
    deep_merge(merged, _sections(raw))
    merged['engine'] = normalize_engine_raw(
        merged['engine'],
        app_root=app_root or install_root(),
        default_model_dir=default_model_dir or DEFAULT_MODEL_DIR,
    )
    merged['cache']['ttl_minutes'] = validate_cache_ttl(merged['cache'].get('ttl_minutes'))
    return AppConfig.model_validate(merged)


def _absolute(value: str | None, app_root: Path) -> Path | None:
    if not value:
        return None
    path = Path(value).expanduser()
    return path if path.is_absolute() else app_root / path


def _sections(raw: dict) -> dict:
    # An empty YAML section (``cache:``) parses as None and means "use the defaults".
    sections = {}
    for name, value in raw.items():
        if name in APP_CONFIG_DEFAULTS:
            if value is None:
                continue
            if not isinstance(value, dict):
                raise ValueError(f'Config section {name!r} must be a mapping, got {type(value).__name__}')
        sections[name] = value
    return sections
