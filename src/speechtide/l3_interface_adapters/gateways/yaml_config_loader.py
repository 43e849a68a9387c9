"""Gateway: YAML configuration loader — raw user settings; defaults are applied in infra_config."""

from __future__ import annotations

from pathlib import Path

import yaml

from speechtide.l3_interface_adapters.gateways.paths import DEFAULT_CONFIG_PATHS


class YamlConfigLoader:
    """Reads the user's YAML settings file, first match in DEFAULT_CONFIG_PATHS unless one is given."""

    def load_raw(
        self,
        config_path: str | None = None,
        overrides: dict | None = None,
    ) -> dict:
        """Return the merged YAML data as a raw dict (before defaults and validation)."""
        return _load_data(config_path, overrides)


def _load_data(
    config_path: str | None = None,
    overrides: dict | None = None,
) -> dict:
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f'Config file not found: {path}')
        data = _read_mapping(path)
    else:
        found = next((p for p in DEFAULT_CONFIG_PATHS if p.exists()), None)
        data = _read_mapping(found) if found is not None else {}
    if overrides:
        deep_merge(data, overrides)
    return data


def _read_mapping(path: Path) -> dict:
    data = yaml.safe_load(path.read_text(encoding='utf-8')) or {}
    if not isinstance(data, dict):
        raise ValueError(f'Config file {path} must contain a mapping, got {type(data).__name__}')
    return data


def deep_merge(base: dict, override: dict) -> dict:
    """Merge *override* into *base* in place; nested mappings merge, anything else replaces."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base
