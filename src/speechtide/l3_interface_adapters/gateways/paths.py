"""Shared path constants for configuration, models and caches."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_config_path, user_data_path

APP_NAME = 'SpeechTide'
APP_ROOT_ENV = 'SPEECHTIDE_APP_ROOT'

SUPPORT_DIR = user_data_path(APP_NAME)
CONFIG_DIR = user_config_path('speechtide')
LOGS_DIR = SUPPORT_DIR / 'logs'
MODELS_DIR = SUPPORT_DIR / 'models'
DEFAULT_MODEL_DIR = MODELS_DIR / 'sensevoice-small'

DEFAULT_CONFIG_PATHS = [
    CONFIG_DIR / 'config.yaml',
    CONFIG_DIR / 'config.yml',
]


def install_root() -> Path:
    """Installation root: ``$SPEECHTIDE_APP_ROOT`` if set, else the package directory."""
    override = os.environ.get(APP_ROOT_ENV)
    if override:
        return Path(override)
    return Path(__file__).resolve().parents[2]


@dataclass(frozen=True)
class EnginePaths:
    """Filesystem roots the engine may read from and the caches it writes to."""

    support_dir: Path
    install_root: Path

    @property
    def patched_models_dir(self) -> Path:
        return self.support_dir / 'models' / 'patched'

    @property
    def tokens_cache_dir(self) -> Path:
        return self.support_dir / 'cache'

    @property
    def allowed_roots(self) -> tuple[Path, Path]:
        return (self.support_dir, self.install_root)

    @classmethod
    def default(cls) -> EnginePaths:
        return cls(support_dir=SUPPORT_DIR, install_root=install_root())
