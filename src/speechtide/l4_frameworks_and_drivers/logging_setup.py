"""File-based logging setup."""

from __future__ import annotations

import logging
from pathlib import Path


def setup_file_logging(logs_dir: Path, *, debug: bool = False) -> Path:
    """Attach a file handler for the ``tide`` logger tree under *logs_dir*."""
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / 'speechtide.log'
    handler = logging.FileHandler(log_path, encoding='utf-8')
    handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s'))
    root = logging.getLogger('tide')
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    root.addHandler(handler)
    logging.getLogger('tide.engine').info('Logging started → %s', log_path)
    return log_path
