"""CLI entry point for speechtide."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click

from speechtide import __version__


@click.command()
@click.argument(
    'audio_files',
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False),
)
@click.option(
    '-c',
    '--config',
    'config_path',
    default=None,
    type=click.Path(exists=True),
    help='Path to YAML config file.',
)
@click.option('--model-dir', default=None, type=click.Path(), help='Directory holding model.onnx and tokens.')
@click.option('--language', default=None, help="Recognition language (zh, en, yue, ja, ko or 'auto').")
@click.option('--no-itn', is_flag=True, default=False, help='Disable inverse text normalization.')
@click.option('--debug', is_flag=True, default=False, help='Write debug-level logs.')
@click.version_option(version=__version__)
def cli(audio_files, config_path, model_dir, language, no_itn, debug):
    """speechtide -- offline SenseVoice transcription of WAV recordings."""
    from pydantic import ValidationError  # noqa: PLC0415 -- deferred: not loaded on --help

    from speechtide.l3_interface_adapters.gateways.paths import LOGS_DIR  # noqa: PLC0415 -- deferred: not needed for --help
    from speechtide.l3_interface_adapters.gateways.yaml_config_loader import (  # noqa: PLC0415 -- deferred: yaml stack not loaded on --help
        YamlConfigLoader,
    )
    from speechtide.l4_frameworks_and_drivers.infra_config import (  # noqa: PLC0415 -- deferred: not needed for --help
        build_app_config,
    )
    from speechtide.l4_frameworks_and_drivers.logging_setup import (  # noqa: PLC0415 -- deferred: not needed for --help
        setup_file_logging,
    )

    engine_overrides: dict = {}
    if model_dir:
        engine_overrides['model_dir'] = str(Path(model_dir).resolve())
    if language:
        engine_overrides['language'] = language
    if no_itn:
        engine_overrides['use_itn'] = False

    try:
        raw = YamlConfigLoader().load_raw(
            config_path,
            overrides={'engine': engine_overrides} if engine_overrides else None,
        )
        config = build_app_config(raw)
    except FileNotFoundError as e:
        click.echo(f'Error: {e}', err=True)
        sys.exit(1)
    except ValidationError as e:
        click.echo(f'Error: invalid configuration:\n{e}', err=True)
        sys.exit(1)
    except ValueError as e:
        click.echo(f'Error: {e}', err=True)
        sys.exit(1)

    setup_file_logging(LOGS_DIR, debug=debug)

    ok = asyncio.run(_transcribe_all(config, [Path(p) for p in audio_files]))
    if not ok:
        sys.exit(1)


async def _transcribe_all(config, audio_paths: list[Path]) -> bool:
    """Transcribe each file in turn through one cached engine. Stops at the first failure."""
    from speechtide.l1_entities.errors import TranscriberError  # noqa: PLC0415 -- deferred: not needed for --help
    from speechtide.l4_frameworks_and_drivers.container import (  # noqa: PLC0415 -- deferred: not needed for --help
        DependencyContainer,
    )

    container = DependencyContainer(config)
    try:
        for path in audio_paths:
            try:
                result = await container.transcription.transcribe(path)
            except TranscriberError as e:
                click.echo(f'Error: {path}: {e}', err=True)
                return False
            if len(audio_paths) > 1:
                click.echo(f'{path.name}: {result.text}')
            else:
                click.echo(result.text)
    finally:
        await container.transcription.aclose()
    return True
