"""Gateway: local SenseVoice model resolver — implements ModelResolver port."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from speechtide.l1_entities.config import EngineConfig
from speechtide.l1_entities.errors import ResolutionError, SecurityError
from speechtide.l1_entities.transcription import ResolvedModel, TokensInfo
from speechtide.l3_interface_adapters.gateways.onnx_metadata_patcher import OnnxMetadataPatcher
from speechtide.l3_interface_adapters.gateways.paths import EnginePaths

log = logging.getLogger('tide.resolver')

MODEL_FILENAMES = ('model.onnx', 'model.int8.onnx')
TOKENS_TXT = 'tokens.txt'
TOKENS_JSON = 'tokens.json'


def _normalize(path: Path) -> Path:
    # Pure string normalization: the boundary check must not touch the filesystem.
    return Path(os.path.normpath(os.path.abspath(path)))


class LocalModelResolver:
    """Finds the model and tokens files for an EngineConfig on local disk.

    Every configured path must live under one of ``paths.allowed_roots``;
    config files are user-editable, so anything else is refused before it is
    opened. The chosen model always goes through the metadata patcher.
    """

    def __init__(
        self,
        config: EngineConfig,
        paths: EnginePaths,
        patcher: OnnxMetadataPatcher | None = None,
    ) -> None:
        self._config = config
        self._allowed_roots = tuple(_normalize(root) for root in paths.allowed_roots)
        self._tokens_cache_dir = paths.tokens_cache_dir
        self._patcher = patcher or OnnxMetadataPatcher(paths.patched_models_dir)
        self._cached_tokens: TokensInfo | None = None

    def resolve(self) -> ResolvedModel:
        tokens = self.resolve_tokens()
        model_path = self.resolve_model_path(tokens.count)
        return ResolvedModel(model_path=model_path, tokens_path=tokens.path, token_count=tokens.count)

    def resolve_tokens(self) -> TokensInfo:
        """Locate the tokens file; a ``tokens.json`` is converted to line format first."""
        if self._cached_tokens is not None and self._cached_tokens.path.exists():
            return self._cached_tokens

        candidates = self._tokens_candidates()
        text_path = next((c for c in candidates if c.suffix != '.json' and c.is_file()), None)
        if text_path is not None:
            info = TokensInfo(path=text_path, count=_count_tokens(text_path))
        else:
            json_path = next((c for c in candidates if c.suffix == '.json' and c.is_file()), None)
            if json_path is None:
                raise ResolutionError(
                    'SenseVoice tokens file not found; expected tokens.txt or tokens.json in '
                    f'{self._config.model_dir or "<no model_dir configured>"}'
                )
            info = self._convert_json_tokens(json_path)

        log.info('tokens: %s (%d entries)', info.path, info.count)
        self._cached_tokens = info
        return info

    def resolve_model_path(self, vocab_size: int) -> Path:
        """Locate the model file and return the path of a metadata-complete copy."""
        candidates = self._model_candidates()
        existing = next((c for c in candidates if c.is_file()), None)
        if existing is None:
            tried = ', '.join(str(c) for c in candidates) or '<none>'
            raise ResolutionError(f'SenseVoice model file not found; check model_dir/model_file (tried: {tried})')
        log.info('model: %s (vocab_size=%d)', existing, vocab_size)
        return self._patcher.ensure_metadata(existing, vocab_size)

    def _tokens_candidates(self) -> list[Path]:
        cfg = self._config
        candidates: list[Path] = []
        model_dir = self._model_dir()
        if cfg.tokens_file:
            hint = Path(cfg.tokens_file)
            if hint.is_absolute():
                candidates.append(self._guard(hint))
            elif model_dir is not None:
                candidates.append(self._guard(model_dir / hint))
        if model_dir is not None:
            candidates.append(model_dir / TOKENS_TXT)
            candidates.append(model_dir / TOKENS_JSON)
        return candidates

    def _model_candidates(self) -> list[Path]:
        cfg = self._config
        candidates: list[Path] = []
        model_dir = self._model_dir()
        if cfg.model_file and Path(cfg.model_file).is_absolute():
            candidates.append(self._guard(Path(cfg.model_file)))
        if model_dir is not None:
            if cfg.model_file and not Path(cfg.model_file).is_absolute():
                candidates.append(self._guard(model_dir / cfg.model_file))
            candidates.extend(model_dir / name for name in MODEL_FILENAMES)
        return candidates

    def _model_dir(self) -> Path | None:
        if not self._config.model_dir:
            return None
        return self._guard(Path(self._config.model_dir))

    def _guard(self, path: Path) -> Path:
        normalized = _normalize(path)
        if not any(normalized.is_relative_to(root) for root in self._allowed_roots):
            roots = ', '.join(str(r) for r in self._allowed_roots)
            raise SecurityError(f'Refusing to access {normalized}: outside allowed directories ({roots})')
        return normalized

    def _convert_json_tokens(self, json_path: Path) -> TokensInfo:
        try:
            tokens = json.loads(json_path.read_text(encoding='utf-8'))
        except json.JSONDecodeError as exc:
            raise ResolutionError(f'tokens.json parse failed: invalid JSON ({exc})') from exc
        except OSError as exc:
            raise ResolutionError(f'Cannot read {json_path}: {exc}') from exc
        if not isinstance(tokens, list) or not all(isinstance(t, str) for t in tokens):
            raise ResolutionError(f'{json_path} must contain a JSON array of token strings')

        target = self._tokens_cache_dir / f'sensevoice-{json_path.stem}.txt'
        lines = ''.join(f'{token} {index}\n' for index, token in enumerate(tokens))
        try:
            self._tokens_cache_dir.mkdir(parents=True, exist_ok=True)
            tmp = target.with_name(f'{target.name}.{os.getpid()}.tmp')
            tmp.write_text(lines, encoding='utf-8')
            os.replace(tmp, target)
        except OSError as exc:
            raise ResolutionError(f'Cannot write converted tokens to {target}: {exc}') from exc
        log.debug('converted %s → %s', json_path, target)
        return TokensInfo(path=target, count=len(tokens))


def _count_tokens(path: Path) -> int:
    try:
        content = path.read_bytes().decode('utf-8')
    except (OSError, UnicodeDecodeError) as exc:
        raise ResolutionError(f'Cannot read tokens file {path}: {exc}') from exc
    # Only \n separates entries; tokens may contain \r, \x85 or \u2028. Read bytes so
    # universal newlines do not split on them.
    return sum(1 for line in content.split('\n') if line.rstrip('\r'))
