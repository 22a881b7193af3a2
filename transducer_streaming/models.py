"""
Model loading for the streaming decoder.

Resolves a local directory or a Hugging Face Hub repository holding exported
encoder/decoder/joiner TorchScript files plus `tokens.txt`.
"""

from __future__ import annotations

import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

os.environ.setdefault("HF_HUB_DISABLE_SYMLINKS_WARNING", "1")

from huggingface_hub import snapshot_download

from .asr.symbols import TokenSymbolTable
from .core.config import MODEL_CACHE_DIR
from .core.errors import ErrorCode, StreamingError

logger = logging.getLogger(__name__)

HF_SNAPSHOT_ROOT = MODEL_CACHE_DIR / "hf_snapshots"

_LOADED: Dict[str, Tuple[object, TokenSymbolTable]] = {}


@dataclass(frozen=True)
class ModelFiles:
    """Paths making up one exported transducer."""
    encoder: Path
    decoder: Path
    joiner: Path
    tokens: Path


def ensure_hf_snapshot(
    repo_id: str,
    *,
    revision: Optional[str] = None,
    offline: bool = False,
    cache_dir: Optional[Path] = None,
) -> Path:
    """Ensure the full HF repo snapshot is present in our project cache."""
    cache = cache_dir or HF_SNAPSHOT_ROOT
    cache.mkdir(parents=True, exist_ok=True)

    local_dir = snapshot_download(
        repo_id=repo_id,
        revision=revision,
        cache_dir=str(cache),
        local_files_only=offline,
    )
    return Path(local_dir)


def _pick(model_dir: Path, stem: str) -> Path:
    """Pick `<stem>*.pt` from `model_dir`, preferring the shortest (non-int8) name."""
    matches = sorted(model_dir.rglob(f"{stem}*.pt"), key=lambda p: (len(p.name), str(p)))
    if not matches:
        raise StreamingError(
            f"no {stem}*.pt under {model_dir}", code=ErrorCode.MODEL_FILES_MISSING
        )
    return matches[0]


def find_model_files(model_dir: Path) -> ModelFiles:
    """Locate encoder, decoder, joiner and tokens files inside a model directory."""
    model_dir = Path(model_dir)
    tokens = sorted(model_dir.rglob("tokens.txt"), key=lambda p: len(p.parts))
    if not tokens:
        raise StreamingError(
            f"no tokens.txt under {model_dir}", code=ErrorCode.MODEL_FILES_MISSING
        )
    return ModelFiles(
        encoder=_pick(model_dir, "encoder"),
        decoder=_pick(model_dir, "decoder"),
        joiner=_pick(model_dir, "joiner"),
        tokens=tokens[0],
    )


def resolve_model_dir(
    repo_or_dir: str,
    *,
    revision: Optional[str] = None,
    offline: bool = False,
    cache_dir: Optional[Path] = None,
) -> Path:
    """Existing local paths are used as-is; anything else is a Hub repo id."""
    path = Path(repo_or_dir).expanduser()
    if path.is_dir():
        return path
    return ensure_hf_snapshot(repo_or_dir, revision=revision, offline=offline, cache_dir=cache_dir)


def load_transducer(
    repo_or_dir: str,
    *,
    revision: Optional[str] = None,
    offline: bool = False,
    cache_dir: Optional[Path] = None,
    device: Optional[str] = None,
    **model_kwargs,
):
    """
    Load (TorchTransducer, TokenSymbolTable) from a directory or Hub repo.

    `model_kwargs` go to TorchTransducer (blank_id, context_size,
    segment_size, hop_size, subsampling_factor).
    """
    key = f"{repo_or_dir}@{revision or 'default'}@{device or 'auto'}"
    if key in _LOADED and not model_kwargs:
        return _LOADED[key]

    from .asr.torch_model import TorchTransducer

    model_dir = resolve_model_dir(
        repo_or_dir, revision=revision, offline=offline, cache_dir=cache_dir
    )
    files = find_model_files(model_dir)
    logger.info("Loading transducer from %s", model_dir)

    symbol_table = TokenSymbolTable.from_file(files.tokens)
    model = TorchTransducer.from_files(
        files.encoder,
        files.decoder,
        files.joiner,
        device=device,
        **model_kwargs,
    )
    if not model_kwargs:
        _LOADED[key] = (model, symbol_table)
    return model, symbol_table
