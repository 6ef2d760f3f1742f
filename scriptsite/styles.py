"""Stylesheet collaborator: minified CSS exposed to scripts as ``styles``."""

from __future__ import annotations

from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping

import csscompressor

from .errors import FileIoError
from .files import LazyFile, TextFile
from .logging import get_logger

STYLE_SUFFIX = ".css"

logger = get_logger("styles")


def load_styles(directory: Path) -> Mapping[str, LazyFile]:
    """Return ``{stem: minified stylesheet}`` for every ``*.css`` in `directory`.

    A missing directory yields no styles.
    """
    directory = Path(directory)
    if not directory.is_dir():
        return MappingProxyType({})

    styles: Dict[str, LazyFile] = {}
    for path in sorted(directory.glob(f"*{STYLE_SUFFIX}")):
        if not path.is_file():
            continue
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise FileIoError(path, f"failed to read stylesheet: {exc}") from exc
        styles[path.stem] = TextFile(csscompressor.compress(source))
        logger.debug("Loaded stylesheet %s", path.name)
    return MappingProxyType(styles)


__all__ = ["STYLE_SUFFIX", "load_styles"]
