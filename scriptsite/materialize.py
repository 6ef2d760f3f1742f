"""Writes an output tree to disk."""

from __future__ import annotations

import shutil
from pathlib import Path

from .errors import FileIoError
from .logging import get_logger
from .nodes import PAGE_DOCUMENT, AssetNode, GroupNode, OutputNode, PageNode, TableNode

logger = get_logger("materialize")


def materialize(node: OutputNode, destination: Path) -> None:
    """Write `node` at `destination`.

    Page and group destinations are replaced wholesale, so running the same
    tree twice leaves identical output and no stale files.
    """
    destination = Path(destination)
    if isinstance(node, AssetNode):
        if destination.is_dir() and not destination.is_symlink():
            _remove_directory(destination)
        node.file.write_to(destination)
        logger.debug("Wrote asset %s", destination)
    elif isinstance(node, PageNode):
        _reset_directory(destination)
        _write_text(destination / PAGE_DOCUMENT, node.html)
        logger.debug("Wrote page %s", destination / PAGE_DOCUMENT)
        for name, child in node.subs.items():
            materialize(child, destination / name)
    elif isinstance(node, GroupNode):
        _reset_directory(destination)
        for name, child in node.subs.items():
            materialize(child, destination / name)
    elif isinstance(node, TableNode):
        return
    else:
        raise TypeError(f"Not an output node: {node!r}")


def _reset_directory(path: Path) -> None:
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()
        path.mkdir(parents=True)
    except OSError as exc:
        raise FileIoError(path, f"failed to prepare output directory: {exc.strerror or exc}") from exc


def _remove_directory(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except OSError as exc:
        raise FileIoError(path, f"failed to remove stale output: {exc.strerror or exc}") from exc


def _write_text(path: Path, text: str) -> None:
    try:
        path.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise FileIoError(path, f"failed to write page: {exc.strerror or exc}") from exc


__all__ = ["materialize"]
