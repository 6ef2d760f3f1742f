"""Static asset collaborator: the ``static/`` tree as output nodes."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Sequence

from .errors import FileIoError
from .files import DiskFile
from .loader import build_ignore_rules
from .logging import get_logger
from .nodes import AssetNode, GroupNode, node_to_value

logger = get_logger("static")


def load_static(directory: Path, ignore: Sequence[str] = ()) -> GroupNode:
    """Return every file under `directory` as asset nodes, keyed by name.

    A missing directory yields an empty group.
    """
    root = Path(directory)
    if not root.is_dir():
        return GroupNode()
    rules = build_ignore_rules(ignore)
    return _load_group(root, root, rules)


def static_value(node: GroupNode) -> Mapping[str, Any]:
    """Read-only view of the static tree, as handed to scripts."""
    return node_to_value(node)["subs"]


def _load_group(directory: Path, root: Path, rules) -> GroupNode:
    try:
        entries = sorted(directory.iterdir(), key=lambda entry: entry.name)
    except OSError as exc:
        raise FileIoError(directory, f"failed to read directory: {exc.strerror or exc}") from exc

    subs = {}
    for entry in entries:
        rel_path = entry.relative_to(root).as_posix()
        is_dir = entry.is_dir()
        if any(rule.matches(rel_path, is_dir) for rule in rules):
            continue
        if is_dir:
            subs[entry.name] = _load_group(entry, root, rules)
        elif entry.is_file():
            subs[entry.name] = AssetNode(DiskFile(entry))
    logger.debug("Loaded %d static entries from %s", len(subs), directory)
    return GroupNode(subs=subs)


__all__ = ["load_static", "static_value"]
