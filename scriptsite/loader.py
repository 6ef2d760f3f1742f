"""Content directory scanning into an immutable source tree."""

from __future__ import annotations

import os
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, List, Sequence

from .errors import DuplicateNameError, FileIoError, NonUtf8NameError, ScriptLoadError
from .logging import get_logger
from .nodes import SourceAsset, SourceGroup, SourceNode, SourceScript

ENTRY_NAME = "index"
SCRIPT_SUFFIX = ".py"

_EXCLUDED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    ".idea",
}

_EXCLUDED_FILES = {
    ".DS_Store",
    "Thumbs.db",
}


@dataclass
class IgnoreRule:
    """Represents an ignore glob from site.yml."""

    pattern: str
    directory_only: bool
    anchored: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False
        if self.directory_only and not is_dir:
            return False

        if self.anchored or self.has_slash:
            if fnmatchcase(rel_path, self.pattern):
                return True
            return self.directory_only and rel_path.startswith(f"{self.pattern}/")

        return any(fnmatchcase(part, self.pattern) for part in rel_path.split("/"))


def build_ignore_rules(patterns: Sequence[str]) -> List[IgnoreRule]:
    rules: List[IgnoreRule] = []
    for raw in patterns:
        pattern = raw.strip()
        if not pattern or pattern.startswith("#"):
            continue
        directory_only = pattern.endswith("/")
        if directory_only:
            pattern = pattern[:-1]
        anchored = pattern.startswith("/")
        if anchored:
            pattern = pattern[1:]
        rules.append(
            IgnoreRule(
                pattern=pattern,
                directory_only=directory_only,
                anchored=anchored,
                has_slash="/" in pattern,
            )
        )
    return rules


class ContentLoader:
    """Walks a content directory and produces its source tree.

    Dispatch per directory entry:

    * ``<name>.py`` (other than ``index.py``) becomes a nested script keyed by ``<name>``;
    * any other file becomes an asset keyed by its file name;
    * a subdirectory holding ``index.py`` becomes a script whose siblings are its contents;
    * any other subdirectory becomes a group.
    """

    def __init__(self, ignore: Sequence[str] = ()) -> None:
        self.rules = build_ignore_rules(ignore)
        self.logger = get_logger("loader")
        self._entry_file = f"{ENTRY_NAME}{SCRIPT_SUFFIX}"

    def load(self, root: Path | str) -> SourceNode:
        """Return the source tree rooted at `root`."""
        root_path = Path(root).expanduser().resolve()
        if not root_path.is_dir():
            raise FileIoError(root_path, "content directory not found")
        node = self._load_directory(root_path, root_path)
        self.logger.debug("Loaded content tree from %s", root_path)
        return node

    def _load_directory(self, directory: Path, root: Path) -> SourceNode:
        children = self._load_children(directory, root)
        entry = directory / self._entry_file
        if entry.is_file():
            return SourceScript(path=entry, code=_read_code(entry), siblings=children)
        return SourceGroup(path=directory, children=children)

    def _load_children(self, directory: Path, root: Path) -> Dict[str, SourceNode]:
        try:
            with os.scandir(directory) as iterator:
                entries = sorted(iterator, key=lambda entry: entry.name)
        except OSError as exc:
            raise FileIoError(directory, f"failed to read directory: {exc.strerror or exc}") from exc

        children: Dict[str, SourceNode] = {}
        folded: Dict[str, str] = {}
        for entry in entries:
            _check_name(directory, entry.name)
            path = Path(entry.path)
            rel_path = path.relative_to(root).as_posix()
            try:
                is_dir = entry.is_dir()
                is_file = entry.is_file()
            except OSError as exc:
                raise FileIoError(path, f"failed to stat entry: {exc.strerror or exc}") from exc

            if is_dir:
                if entry.name in _EXCLUDED_DIRS or self._ignored(rel_path, True):
                    continue
                key = entry.name
                node = self._load_directory(path, root)
            elif is_file:
                if entry.name in _EXCLUDED_FILES or self._ignored(rel_path, False):
                    continue
                if entry.name == self._entry_file:
                    continue
                if entry.name.endswith(SCRIPT_SUFFIX) and len(entry.name) > len(SCRIPT_SUFFIX):
                    key = entry.name[: -len(SCRIPT_SUFFIX)]
                    node = SourceScript(path=path, code=_read_code(path))
                else:
                    key = entry.name
                    node = SourceAsset(path=path)
            else:
                self.logger.debug("Skipping special file %s", path)
                continue

            collision = folded.get(key.casefold())
            if collision is not None:
                raise DuplicateNameError(directory, entry.name, collision)
            folded[key.casefold()] = entry.name
            children[key] = node
        return children

    def _ignored(self, rel_path: str, is_dir: bool) -> bool:
        return any(rule.matches(rel_path, is_dir) for rule in self.rules)


def _check_name(directory: Path, name: str) -> None:
    try:
        name.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise NonUtf8NameError(os.fsencode(directory / name)) from exc


def _read_code(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ScriptLoadError(str(path), f"script is not valid UTF-8 ({exc.reason})") from exc
    except OSError as exc:
        raise FileIoError(path, f"failed to read script: {exc.strerror or exc}") from exc


def load_tree(root: Path | str, ignore: Sequence[str] = ()) -> SourceNode:
    """Convenience wrapper around `ContentLoader.load`."""
    return ContentLoader(ignore).load(root)


__all__ = ["ContentLoader", "ENTRY_NAME", "IgnoreRule", "SCRIPT_SUFFIX", "build_ignore_rules", "load_tree"]
