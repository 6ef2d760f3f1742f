"""Source and output tree models shared across scriptsite components."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from .errors import InvalidNodeShapeError, SandboxViolationError
from .files import DiskFile, LazyFile


def _frozen(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


def _detached(value: Any) -> Any:
    """Copy the containers in `value` so no caller shares them with a node."""
    if isinstance(value, Mapping):
        return {key: _detached(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_detached(item) for item in value]
    if isinstance(value, tuple):
        return tuple(_detached(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return type(value)(_detached(item) for item in value)
    return value


def _read_only(value: Any) -> Any:
    """Deep read-only view of `value`: mappings become proxies, lists tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: _read_only(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_read_only(item) for item in value)
    if isinstance(value, set):
        return frozenset(_read_only(item) for item in value)
    return value


@dataclass(frozen=True)
class SourceAsset:
    """Opaque file forwarded by reference."""

    path: Path


@dataclass(frozen=True)
class SourceScript:
    """A script chunk plus every colocated sibling of its directory."""

    path: Path
    code: str
    siblings: Mapping[str, "SourceNode"] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "siblings", _frozen(self.siblings))


@dataclass(frozen=True)
class SourceGroup:
    """Plain directory without an entry script."""

    path: Path
    children: Mapping[str, "SourceNode"] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "children", _frozen(self.children))


SourceNode = Union[SourceAsset, SourceScript, SourceGroup]


@dataclass(frozen=True)
class AssetNode:
    """Byte passthrough of a (possibly deferred) file."""

    file: LazyFile

    @property
    def path(self) -> Optional[Path]:
        return self.file.path if isinstance(self.file, DiskFile) else None


@dataclass(frozen=True)
class PageNode:
    """A page document plus nested pages and assets."""

    html: str
    meta: Any = None
    subs: Mapping[str, "OutputNode"] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "subs", _frozen(self.subs))


@dataclass(frozen=True)
class TableNode:
    """Structured data visible to sibling scripts; never written to disk."""

    meta: Any


@dataclass(frozen=True)
class GroupNode:
    """A plain output directory."""

    subs: Mapping[str, "OutputNode"] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "subs", _frozen(self.subs))


OutputNode = Union[AssetNode, PageNode, TableNode, GroupNode]

NODE_TYPES = ("page", "table", "asset", "dir")

# File a page's html is written to inside its directory.
PAGE_DOCUMENT = "index.html"


def node_to_value(node: OutputNode) -> Mapping[str, Any]:
    """Expose an output node to scripts as a read-only mapping."""
    if isinstance(node, AssetNode):
        path = node.path
        return MappingProxyType(
            {"type": "asset", "path": str(path) if path is not None else None, "file": node.file}
        )
    if isinstance(node, PageNode):
        return MappingProxyType(
            {
                "type": "page",
                "html": node.html,
                "meta": _read_only(node.meta),
                "subs": _children_to_value(node.subs),
            }
        )
    if isinstance(node, TableNode):
        return MappingProxyType({"type": "table", "meta": _read_only(node.meta)})
    if isinstance(node, GroupNode):
        return MappingProxyType({"type": "dir", "subs": _children_to_value(node.subs)})
    raise TypeError(f"Not an output node: {node!r}")


def _children_to_value(children: Mapping[str, OutputNode]) -> Mapping[str, Any]:
    return MappingProxyType({name: node_to_value(child) for name, child in children.items()})


def node_from_value(
    value: Any,
    script: str,
    *,
    base_dir: Optional[Path] = None,
    root: Optional[Path] = None,
) -> OutputNode:
    """Convert a script return value into an output node.

    `base_dir` anchors relative asset paths; when `root` is given, asset paths
    must stay inside it.
    """
    return _convert(value, script, "", base_dir, root)


def _convert(value: Any, script: str, where: str, base_dir: Optional[Path], root: Optional[Path]) -> OutputNode:
    if isinstance(value, (AssetNode, PageNode, TableNode, GroupNode)):
        return value

    label = where or "return value"
    if not isinstance(value, Mapping):
        raise InvalidNodeShapeError(
            script, f"{label} must be a mapping with a 'type' field, got {type(value).__name__}"
        )

    kind = value.get("type")
    if kind == "page":
        html = value.get("html")
        if not isinstance(html, str):
            raise InvalidNodeShapeError(script, f"{label}: page field 'html' must be a string")
        subs = _convert_subs(value.get("subs", {}), script, where, base_dir, root, required=False)
        if PAGE_DOCUMENT in subs:
            raise InvalidNodeShapeError(
                script, f"{label}: page subs may not contain {PAGE_DOCUMENT!r}, it holds the page itself"
            )
        return PageNode(html=html, meta=_detached(value.get("meta")), subs=subs)
    if kind == "table":
        if "meta" not in value:
            raise InvalidNodeShapeError(script, f"{label}: table is missing field 'meta'")
        return TableNode(meta=_detached(value["meta"]))
    if kind == "asset":
        return AssetNode(file=_asset_file(value, script, label, base_dir, root))
    if kind == "dir":
        if "subs" not in value:
            raise InvalidNodeShapeError(script, f"{label}: dir is missing field 'subs'")
        return GroupNode(subs=_convert_subs(value["subs"], script, where, base_dir, root, required=True))

    expected = ", ".join(repr(name) for name in NODE_TYPES)
    raise InvalidNodeShapeError(script, f"{label}: unknown node type {kind!r} (expected one of {expected})")


def _convert_subs(
    subs: Any,
    script: str,
    where: str,
    base_dir: Optional[Path],
    root: Optional[Path],
    *,
    required: bool,
) -> dict[str, OutputNode]:
    if subs is None and not required:
        return {}
    if not isinstance(subs, Mapping):
        raise InvalidNodeShapeError(script, f"{where or 'return value'}: field 'subs' must be a mapping")
    converted: dict[str, OutputNode] = {}
    for name, child in subs.items():
        if not isinstance(name, str) or not name or name in {".", ".."} or "/" in name or "\\" in name:
            raise InvalidNodeShapeError(script, f"{where or 'return value'}: invalid child name {name!r}")
        converted[name] = _convert(child, script, f"{where}subs[{name!r}]", base_dir, root)
    return converted


def _asset_file(
    value: Mapping[str, Any],
    script: str,
    label: str,
    base_dir: Optional[Path],
    root: Optional[Path],
) -> LazyFile:
    file = value.get("file")
    if isinstance(file, LazyFile):
        return file
    raw_path = value.get("path")
    if not isinstance(raw_path, (str, Path)) or not str(raw_path):
        raise InvalidNodeShapeError(script, f"{label}: asset needs a 'path' string or a 'file'")
    path = Path(raw_path)
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    if root is not None:
        resolved = path.resolve()
        if not resolved.is_relative_to(root.resolve()):
            raise SandboxViolationError(f"{script}: asset path {str(raw_path)!r} is outside the project")
    return DiskFile(path)


__all__ = [
    "AssetNode",
    "GroupNode",
    "NODE_TYPES",
    "PAGE_DOCUMENT",
    "OutputNode",
    "PageNode",
    "SourceAsset",
    "SourceGroup",
    "SourceNode",
    "SourceScript",
    "TableNode",
    "node_from_value",
    "node_to_value",
]
