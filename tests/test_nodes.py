"""Tests for the script value <-> output node conversion."""

from __future__ import annotations

from pathlib import Path

import pytest

from scriptsite.errors import InvalidNodeShapeError, SandboxViolationError
from scriptsite.files import DiskFile, TextFile
from scriptsite.nodes import (
    AssetNode,
    GroupNode,
    PageNode,
    TableNode,
    node_from_value,
    node_to_value,
)


def test_page_requires_html_only() -> None:
    node = node_from_value({"type": "page", "html": "<p>x</p>"}, "index.py")

    assert node == PageNode(html="<p>x</p>")
    assert node.meta is None
    assert dict(node.subs) == {}


def test_nested_values_convert_recursively(tmp_path: Path) -> None:
    value = {
        "type": "page",
        "html": "root",
        "meta": {"title": "Home"},
        "subs": {
            "about": {"type": "page", "html": "about"},
            "data": {"type": "table", "meta": [1, 2]},
            "files": {"type": "dir", "subs": {"a.txt": {"type": "asset", "file": TextFile("a")}}},
        },
    }

    node = node_from_value(value, "index.py")

    assert isinstance(node, PageNode)
    assert node.meta == {"title": "Home"}
    assert isinstance(node.subs["about"], PageNode)
    assert node.subs["data"] == TableNode(meta=[1, 2])
    files = node.subs["files"]
    assert isinstance(files, GroupNode)
    assert isinstance(files.subs["a.txt"], AssetNode)


def test_asset_paths_resolve_against_base_dir(tmp_path: Path) -> None:
    (tmp_path / "img.png").write_bytes(b"png")

    node = node_from_value({"type": "asset", "path": "img.png"}, "index.py", base_dir=tmp_path, root=tmp_path)

    assert isinstance(node, AssetNode)
    assert isinstance(node.file, DiskFile)
    assert node.path == tmp_path / "img.png"


def test_asset_paths_may_not_escape_the_project(tmp_path: Path) -> None:
    project = tmp_path / "project"
    project.mkdir()

    with pytest.raises(SandboxViolationError):
        node_from_value({"type": "asset", "path": "../secret"}, "index.py", base_dir=project, root=project)


@pytest.mark.parametrize(
    "value, fragment",
    [
        ("just text", "must be a mapping"),
        ({"html": "no type"}, "unknown node type"),
        ({"type": "meta", "meta": 1}, "unknown node type"),
        ({"type": "page"}, "'html'"),
        ({"type": "table"}, "'meta'"),
        ({"type": "dir"}, "'subs'"),
        ({"type": "asset"}, "'path'"),
        ({"type": "dir", "subs": {"../x": {"type": "table", "meta": 1}}}, "invalid child name"),
    ],
)
def test_invalid_shapes_name_the_script(value, fragment: str) -> None:
    with pytest.raises(InvalidNodeShapeError) as excinfo:
        node_from_value(value, "content/index.py")

    message = str(excinfo.value)
    assert message.startswith("content/index.py: invalid node shape")
    assert fragment in message


def test_node_to_value_is_read_only() -> None:
    node = PageNode(html="x", meta={"a": 1}, subs={"t": TableNode(meta=5)})

    value = node_to_value(node)

    assert value["type"] == "page"
    assert value["subs"]["t"] == {"type": "table", "meta": 5}
    with pytest.raises(TypeError):
        value["html"] = "y"  # type: ignore[index]


def test_node_to_value_round_trips_through_node_from_value() -> None:
    file = TextFile("x")
    node = GroupNode(subs={"a": AssetNode(file)})

    converted = node_from_value(node_to_value(node), "index.py")

    assert isinstance(converted, GroupNode)
    assert converted.subs["a"].file is file


def test_page_subs_may_not_shadow_the_page_document() -> None:
    value = {
        "type": "page",
        "html": "<h1>body</h1>",
        "subs": {"index.html": {"type": "asset", "file": TextFile("other")}},
    }

    with pytest.raises(InvalidNodeShapeError, match="index.html"):
        node_from_value(value, "content/index.py")


def test_exposed_meta_is_a_read_only_copy() -> None:
    source = {"x": "original", "tags": ["a"]}
    node = node_from_value({"type": "table", "meta": source}, "content/data.py")
    source["x"] = "changed after return"

    exposed = node_to_value(node)
    with pytest.raises(TypeError):
        exposed["meta"]["x"] = "mutated"

    assert node.meta == {"x": "original", "tags": ["a"]}
    assert exposed["meta"]["tags"] == ("a",)
