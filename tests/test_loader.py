"""Tests for scriptsite.loader."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

from scriptsite.errors import DuplicateNameError, FileIoError, NonUtf8NameError, ScriptLoadError
from scriptsite.loader import ContentLoader, build_ignore_rules, load_tree
from scriptsite.nodes import SourceAsset, SourceGroup, SourceScript


def _write(path: Path, content: str | bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")


def test_load_dispatches_entries_by_kind(tmp_path: Path) -> None:
    root = tmp_path / "content"
    _write(root / "index.py", "site.page('home')\n")
    _write(root / "about.py", "site.page('about')\n")
    _write(root / "logo.png", b"\x89PNG")
    _write(root / "blog" / "index.py", "site.page('blog')\n")
    _write(root / "blog" / "first.md", "# First\n")
    _write(root / "files" / "notes.txt", "notes\n")

    tree = load_tree(root)

    assert isinstance(tree, SourceScript)
    assert tree.code == "site.page('home')\n"
    assert set(tree.siblings) == {"about", "logo.png", "blog", "files"}
    assert isinstance(tree.siblings["about"], SourceScript)
    assert tree.siblings["about"].siblings == {}
    assert isinstance(tree.siblings["logo.png"], SourceAsset)

    blog = tree.siblings["blog"]
    assert isinstance(blog, SourceScript)
    assert blog.path == (root / "blog" / "index.py").resolve()
    assert set(blog.siblings) == {"first.md"}

    files = tree.siblings["files"]
    assert isinstance(files, SourceGroup)
    assert isinstance(files.children["notes.txt"], SourceAsset)


def test_load_skips_builtin_exclusions_and_ignore_globs(tmp_path: Path) -> None:
    root = tmp_path / "content"
    _write(root / "keep.txt", "keep\n")
    _write(root / "scratch.tmp", "tmp\n")
    _write(root / "drafts" / "wip.md", "wip\n")
    _write(root / "__pycache__" / "x.pyc", b"\x00")
    _write(root / ".DS_Store", b"\x00")

    tree = ContentLoader(["*.tmp", "drafts/"]).load(root)

    assert isinstance(tree, SourceGroup)
    assert set(tree.children) == {"keep.txt"}


def test_source_tree_is_read_only(tmp_path: Path) -> None:
    root = tmp_path / "content"
    _write(root / "a.txt", "a\n")

    tree = load_tree(root)

    with pytest.raises(TypeError):
        tree.children["b.txt"] = tree.children["a.txt"]  # type: ignore[index]


def test_load_rejects_script_and_directory_with_same_name(tmp_path: Path) -> None:
    root = tmp_path / "content"
    _write(root / "about.py", "site.page('a')\n")
    _write(root / "about" / "index.py", "site.page('b')\n")

    with pytest.raises(DuplicateNameError) as excinfo:
        load_tree(root)

    assert "about" in str(excinfo.value)


def test_load_rejects_names_differing_only_by_case(tmp_path: Path) -> None:
    root = tmp_path / "content"
    root.mkdir()
    (root / "Logo.png").write_bytes(b"a")
    if (root / "logo.png").exists():
        pytest.skip("case-insensitive filesystem")
    (root / "logo.png").write_bytes(b"b")

    with pytest.raises(DuplicateNameError):
        load_tree(root)


def test_load_missing_root_raises_file_io_error(tmp_path: Path) -> None:
    with pytest.raises(FileIoError):
        load_tree(tmp_path / "missing")


def test_load_rejects_scripts_that_are_not_utf8(tmp_path: Path) -> None:
    root = tmp_path / "content"
    _write(root / "index.py", b"site.page('\xff')\n")

    with pytest.raises(ScriptLoadError):
        load_tree(root)


@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="needs byte file names")
def test_load_rejects_non_utf8_file_names(tmp_path: Path) -> None:
    root = tmp_path / "content"
    root.mkdir()
    try:
        with open(os.path.join(os.fsencode(root), b"bad-\xff.txt"), "wb") as handle:
            handle.write(b"x")
    except OSError:
        pytest.skip("filesystem rejects non UTF-8 names")

    with pytest.raises(NonUtf8NameError):
        load_tree(root)


def test_ignore_rules_support_anchored_and_directory_patterns() -> None:
    rules = build_ignore_rules(["/top.txt", "cache/", "# comment", ""])

    assert len(rules) == 2
    assert rules[0].matches("top.txt", False)
    assert not rules[0].matches("nested/top.txt", False)
    assert rules[1].matches("cache", True)
    assert not rules[1].matches("cache", False)
