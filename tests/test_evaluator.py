"""Tests for scriptsite.evaluator."""

from __future__ import annotations

import pytest

from scriptsite.errors import InvalidNodeShapeError, ScriptRuntimeError
from scriptsite.evaluator import TreeEvaluator
from scriptsite.nodes import AssetNode, GroupNode, PageNode, TableNode
from scriptsite.sandbox import SandboxFactory, WarningSink


def _evaluate(site_builder, warnings: WarningSink | None = None):
    factory = SandboxFactory(site_builder.config(), warnings=warnings)
    return TreeEvaluator(factory).evaluate(site_builder.load())


def test_assets_and_groups_pass_through(site_builder) -> None:
    site_builder.write({"content/a.txt": "a", "content/sub/b.bin": b"\x00\x01"})

    tree = _evaluate(site_builder)

    assert isinstance(tree, GroupNode)
    assert isinstance(tree.subs["a.txt"], AssetNode)
    assert tree.subs["sub"].subs["b.bin"].file.read_bytes() == b"\x00\x01"


def test_script_sees_rendered_siblings(site_builder) -> None:
    site_builder.write(
        {
            "content/index.py": """
                posts = colocated["posts"]["meta"]
                site.page("".join(f"<li>{title}</li>" for title in posts))
            """,
            "content/posts.py": "site.table(['one', 'two'])\n",
        }
    )

    tree = _evaluate(site_builder)

    assert isinstance(tree, PageNode)
    assert tree.html == "<li>one</li><li>two</li>"
    assert dict(tree.subs) == {}


def test_directory_script_name_is_directory_name(site_builder) -> None:
    site_builder.write(
        {
            "content/index.py": "site.page(name, subs={'blog': colocated['blog']})\n",
            "content/blog/index.py": "site.page(name + ':' + path)\n",
        }
    )

    tree = _evaluate(site_builder)

    assert tree.html == "content"
    assert tree.subs["blog"].html == "blog:content/blog/index.py"


def test_script_may_return_asset_relative_to_its_directory(site_builder) -> None:
    site_builder.write(
        {
            "content/feed/index.py": "site.asset('feed.xml')\n",
            "content/feed/feed.xml": "<rss/>",
        }
    )

    tree = _evaluate(site_builder)

    feed = tree.subs["feed"]
    assert isinstance(feed, AssetNode)
    assert feed.file.read_text() == "<rss/>"


def test_invalid_return_value_names_the_script(site_builder) -> None:
    site_builder.write({"content/index.py": "42\n"})

    with pytest.raises(InvalidNodeShapeError) as excinfo:
        _evaluate(site_builder)

    assert "content/index.py" in str(excinfo.value)


def test_errors_carry_node_script_and_line_context(site_builder) -> None:
    site_builder.write(
        {
            "content/docs/guide.py": "x = 1\nraise RuntimeError('broken')\n",
        }
    )

    with pytest.raises(ScriptRuntimeError) as excinfo:
        _evaluate(site_builder)

    error = excinfo.value
    assert error.line == 2
    assert str(error) == "content/docs/guide.py:2: RuntimeError: broken"
    assert error.context == ["content/docs/guide.py", "content/docs"]
    assert error.describe().splitlines()[0] == "in content/docs"


def test_failing_sibling_aborts_parent(site_builder) -> None:
    site_builder.write(
        {
            "content/index.py": "site.page('never')\n",
            "content/bad.py": "undefined\n",
        }
    )

    with pytest.raises(ScriptRuntimeError) as excinfo:
        _evaluate(site_builder)

    assert excinfo.value.source == "content/bad.py"


def test_warnings_do_not_abort(site_builder) -> None:
    warnings = WarningSink()
    site_builder.write({"content/index.py": "warn('heads up')\nsite.table(None)\n"})

    tree = _evaluate(site_builder, warnings)

    assert tree == TableNode(meta=None)
    assert warnings.snapshot() == ["[content/index.py]: heads up"]
