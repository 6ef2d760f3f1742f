"""End-to-end tests for scriptsite.build."""

from __future__ import annotations

import pytest

from scriptsite.build import SiteBuild
from scriptsite.errors import (
    ConfigError,
    InvalidNodeShapeError,
    SandboxViolationError,
    ScriptRuntimeError,
    UnsupportedEmbeddedLanguageError,
)


def test_sample_site_with_about_page(site_builder) -> None:
    site_builder.write(
        {
            "content/index.py": """
                site.page("<h1>Hi</h1>", subs={"about": colocated["about"]})
            """,
            "content/about.py": """
                site.page("<p>About</p>")
            """,
        }
    )

    result = site_builder.build()

    assert result.warnings == []
    assert site_builder.read_output("index.html") == "<h1>Hi</h1>"
    assert site_builder.read_output("about/index.html") == "<p>About</p>"


def test_table_is_readable_but_never_written(site_builder) -> None:
    site_builder.write(
        {
            "content/index.py": """
                nav = colocated["nav"]["meta"]
                site.page(" | ".join(nav), subs={"nav": colocated["nav"]})
            """,
            "content/nav.py": "site.table(['home', 'blog'])\n",
        }
    )

    site_builder.build()

    assert site_builder.read_output("index.html") == "home | blog"
    assert sorted(path.name for path in site_builder.output.iterdir()) == ["index.html"]


def test_group_and_assets_are_copied_byte_for_byte(site_builder) -> None:
    payload = bytes(range(256))
    site_builder.write({"content/img/raw.bin": payload, "content/notes.txt": "notes\n"})

    site_builder.build()

    assert (site_builder.output / "img" / "raw.bin").read_bytes() == payload
    assert site_builder.read_output("notes.txt") == "notes\n"


def test_markdown_page_with_styles_static_and_helpers(site_builder) -> None:
    site_builder.write(
        {
            "styles/main.css": "body {\n  color : red ;\n}\n",
            "static/logo.svg": "<svg/>",
            "scripts/layout.py": """
                def wrap(title, body):
                    return f"<title>{title}</title>{body}"
            """,
            "content/index.py": """
                layout = require("layout")
                post = site.markdown(site.read(colocated["post.md"]))
                site.page(
                    layout.wrap(post["meta"]["title"], post["html"]),
                    meta=post["meta"],
                    subs={
                        "main.css": site.asset(styles["main"]),
                        "logo.svg": site.asset(static["logo.svg"]),
                    },
                )
            """,
            "content/post.md": """
                ---
                title: Hello
                ---
                # Post <?py 6 * 7 ?>
            """,
        }
    )

    result = site_builder.build()

    assert site_builder.read_output("index.html") == "<title>Hello</title><h1>Post 42</h1>"
    assert site_builder.read_output("main.css") == "body{color:red}"
    assert site_builder.read_output("logo.svg") == "<svg/>"
    assert not (site_builder.output / "post.md").exists()
    assert result.tree.meta == {"title": "Hello"}


def test_rebuild_is_idempotent_and_drops_stale_output(site_builder) -> None:
    site_builder.write({"content/index.py": "site.page('v1')\n"})
    site_builder.build()
    (site_builder.output / "stale.txt").write_text("stale", encoding="utf-8")

    site_builder.build()
    first = sorted(path.name for path in site_builder.output.iterdir())
    site_builder.build()

    assert first == ["index.html"]
    assert sorted(path.name for path in site_builder.output.iterdir()) == first


def test_dry_run_writes_nothing(site_builder) -> None:
    site_builder.write({"content/index.py": "site.page('x')\n"})

    result = site_builder.build(dry_run=True)

    assert result.dry_run is True
    assert not site_builder.output.exists()


def test_require_escape_fails_the_build(site_builder) -> None:
    site_builder.write({"scripts/ok.py": "1\n", "content/index.py": "require('../site.yml')\n"})

    with pytest.raises(SandboxViolationError) as excinfo:
        site_builder.build()

    assert "content/index.py:1" in excinfo.value.describe()


def test_failed_build_carries_warnings(site_builder) -> None:
    site_builder.write({"content/index.py": "warn('one')\nsite.template('<?jinja x ?>')\n"})

    with pytest.raises(UnsupportedEmbeddedLanguageError) as excinfo:
        site_builder.build()

    assert excinfo.value.warnings == ["[content/index.py]: one"]


def test_jinja_dialect_can_be_enabled(site_builder) -> None:
    site_builder.write(
        {
            "site.yml": "embedded:\n  jinja: true\n",
            "content/index.py": "who = 'jinja'\nsite.page(site.template('<p><?jinja {{ who }}?></p>'))\n",
        }
    )

    site_builder.build()

    assert site_builder.read_output("index.html") == "<p> jinja</p>"


def test_output_inside_content_is_rejected(site_builder) -> None:
    site_builder.write({"content/index.py": "site.page('x')\n"})

    with pytest.raises(ConfigError):
        SiteBuild().run(site_builder.root, output=site_builder.root / "content" / "out")
    with pytest.raises(ConfigError):
        SiteBuild().run(site_builder.root, output=site_builder.root)


def test_default_output_dir_comes_from_config(site_builder) -> None:
    site_builder.write({"site.yml": "output_dir: public\n", "content/index.py": "site.page('x')\n"})

    result = SiteBuild().run(site_builder.root)

    assert result.output == (site_builder.root / "public").resolve()
    assert (site_builder.root / "public" / "index.html").read_text(encoding="utf-8") == "x"


def test_markdown_errors_name_the_document(site_builder) -> None:
    site_builder.write(
        {
            "content/index.py": "site.page(site.markdown(colocated['post.md'])['html'])\n",
            "content/post.md": """
                ---
                title: Broken
                ---
                <?py 1 / 0 ?>
            """,
        }
    )

    with pytest.raises(ScriptRuntimeError) as excinfo:
        site_builder.build()

    error = excinfo.value
    assert error.source == "content/post.md"
    assert error.line == 4
    assert error.describe().splitlines() == [
        "in content/index.py",
        "in content/index.py:1",
        "content/post.md:4: ZeroDivisionError: division by zero",
    ]


def test_parent_cannot_mutate_sibling_meta(site_builder) -> None:
    site_builder.write(
        {
            "content/index.py": """
                colocated["data"]["meta"]["x"] = "mutated"
                site.page("p", subs={"d": colocated["data"]})
            """,
            "content/data.py": "site.table({'x': 'original'})\n",
        }
    )

    with pytest.raises(ScriptRuntimeError, match="TypeError") as excinfo:
        site_builder.build()

    assert excinfo.value.line == 1


def test_page_sub_named_index_html_is_rejected(site_builder) -> None:
    site_builder.write(
        {
            "content/index.py": """
                site.page("<h1>body</h1>", subs={"index.html": site.asset(site.file("other"))})
            """,
        }
    )

    with pytest.raises(InvalidNodeShapeError, match="index.html"):
        site_builder.build()

    assert not site_builder.output.exists()
