"""Helper utilities for constructing throwaway site projects in tests."""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Mapping, Union

from scriptsite.build import BuildResult, SiteBuild
from scriptsite.config import SiteConfig, load_config
from scriptsite.loader import load_tree
from scriptsite.nodes import SourceNode

Content = Union[str, bytes]


class SiteBuilder:
    """Writes project files under a temporary root and builds them."""

    def __init__(self, tmp_path: Path) -> None:
        self.root = tmp_path / "project"
        self.root.mkdir()
        self.output = tmp_path / "out"

    def write(self, files: Mapping[str, Content]) -> None:
        """Write `path -> contents` entries relative to the project root.

        Text is dedented so tests can use indented triple-quoted strings.
        """
        for relative, content in files.items():
            path = self.root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(textwrap.dedent(content).lstrip("\n"), encoding="utf-8")

    def config(self) -> SiteConfig:
        return load_config(self.root)

    def load(self) -> SourceNode:
        config = self.config()
        return load_tree(config.content_dir, config.ignore)

    def build(self, **kwargs) -> BuildResult:
        kwargs.setdefault("output", self.output)
        return SiteBuild().run(self.root, **kwargs)

    def read_output(self, relative: str) -> str:
        return (self.output / relative).read_text(encoding="utf-8")


__all__ = ["SiteBuilder"]
