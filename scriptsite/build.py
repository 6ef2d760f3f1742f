"""Build pipeline: load, evaluate and materialize a site."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .config import SiteConfig, load_config
from .engine import ScriptEngine
from .errors import ConfigError, SiteError
from .evaluator import TreeEvaluator
from .highlight import Highlighter
from .loader import ContentLoader
from .logging import get_logger
from .materialize import materialize
from .nodes import OutputNode
from .sandbox import SandboxFactory, SharedResources, WarningSink
from .static import load_static, static_value
from .styles import load_styles


@dataclass
class BuildResult:
    """Outcome of a successful build."""

    output: Path
    tree: OutputNode
    warnings: List[str] = field(default_factory=list)
    dry_run: bool = False


class SiteBuild:
    """Coordinates the Loader -> Evaluator -> Materializer pipeline."""

    def __init__(
        self,
        loader: ContentLoader | None = None,
        engine: ScriptEngine | None = None,
        highlighter: Highlighter | None = None,
    ) -> None:
        self._loader = loader
        self.engine = engine or ScriptEngine()
        self._highlighter = highlighter
        self.logger = get_logger("build")

    def run(
        self,
        path: str | Path,
        *,
        output: str | Path | None = None,
        dry_run: bool = False,
    ) -> BuildResult:
        """Build the project at `path` and return the result.

        The first fatal `SiteError` propagates with the warnings collected
        before it attached as `warnings`.
        """
        project = Path(path).expanduser().resolve()
        self.logger.info("Building site at %s", project)
        warnings = WarningSink()
        try:
            config = load_config(project)
            destination = Path(output).expanduser().resolve() if output else config.output_dir.resolve()
            _check_destination(destination, config)
            tree = self._build_tree(config, warnings)
            if dry_run:
                self.logger.info("Dry run: skipping output to %s", destination)
            else:
                materialize(tree, destination)
                self.logger.info("Wrote site to %s", destination)
        except SiteError as exc:
            exc.warnings = warnings.snapshot()
            raise

        return BuildResult(output=destination, tree=tree, warnings=warnings.snapshot(), dry_run=dry_run)

    def _build_tree(self, config: SiteConfig, warnings: WarningSink) -> OutputNode:
        static = load_static(config.static_dir, config.ignore)
        styles = load_styles(config.styles_dir)
        resources = SharedResources(static=static_value(static), styles=styles)
        self.logger.debug("Loaded %d static entries and %d stylesheets", len(static.subs), len(styles))

        loader = self._loader or ContentLoader(config.ignore)
        source = loader.load(config.content_dir)

        factory = SandboxFactory(
            config,
            resources,
            warnings,
            engine=self.engine,
            highlighter=self._highlighter or Highlighter(config.highlight.class_prefix),
        )
        return TreeEvaluator(factory).evaluate(source)


def _check_destination(destination: Path, config: SiteConfig) -> None:
    # Materializing replaces the destination, so it must not hold any project input.
    if destination.is_relative_to(config.content_dir.resolve()):
        raise ConfigError(f"output directory {destination} is inside the content directory")
    for source in (config.root, config.content_dir, config.static_dir, config.styles_dir, config.scripts_dir):
        if source.resolve().is_relative_to(destination):
            raise ConfigError(f"output directory {destination} would replace project input {source}")


def build_site(
    path: str | Path,
    *,
    output: Optional[str | Path] = None,
    dry_run: bool = False,
) -> BuildResult:
    """Convenience wrapper around `SiteBuild.run`."""
    return SiteBuild().run(path, output=output, dry_run=dry_run)


__all__ = ["BuildResult", "SiteBuild", "build_site"]
