"""Depth-first evaluation of the source tree into the output tree."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Mapping

from .engine import ScriptEngine
from .errors import SiteError
from .files import DiskFile
from .loader import ENTRY_NAME, SCRIPT_SUFFIX
from .logging import get_logger
from .nodes import (
    AssetNode,
    GroupNode,
    OutputNode,
    SourceAsset,
    SourceGroup,
    SourceNode,
    SourceScript,
    node_from_value,
    node_to_value,
)
from .sandbox import SandboxFactory


class TreeEvaluator:
    """Turns each source node into exactly one output node.

    Siblings of a script are evaluated before the script itself, so the
    script sees their rendered values through ``colocated``. The first error
    aborts the node and every ancestor.
    """

    def __init__(self, factory: SandboxFactory, engine: ScriptEngine | None = None) -> None:
        self.factory = factory
        self.engine = engine or factory.engine
        self.root = factory.config.root.resolve()
        self.logger = get_logger("evaluator")

    def evaluate(self, node: SourceNode) -> OutputNode:
        if isinstance(node, SourceAsset):
            return AssetNode(DiskFile(node.path))
        if isinstance(node, SourceGroup):
            return self._evaluate_group(node)
        if isinstance(node, SourceScript):
            return self._evaluate_script(node)
        raise TypeError(f"Not a source node: {node!r}")

    def _evaluate_group(self, node: SourceGroup) -> GroupNode:
        subs = self._evaluate_children(node.children)
        return GroupNode(subs=subs)

    def _evaluate_children(self, children: Mapping[str, SourceNode]) -> Dict[str, OutputNode]:
        evaluated: Dict[str, OutputNode] = {}
        for name, child in children.items():
            try:
                evaluated[name] = self.evaluate(child)
            except SiteError as exc:
                raise exc.add_context(self._relative(child.path))
        return evaluated

    def _evaluate_script(self, node: SourceScript) -> OutputNode:
        siblings = self._evaluate_children(node.siblings)
        colocated = {name: node_to_value(child) for name, child in siblings.items()}

        script_dir = node.path.parent
        name = script_dir.name if node.path.name == f"{ENTRY_NAME}{SCRIPT_SUFFIX}" else node.path.stem
        sandbox = self.factory.build(name=name, path=node.path, colocated=colocated)
        source = sandbox.source

        self.logger.debug("Running %s", source)
        try:
            chunk = self.engine.load(node.code, source, sandbox.namespace)
            value = chunk()
            return node_from_value(value, source, base_dir=script_dir, root=self.root)
        except SiteError as exc:
            raise exc.add_context(source)

    def _relative(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self.root).as_posix()
        except ValueError:
            return path.as_posix()


def evaluate_tree(node: SourceNode, factory: SandboxFactory) -> OutputNode:
    """Convenience wrapper around `TreeEvaluator.evaluate`."""
    return TreeEvaluator(factory).evaluate(node)


__all__ = ["TreeEvaluator", "evaluate_tree"]
