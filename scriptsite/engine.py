"""Embedded engines: Python chunks and Jinja expressions bound to a namespace."""

from __future__ import annotations

import ast
import traceback
from types import TracebackType
from typing import Any, Dict, Optional

import jinja2

from .errors import ScriptLoadError, ScriptRuntimeError, SiteError

_RESULT_NAME = "__chunk_result__"


class Chunk:
    """A compiled unit of code bound to one namespace.

    Calling the chunk runs it with no arguments and returns the value of its
    final expression statement, or ``None`` when it ends in a statement.
    """

    def __init__(self, name: str, code: Any, namespace: Dict[str, Any]) -> None:
        self.name = name
        self.code = code
        self.namespace = namespace

    def __call__(self) -> Any:
        self.namespace.pop(_RESULT_NAME, None)
        try:
            exec(self.code, self.namespace)
        except SiteError as exc:
            line = traceback_line(exc.__traceback__, self.name)
            raise exc.add_context(f"{self.name}:{line}" if line else self.name)
        except KeyboardInterrupt:  # the only exception a script may let escape
            raise
        except BaseException as exc:
            raise ScriptRuntimeError(
                self.name,
                f"{type(exc).__name__}: {exc}",
                line=traceback_line(exc.__traceback__, self.name),
            ) from exc
        return self.namespace.pop(_RESULT_NAME, None)

    def __repr__(self) -> str:
        return f"Chunk({self.name!r})"


class ScriptEngine:
    """Loads Python source as chunks.

    Errors are reported against `name`, which is also the filename compiled into
    the code object so tracebacks and line numbers point at the original file.
    """

    def load(self, source: str, name: str, namespace: Dict[str, Any]) -> Chunk:
        try:
            tree = ast.parse(source, filename=name, mode="exec")
        except SyntaxError as exc:
            raise _load_error(name, exc) from exc
        except ValueError as exc:
            raise ScriptLoadError(name, str(exc)) from exc

        if tree.body and isinstance(tree.body[-1], ast.Expr):
            last = tree.body[-1]
            assign = ast.Assign(
                targets=[ast.Name(id=_RESULT_NAME, ctx=ast.Store())],
                value=last.value,
            )
            tree.body[-1] = ast.copy_location(assign, last)
            ast.fix_missing_locations(tree)

        try:
            code = compile(tree, name, "exec")
        except SyntaxError as exc:
            raise _load_error(name, exc) from exc
        return Chunk(name, code, namespace)

    def evaluate(self, source: str, name: str, namespace: Dict[str, Any]) -> Any:
        """Load and immediately run `source`."""
        return self.load(source, name, namespace)()


class JinjaEngine:
    """Renders Jinja templates against a script namespace."""

    def __init__(self) -> None:
        self.environment = jinja2.Environment(
            undefined=jinja2.StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )

    def evaluate(self, source: str, name: str, namespace: Dict[str, Any]) -> str:
        try:
            template = self.environment.from_string(source)
        except jinja2.TemplateSyntaxError as exc:
            raise ScriptLoadError(name, exc.message or "invalid template", line=exc.lineno) from exc

        context = {key: value for key, value in namespace.items() if not key.startswith("__")}
        try:
            return template.render(context)
        except SiteError as exc:
            raise exc.add_context(name)
        except KeyboardInterrupt:
            raise
        except BaseException as exc:
            raise ScriptRuntimeError(
                name,
                f"{type(exc).__name__}: {exc}",
                line=traceback_line(exc.__traceback__, "<template>"),
            ) from exc


def traceback_line(tb: Optional[TracebackType], filename: str) -> Optional[int]:
    """Return the innermost line number in `tb` that belongs to `filename`."""
    line = None
    for frame in traceback.extract_tb(tb):
        if frame.filename == filename:
            line = frame.lineno
    return line


def _load_error(name: str, exc: SyntaxError) -> ScriptLoadError:
    return ScriptLoadError(name, exc.msg or "invalid syntax", line=exc.lineno, column=exc.offset)


__all__ = ["Chunk", "JinjaEngine", "ScriptEngine", "traceback_line"]
