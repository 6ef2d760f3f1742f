"""Per-node script namespaces and the ``site`` host API."""

from __future__ import annotations

import builtins
import copy
import html
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from types import MappingProxyType, SimpleNamespace
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from .config import SiteConfig
from .engine import ScriptEngine
from .errors import FileIoError, SandboxViolationError, ScriptLoadError, ScriptRuntimeError
from .extract import Dialect, JinjaDialect, PythonDialect
from .files import BinaryFile, CommandFile, DiskFile, LazyFile, TextFile
from .frontends.markdown import render_markdown
from .frontends.template import render_template
from .highlight import Highlighter
from .logging import get_logger
from .mathml import latex_to_mathml

BLOCKED_BUILTINS = frozenset(
    {
        "open",
        "exec",
        "eval",
        "compile",
        "input",
        "breakpoint",
        "exit",
        "quit",
        "help",
        "__import__",
    }
)

_DRIVE_PATTERN = re.compile(r"^[A-Za-z]:")


class WarningSink:
    """Collects build warnings from every sandbox; safe to share across threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: List[str] = []
        self.logger = get_logger("warnings")

    def add(self, source: str, text: str) -> None:
        message = f"[{source}]: {text}"
        with self._lock:
            self._items.append(message)
        self.logger.warning(message)

    def snapshot(self) -> List[str]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


@dataclass(frozen=True)
class SharedResources:
    """Read-only values computed once per build and visible to every script."""

    static: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    styles: Mapping[str, LazyFile] = field(default_factory=lambda: MappingProxyType({}))


class SiteApi:
    """Host functions exposed to scripts as ``site``.

    A copy of the template instance is bound to each sandbox, so ``warn``,
    ``require`` and the front ends always act on the calling script.
    """

    def __init__(self, highlighter: Highlighter) -> None:
        self._highlighter = highlighter
        self._sandbox: Optional["Sandbox"] = None

    def _bind(self, sandbox: "Sandbox") -> "SiteApi":
        bound = copy.copy(self)
        bound._sandbox = sandbox
        return bound

    @property
    def _owner(self) -> "Sandbox":
        if self._sandbox is None:
            raise RuntimeError("site API used outside of a script")
        return self._sandbox

    # Output node shapes

    def page(self, html: str, meta: Any = None, subs: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        return {"type": "page", "html": html, "meta": meta, "subs": dict(subs or {})}

    def table(self, meta: Any) -> Dict[str, Any]:
        return {"type": "table", "meta": meta}

    def asset(self, target: Any) -> Dict[str, Any]:
        """Wrap a LazyFile, a colocated asset or a path relative to the script."""
        if isinstance(target, LazyFile):
            return {"type": "asset", "file": target}
        if isinstance(target, Mapping) and isinstance(target.get("file"), LazyFile):
            return {"type": "asset", "file": target["file"]}
        return {"type": "asset", "path": str(target)}

    def dir(self, subs: Mapping[str, Any]) -> Dict[str, Any]:
        return {"type": "dir", "subs": dict(subs)}

    # Files

    def file(self, text: str) -> TextFile:
        return TextFile(str(text))

    def binary(self, data: bytes) -> BinaryFile:
        if isinstance(data, str):
            data = data.encode("utf-8")
        return BinaryFile(bytes(data))

    def command(self, command: str, *arguments: Any) -> CommandFile:
        """Standard output of `command`, run from the project root when the file is needed."""
        config = self._owner.factory.config
        if not config.sandbox.allow_commands:
            raise SandboxViolationError(
                f"{self._owner.source}: site.command() is disabled; set sandbox.allow_commands in site.yml"
            )
        return CommandFile(command, [str(argument) for argument in arguments], cwd=config.root)

    def read(self, item: Any) -> str:
        """Return the text of a LazyFile or a colocated asset/page value."""
        if isinstance(item, LazyFile):
            return item.read_text()
        if isinstance(item, Mapping):
            if isinstance(item.get("file"), LazyFile):
                return item["file"].read_text()
            if isinstance(item.get("html"), str):
                return item["html"]
        raise TypeError(f"site.read() expects a file or an asset, got {type(item).__name__}")

    @staticmethod
    def file_name(path: str) -> str:
        return PurePosixPath(str(path)).name

    @staticmethod
    def file_stem(path: str) -> str:
        return PurePosixPath(str(path)).stem

    @staticmethod
    def file_ext(path: str) -> Optional[str]:
        suffix = PurePosixPath(str(path)).suffix
        return suffix[1:] if suffix else None

    # Rendering

    @staticmethod
    def escape(text: str) -> str:
        return html.escape(str(text))

    def highlight(self, code: str, language: str, class_prefix: Optional[str] = None) -> str:
        return self._highlighter.highlight(code, language, class_prefix, source=self._owner.source)

    def template(self, document: Any, name: Optional[str] = None) -> str:
        """Render a template given as text, a LazyFile or a colocated asset.

        Errors are reported against `name`, which defaults to the file's
        project-relative path, or the calling script for plain text.
        """
        text, name = self._document(document, name)
        return self._owner.render_template(text, name).text

    def markdown(self, document: Any, name: Optional[str] = None) -> Dict[str, Any]:
        text, name = self._document(document, name)
        result = self._owner.render_markdown(text, name)
        return {"html": result.html, "meta": result.meta}

    def latex_to_mathml(self, latex: str, inline: bool = True) -> str:
        return latex_to_mathml(latex, inline, source=self._owner.source)

    def _document(self, document: Any, name: Optional[str]) -> Tuple[str, Optional[str]]:
        if isinstance(document, str):
            return document, name
        file = document.get("file") if isinstance(document, Mapping) else document
        if isinstance(file, DiskFile) and name is None:
            name = self._owner.factory.relative_name(file.path)
        return self.read(document), name

    # Sandbox services

    def warn(self, text: str) -> None:
        self._owner.warn(text)

    def require(self, name: str) -> Any:
        return self._owner.require(name)


class Sandbox:
    """One script's namespace plus the services bound to it."""

    def __init__(self, factory: "SandboxFactory", source: str, namespace: Dict[str, Any]) -> None:
        self.factory = factory
        self.source = source
        self.namespace = namespace
        self.site = factory.site_template._bind(self)
        self._modules: Dict[str, Any] = {}
        self._loading: Set[str] = set()

    def warn(self, text: str) -> None:
        self.factory.warnings.add(self.source, str(text))

    def render_template(self, text: str, name: Optional[str] = None):
        return render_template(
            text,
            name or self.source,
            self.namespace,
            enabled=self.factory.config.embedded.enabled(),
            dialects=self.factory.dialects,
        )

    def render_markdown(self, text: str, name: Optional[str] = None):
        return render_markdown(
            text,
            name or self.source,
            self.namespace,
            highlighter=self.factory.highlighter,
            enabled=self.factory.config.embedded.enabled(),
            dialects=self.factory.dialects,
        )

    def require(self, name: str) -> Any:
        """Load a module from the scripts directory, once per sandbox."""
        module_path = self._module_path(name)
        key = module_path.as_posix()
        if key in self._modules:
            return self._modules[key]
        if key in self._loading:
            raise ScriptRuntimeError(self.source, f"circular require of '{name}'")

        module_name = self.factory.relative_name(module_path)
        try:
            code = module_path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise ScriptLoadError(module_name, f"module is not valid UTF-8 ({exc.reason})") from exc
        except OSError as exc:
            raise FileIoError(module_path, f"failed to read module: {exc.strerror or exc}") from exc

        namespace = self.factory.base_namespace()
        namespace.update(
            {
                "__name__": module_name,
                "site": self.site,
                "warn": self.warn,
                "require": self.require,
            }
        )
        initial = set(namespace)
        self._loading.add(key)
        try:
            value = self.factory.engine.evaluate(code, module_name, namespace)
        finally:
            self._loading.discard(key)

        if value is None:
            exports = {
                key_: item
                for key_, item in namespace.items()
                if key_ not in initial and not key_.startswith("_")
            }
            value = SimpleNamespace(**exports)
        self._modules[key] = value
        return value

    def _module_path(self, name: str) -> Path:
        if not isinstance(name, str) or not name.strip():
            raise SandboxViolationError(f"{self.source}: require() needs a module name")
        if "\\" in name or name.startswith("/") or _DRIVE_PATTERN.match(name):
            raise SandboxViolationError(f"{self.source}: require('{name}') must be a relative module name")
        if any(part in ("", ".", "..") for part in name.split("/")):
            raise SandboxViolationError(f"{self.source}: require('{name}') may not leave the scripts directory")

        relative = name[: -len(".py")] if name.endswith(".py") else name
        scripts_dir = self.factory.config.scripts_dir.resolve()
        candidate = (scripts_dir / f"{relative}.py").resolve()
        if not candidate.is_relative_to(scripts_dir):
            raise SandboxViolationError(f"{self.source}: require('{name}') resolves outside the scripts directory")
        if not candidate.is_file():
            raise ScriptLoadError(self.source, f"module '{name}' not found in {self.factory.relative_name(scripts_dir)}")
        return candidate


class SandboxFactory:
    """Builds isolated namespaces from one base template.

    The template holds the restricted builtins and the shared read-only
    resources. Each sandbox receives its own copy of the builtins dict and of
    the ``site`` object, so nothing a script rebinds leaks to another script.
    """

    def __init__(
        self,
        config: SiteConfig,
        resources: Optional[SharedResources] = None,
        warnings: Optional[WarningSink] = None,
        *,
        engine: Optional[ScriptEngine] = None,
        highlighter: Optional[Highlighter] = None,
        dialects: Optional[Dict[str, Dialect]] = None,
    ) -> None:
        self.config = config
        self.resources = resources or SharedResources()
        self.warnings = warnings if warnings is not None else WarningSink()
        self.engine = engine or ScriptEngine()
        self.highlighter = highlighter or Highlighter(config.highlight.class_prefix)
        self.dialects = dialects or {"py": PythonDialect(self.engine), "jinja": JinjaDialect()}
        self.site_template = SiteApi(self.highlighter)
        self._allowed_imports = frozenset(config.sandbox.allowed_imports)
        self._template = self._base_template()
        self.logger = get_logger("sandbox")

    def _base_template(self) -> Dict[str, Any]:
        restricted = {key: value for key, value in vars(builtins).items() if key not in BLOCKED_BUILTINS}
        restricted["__import__"] = self._restricted_import
        return {
            "__builtins__": restricted,
            "static": self.resources.static,
            "styles": self.resources.styles,
        }

    def base_namespace(self) -> Dict[str, Any]:
        """Return a fresh duplicate of the base template."""
        namespace = dict(self._template)
        namespace["__builtins__"] = dict(self._template["__builtins__"])
        return namespace

    def build(self, *, name: str, path: Path, colocated: Mapping[str, Any]) -> Sandbox:
        """Create the sandbox for the script at `path`."""
        source = self.relative_name(path)
        namespace = self.base_namespace()
        sandbox = Sandbox(self, source, namespace)
        namespace.update(
            {
                "__name__": "__main__",
                "name": name,
                "path": source,
                "colocated": MappingProxyType(dict(colocated)),
                "site": sandbox.site,
                "warn": sandbox.warn,
                "require": sandbox.require,
            }
        )
        self.logger.debug("Built sandbox for %s", source)
        return sandbox

    def relative_name(self, path: Path) -> str:
        """Return `path` relative to the project root, in POSIX form."""
        path = Path(path)
        try:
            return path.resolve().relative_to(self.config.root.resolve()).as_posix()
        except ValueError:
            return path.as_posix()

    def _restricted_import(
        self,
        name: str,
        globals: Optional[Mapping[str, Any]] = None,
        locals: Optional[Mapping[str, Any]] = None,
        fromlist: Any = (),
        level: int = 0,
    ) -> Any:
        if level:
            raise SandboxViolationError("relative imports are not available to scripts; use require()")
        top = name.partition(".")[0]
        if top not in self._allowed_imports:
            raise SandboxViolationError(
                f"import of '{name}' is not allowed; add it to sandbox.allowed_imports in site.yml"
            )
        return builtins.__import__(name, globals, locals, fromlist, level)


__all__ = [
    "BLOCKED_BUILTINS",
    "Sandbox",
    "SandboxFactory",
    "SharedResources",
    "SiteApi",
    "WarningSink",
]
