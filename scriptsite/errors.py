"""Error taxonomy for site builds."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional


class SiteError(RuntimeError):
    """Base class for every fatal build error.

    Errors carry a context chain (outermost last) so a failed build can report
    which node, which script and which source line were involved.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        self.context: List[str] = []
        self.warnings: List[str] = []

    def add_context(self, note: str) -> "SiteError":
        """Append an outer context note and return the same error."""
        if note and (not self.context or self.context[-1] != note):
            self.context.append(note)
        return self

    def describe(self) -> str:
        """Render the error and its context chain, outermost first."""
        lines = [f"in {note}" for note in reversed(self.context)]
        lines.append(str(self))
        return "\n".join(lines)


class ConfigError(SiteError):
    """Raised when site.yml cannot be parsed."""


class FileIoError(SiteError):
    """Filesystem access failed."""

    def __init__(self, path: Path | str, detail: str) -> None:
        super().__init__(f"{path}: {detail}")
        self.path = str(path)


class NonUtf8NameError(SiteError):
    """A file or directory name cannot be represented as UTF-8 text."""

    def __init__(self, path: Path | str) -> None:
        super().__init__(f"{path!r}: file name is not valid UTF-8")
        self.path = path


class DuplicateNameError(SiteError):
    """Two entries in one directory map onto the same child name."""

    def __init__(self, directory: Path | str, name: str, other: str) -> None:
        super().__init__(f"{directory}: '{name}' collides with '{other}'")
        self.directory = str(directory)
        self.name = name


class ScriptError(SiteError):
    """Shared base for errors that point at a line in a script or document."""

    def __init__(
        self,
        source: str,
        detail: str,
        *,
        line: Optional[int] = None,
        column: Optional[int] = None,
    ) -> None:
        self.source = source
        self.detail = detail
        self.line = line
        self.column = column
        super().__init__(self._format())

    @property
    def location(self) -> str:
        if self.line is None:
            return self.source
        if self.column is None:
            return f"{self.source}:{self.line}"
        return f"{self.source}:{self.line}:{self.column}"

    def relocate(self, *, line: Optional[int] = None, column: Optional[int] = None) -> "ScriptError":
        """Rewrite the reported position, keeping type and context."""
        if line is not None:
            self.line = line
        if column is not None:
            self.column = column
        self.message = self._format()
        self.args = (self.message,)
        return self

    def _format(self) -> str:
        return f"{self.location}: {self.detail}"


class ScriptLoadError(ScriptError):
    """A chunk failed to parse or compile."""


class ScriptRuntimeError(ScriptError):
    """A chunk raised while it was running."""


class InvalidNodeShapeError(SiteError):
    """A script returned a value that is not a recognised output node."""

    def __init__(self, script: str, detail: str) -> None:
        super().__init__(f"{script}: invalid node shape: {detail}")
        self.script = script
        self.detail = detail


class UnsupportedEmbeddedLanguageError(SiteError):
    """A document requested an embedded dialect that is disabled."""

    def __init__(self, language: str, source: str) -> None:
        super().__init__(
            f"{source}: found a '{language}' code block, but '{language}' is not enabled in site.yml"
        )
        self.language = language
        self.source = source


class SandboxViolationError(SiteError):
    """A script tried to reach outside its sandbox."""


class HighlightError(SiteError):
    """The highlighter could not render a code block."""


class MathError(SiteError):
    """LaTeX math could not be converted to MathML."""


class TransformError(SiteError):
    """A deferred file transform failed when it was resolved."""


class NotUtf8Error(TransformError):
    """File content was requested as text but is not UTF-8."""


class UnsupportedFormatError(TransformError):
    """An image transform was requested on a file Pillow cannot decode."""


__all__ = [
    "ConfigError",
    "DuplicateNameError",
    "FileIoError",
    "HighlightError",
    "InvalidNodeShapeError",
    "MathError",
    "NonUtf8NameError",
    "NotUtf8Error",
    "SandboxViolationError",
    "ScriptError",
    "ScriptLoadError",
    "ScriptRuntimeError",
    "SiteError",
    "TransformError",
    "UnsupportedEmbeddedLanguageError",
    "UnsupportedFormatError",
]
