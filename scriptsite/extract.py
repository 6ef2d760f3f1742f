"""Embedded-code extraction shared by every text front end.

Documents embed code between an opening marker (``<?py`` or ``<?jinja``) and
``?>``. Inside code, ``??>`` stands for a literal ``?>``; outside code, ``<??``
stands for a literal ``<?``.

Each snippet runs as soon as it is found, against the caller's namespace.
Plain values are spliced into the output in place of the snippet, and a
snippet that evaluates to ``None`` splices nothing. Callables and structured
values (mappings, lists) are queued and a placeholder is left in the output;
`Extraction.resolve` runs the queue in source order once the whole document
has been scanned. Placeholders carry a random token per document, so literal
text can never stand in for one.

Math is written between ``<?$`` and ``$?>`` (inline) or ``<?$$`` and ``$$?>``
(block) and is replaced by MathML.

Snippets are padded with one newline per line of text before them, so the
line numbers an engine reports are document line numbers. Columns on the
snippet's first line are shifted by the visual width of the text before the
code.
"""

from __future__ import annotations

import secrets
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Collection, Dict, List, Mapping, Optional, Protocol, Tuple

from .engine import JinjaEngine, ScriptEngine, traceback_line
from .errors import ScriptError, ScriptLoadError, ScriptRuntimeError, SiteError, UnsupportedEmbeddedLanguageError
from .mathml import latex_to_mathml

CLOSING_MARKER = "?>"
ESCAPED_CLOSING = "??>"
ESCAPED_OPENING = "<??"

# Longest marker first so prefixes never shadow each other.
OPENING_MARKERS: Tuple[Tuple[str, str], ...] = (
    ("<?jinja", "jinja"),
    ("<?py", "py"),
)

# Longest marker first, as above.
MATH_MARKERS: Tuple[Tuple[str, str, bool], ...] = (
    ("<?$$", "$$?>", False),
    ("<?$", "$?>", True),
)

PLACEHOLDER_FMT = "<!--scriptsite:deferred:{token}:{index}-->"


def display_width(text: str) -> int:
    """Visual width of `text` in terminal columns (wide East Asian characters count twice)."""
    width = 0
    for char in text:
        if unicodedata.combining(char):
            continue
        width += 2 if unicodedata.east_asian_width(char) in ("W", "F") else 1
    return width


@dataclass
class Snippet:
    """A code fragment cut out of a document, with its original position."""

    language: str
    code: str
    line: int
    column: int

    @property
    def first_line(self) -> int:
        """1-based document line the code starts on."""
        return self.line + 1

    def padding(self) -> str:
        return "\n" * self.line


class Dialect(Protocol):
    """Runs one snippet and returns its single value."""

    def run(self, snippet: Snippet, name: str, namespace: Dict[str, Any]) -> Any:
        ...


class PythonDialect:
    """Runs snippets as Python chunks."""

    def __init__(self, engine: Optional[ScriptEngine] = None) -> None:
        self.engine = engine or ScriptEngine()

    def run(self, snippet: Snippet, name: str, namespace: Dict[str, Any]) -> Any:
        source, first_shift, rest_shift = _prepare_python(snippet)
        try:
            return self.engine.evaluate(source, name, namespace)
        except ScriptError as exc:
            if exc.source == name and exc.column is not None and exc.line is not None:
                shift = first_shift if exc.line == snippet.first_line else rest_shift
                exc.relocate(column=exc.column + shift)
            raise


class JinjaDialect:
    """Renders snippets as Jinja templates; the value is always a string."""

    def __init__(self, engine: Optional[JinjaEngine] = None) -> None:
        self.engine = engine or JinjaEngine()

    def run(self, snippet: Snippet, name: str, namespace: Dict[str, Any]) -> Any:
        padding = snippet.padding()
        rendered = self.engine.evaluate(padding + snippet.code, name, namespace)
        if rendered.startswith(padding):
            rendered = rendered[len(padding):]
        return rendered


def default_dialects() -> Dict[str, Dialect]:
    return {"py": PythonDialect(), "jinja": JinjaDialect()}


@dataclass
class Deferred:
    """A queued callable or structured value and the spot it reserved."""

    index: int
    value: Any
    placeholder: str
    line: int


@dataclass
class Extraction:
    """Output of the eager pass plus the ordered deferred queue."""

    text: str
    name: str
    deferred: List[Deferred] = field(default_factory=list)
    data: List[Any] = field(default_factory=list)

    def resolve(self) -> str:
        """Run the deferred queue in source order and splice each result.

        Callables receive the document as it stands (earlier results already
        spliced). Structured values splice nothing and are collected into
        `data`.
        """
        pending, self.deferred = self.deferred, []
        for item in pending:
            if item.placeholder not in self.text:
                raise ScriptRuntimeError(
                    self.name,
                    "deferred value lost its place in the output; "
                    "deferred values cannot be used inside code spans or code blocks",
                    line=item.line,
                )
            if callable(item.value):
                replacement = self._invoke(item)
            else:
                self.data.append(item.value)
                replacement = ""
            self.text = self.text.replace(item.placeholder, replacement, 1)
        return self.text

    def _invoke(self, item: Deferred) -> str:
        try:
            result = item.value(self.text)
        except SiteError as exc:
            raise exc.add_context(f"{self.name}:{item.line} (deferred)")
        except KeyboardInterrupt:
            raise
        except BaseException as exc:
            line = traceback_line(exc.__traceback__, self.name) or item.line
            raise ScriptRuntimeError(
                self.name, f"deferred call failed: {type(exc).__name__}: {exc}", line=line
            ) from exc
        return "" if result is None else str(result)


def extract(
    text: str,
    name: str,
    namespace: Dict[str, Any],
    *,
    enabled: Collection[str] = ("py",),
    dialects: Optional[Mapping[str, Dialect]] = None,
) -> Extraction:
    """Scan `text`, running embedded code eagerly and queueing deferred values."""
    runners = dialects if dialects is not None else default_dialects()
    out: List[str] = []
    deferred: List[Deferred] = []
    token = secrets.token_hex(8)
    position = 0
    length = len(text)

    while position < length:
        start = text.find("<?", position)
        if start == -1:
            out.append(text[position:])
            break
        out.append(text[position:start])

        if text.startswith(ESCAPED_OPENING, start):
            out.append("<?")
            position = start + len(ESCAPED_OPENING)
            continue

        math = _match_math(text, start)
        if math is not None:
            opening, closing, inline = math
            line = text.count("\n", 0, start) + 1
            end = text.find(closing, start + len(opening))
            if end == -1:
                raise ScriptLoadError(name, f"unterminated math, expected '{closing}'", line=line)
            out.append(latex_to_mathml(text[start + len(opening):end], inline, source=f"{name}:{line}"))
            position = end + len(closing)
            continue

        marker, language = _match_opening(text, start)
        if marker is None:
            out.append("<?")
            position = start + 2
            continue

        code_start = start + len(marker)
        line = text.count("\n", 0, code_start)
        line_start = text.rfind("\n", 0, code_start) + 1
        column = display_width(text[line_start:code_start])

        if language not in enabled or language not in runners:
            raise UnsupportedEmbeddedLanguageError(language, f"{name}:{line + 1}:{column + 1}")

        code, position = _read_code(text, code_start, name, line, column)
        snippet = Snippet(language=language, code=code, line=line, column=column)
        value = runners[language].run(snippet, name, namespace)

        if value is None:
            continue
        if callable(value) or isinstance(value, (Mapping, list, tuple)):
            placeholder = PLACEHOLDER_FMT.format(token=token, index=len(deferred))
            deferred.append(Deferred(len(deferred), value, placeholder, snippet.first_line))
            out.append(placeholder)
        else:
            out.append(str(value))

    return Extraction(text="".join(out), name=name, deferred=deferred)


def _match_opening(text: str, start: int) -> Tuple[Optional[str], str]:
    for marker, language in OPENING_MARKERS:
        if not text.startswith(marker, start):
            continue
        following = text[start + len(marker): start + len(marker) + 1]
        # `<?python` is not `<?py` followed by `thon`.
        if following and not following.isspace():
            continue
        return marker, language
    return None, ""


def _match_math(text: str, start: int) -> Optional[Tuple[str, str, bool]]:
    for opening, closing, inline in MATH_MARKERS:
        if text.startswith(opening, start):
            return opening, closing, inline
    return None


def _read_code(text: str, code_start: int, name: str, line: int, column: int) -> Tuple[str, int]:
    parts: List[str] = []
    position = code_start
    while True:
        index = text.find("?", position)
        if index == -1:
            raise ScriptLoadError(name, "unterminated code block, expected '?>'", line=line + 1, column=column + 1)
        if text.startswith(ESCAPED_CLOSING, index):
            parts.append(text[position:index])
            parts.append(CLOSING_MARKER)
            position = index + len(ESCAPED_CLOSING)
            continue
        if text.startswith(CLOSING_MARKER, index):
            parts.append(text[position:index])
            return "".join(parts), index + len(CLOSING_MARKER)
        parts.append(text[position:index + 1])
        position = index + 1


def _prepare_python(snippet: Snippet) -> Tuple[str, int, int]:
    """Return padded Python source and the column shifts for its first and later lines.

    Python is indentation sensitive, so the first line is stripped of leading
    whitespace and, when the code starts on the line after the marker, the
    remaining lines are dedented by their common indent.
    """
    lines = snippet.code.split("\n")
    first = lines[0]
    stripped_first = first.lstrip()
    lead = display_width(first[: len(first) - len(stripped_first)])
    rest = lines[1:]

    indent = ""
    if not stripped_first.strip() and rest:
        indent = _common_indent(rest)
        rest = [line[len(indent):] if line.startswith(indent) else line.lstrip() for line in rest]

    source = snippet.padding() + "\n".join([stripped_first] + rest)
    return source, snippet.column + lead, display_width(indent)


def _common_indent(lines: List[str]) -> str:
    indents = [line[: len(line) - len(line.lstrip())] for line in lines if line.strip()]
    if not indents:
        return ""
    prefix = indents[0]
    for indent in indents[1:]:
        while not indent.startswith(prefix):
            prefix = prefix[:-1]
    return prefix


__all__ = [
    "Deferred",
    "Dialect",
    "Extraction",
    "JinjaDialect",
    "PythonDialect",
    "Snippet",
    "display_width",
    "default_dialects",
    "extract",
]
