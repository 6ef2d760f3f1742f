"""Syntax highlighting for code blocks, backed by Pygments."""

from __future__ import annotations

from pygments import highlight as pygments_highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .errors import HighlightError

_PLAIN_ALIASES = {"", "plain", "none", "text"}


class Highlighter:
    """Renders code to HTML spans whose classes carry a configurable prefix."""

    def __init__(self, class_prefix: str = "hl-") -> None:
        self.class_prefix = class_prefix

    def highlight(
        self,
        code: str,
        language: str,
        class_prefix: str | None = None,
        *,
        source: str | None = None,
    ) -> str:
        """Return highlighted HTML (without a wrapping element) for `code`."""
        name = (language or "").strip().lower()
        lexer_name = "text" if name in _PLAIN_ALIASES else name
        try:
            lexer = get_lexer_by_name(lexer_name)
        except ClassNotFound as exc:
            where = source or "<code block>"
            raise HighlightError(f"{where}: no highlighter for language '{language}'") from exc

        prefix = self.class_prefix if class_prefix is None else class_prefix
        formatter = HtmlFormatter(classprefix=prefix, nowrap=True)
        return pygments_highlight(code, lexer, formatter)

    def stylesheet(self, selector: str = "pre code", style: str = "default") -> str:
        """Return CSS rules for the highlighted classes."""
        formatter = HtmlFormatter(classprefix=self.class_prefix, style=style)
        return formatter.get_style_defs(selector)


__all__ = ["Highlighter"]
