"""LaTeX math to MathML, backed by latex2mathml."""

from __future__ import annotations

from latex2mathml.converter import convert

from .errors import MathError


def latex_to_mathml(latex: str, inline: bool = True, *, source: str | None = None) -> str:
    """Return a ``<math>`` element for `latex`, displayed inline or as a block."""
    try:
        return convert(str(latex), display="inline" if inline else "block")
    except Exception as exc:
        where = source or "<math>"
        raise MathError(f"{where}: failed to convert math to MathML: {exc}") from exc


__all__ = ["latex_to_mathml"]
