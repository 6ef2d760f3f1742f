"""Plain text templates: embedded code spliced into arbitrary text."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Collection, Dict, List, Mapping, Optional

from ..extract import Dialect, extract


@dataclass
class TemplateResult:
    text: str
    data: List[Any] = field(default_factory=list)


def render_template(
    text: str,
    name: str,
    namespace: Dict[str, Any],
    *,
    enabled: Collection[str] = ("py",),
    dialects: Optional[Mapping[str, Dialect]] = None,
) -> TemplateResult:
    """Run every embedded snippet in `text`, then the deferred queue."""
    extraction = extract(text, name, namespace, enabled=enabled, dialects=dialects)
    rendered = extraction.resolve()
    return TemplateResult(text=rendered, data=list(extraction.data))


__all__ = ["TemplateResult", "render_template"]
