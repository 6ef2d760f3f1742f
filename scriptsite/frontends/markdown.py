"""Markdown documents with front matter, embedded code and highlighted code blocks."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Collection, Dict, List, Mapping, Optional, Tuple

import markdown
import yaml
from markdown.extensions import Extension
from markdown.preprocessors import Preprocessor

from ..errors import ScriptLoadError
from ..extract import Dialect, extract
from ..highlight import Highlighter

_FRONT_MATTER_DELIMITER = "---"
_FENCE_PATTERN = re.compile(r"^(?P<indent> {0,3})(?P<fence>`{3,}|~{3,})[ \t]*(?P<info>[^`]*?)[ \t]*$")


@dataclass
class MarkdownResult:
    html: str
    meta: Dict[str, Any] = field(default_factory=dict)


class HighlightedFencePreprocessor(Preprocessor):
    """Replaces fenced code blocks with highlighted HTML held in the stash.

    The info string is ``<language> [<class prefix>]``; a missing prefix uses
    the highlighter's configured one.
    """

    def __init__(self, md: markdown.Markdown, highlighter: Highlighter, source: str) -> None:
        super().__init__(md)
        self.highlighter = highlighter
        self.source = source

    def run(self, lines: List[str]) -> List[str]:
        output: List[str] = []
        index = 0
        while index < len(lines):
            match = _FENCE_PATTERN.match(lines[index])
            closing = self._find_closing(lines, index, match.group("fence")) if match else None
            if match is None or closing is None:
                output.append(lines[index])
                index += 1
                continue

            language, _, prefix = match.group("info").strip().partition(" ")
            code = "\n".join(_strip_indent(line, len(match.group("indent"))) for line in lines[index + 1:closing])
            highlighted = self.highlighter.highlight(
                code + "\n" if code else code,
                language,
                prefix.strip() or None,
                source=f"{self.source}:{index + 1}",
            )
            placeholder = self.md.htmlStash.store(f"<pre><code>{highlighted}</code></pre>")
            output.extend(["", placeholder, ""])
            index = closing + 1
        return output

    @staticmethod
    def _find_closing(lines: List[str], start: int, fence: str) -> Optional[int]:
        for index in range(start + 1, len(lines)):
            candidate = lines[index].strip()
            if candidate and candidate[0] == fence[0] and candidate == candidate[0] * len(candidate):
                if len(candidate) >= len(fence) and len(lines[index]) - len(lines[index].lstrip()) <= 3:
                    return index
        return None


class HighlightedFenceExtension(Extension):
    def __init__(self, highlighter: Highlighter, source: str, **kwargs: Any) -> None:
        self.highlighter = highlighter
        self.source = source
        super().__init__(**kwargs)

    def extendMarkdown(self, md: markdown.Markdown) -> None:
        md.preprocessors.register(
            HighlightedFencePreprocessor(md, self.highlighter, self.source),
            "fenced_code_block",
            25,
        )


def split_front_matter(text: str, name: str) -> Tuple[Dict[str, Any], str]:
    """Return the front matter mapping and the body.

    The front matter block is replaced by blank lines so line numbers in the
    body still match the document.
    """
    lines = text.split("\n")
    if not lines or lines[0].rstrip() != _FRONT_MATTER_DELIMITER:
        return {}, text
    for index in range(1, len(lines)):
        if lines[index].rstrip() != _FRONT_MATTER_DELIMITER:
            continue
        block = "\n".join(lines[1:index])
        try:
            loaded = yaml.safe_load(block) if block.strip() else {}
        except yaml.YAMLError as exc:
            mark = getattr(exc, "problem_mark", None)
            line = mark.line + 2 if mark is not None else 1
            raise ScriptLoadError(name, f"invalid front matter: {exc}", line=line) from exc
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ScriptLoadError(name, "front matter must be a mapping", line=1)
        body = "\n" * (index + 1) + "\n".join(lines[index + 1:])
        return loaded, body
    return {}, text


def render_markdown(
    text: str,
    name: str,
    namespace: Dict[str, Any],
    *,
    highlighter: Optional[Highlighter] = None,
    enabled: Collection[str] = ("py",),
    dialects: Optional[Mapping[str, Dialect]] = None,
) -> MarkdownResult:
    """Render a markdown document.

    Embedded code runs first, on the markdown source. Deferred callables run
    after conversion and receive the finished HTML. Mappings produced by
    embedded code are merged over the front matter into ``meta``.
    """
    meta, body = split_front_matter(text, name)
    extraction = extract(body, name, namespace, enabled=enabled, dialects=dialects)

    converter = markdown.Markdown(
        extensions=[HighlightedFenceExtension(highlighter or Highlighter(), name), "tables"],
        output_format="html",
    )
    extraction.text = converter.convert(extraction.text)
    html = extraction.resolve()

    for item in extraction.data:
        if isinstance(item, Mapping):
            meta.update(item)
    return MarkdownResult(html=html, meta=meta)


def _strip_indent(line: str, width: int) -> str:
    if not width:
        return line
    leading = len(line) - len(line.lstrip(" "))
    return line[min(leading, width):]


__all__ = ["MarkdownResult", "render_markdown", "split_front_matter"]
