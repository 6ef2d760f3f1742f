"""Text front ends built on the embedded-code extraction protocol."""

from .markdown import MarkdownResult, render_markdown
from .template import TemplateResult, render_template

__all__ = ["MarkdownResult", "TemplateResult", "render_markdown", "render_template"]
