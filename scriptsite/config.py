"""Configuration loading for scriptsite projects (site.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .errors import ConfigError

CONFIG_FILENAME = "site.yml"

DEFAULT_ALLOWED_IMPORTS = (
    "bisect",
    "collections",
    "dataclasses",
    "datetime",
    "decimal",
    "enum",
    "fractions",
    "functools",
    "html",
    "itertools",
    "json",
    "math",
    "operator",
    "random",
    "re",
    "statistics",
    "string",
    "textwrap",
    "unicodedata",
)


@dataclass
class HighlightConfig:
    """Syntax highlighting settings."""

    class_prefix: str = "hl-"


@dataclass
class EmbeddedConfig:
    """Which embedded dialects documents may use."""

    python: bool = True
    jinja: bool = False

    def enabled(self) -> List[str]:
        languages = []
        if self.python:
            languages.append("py")
        if self.jinja:
            languages.append("jinja")
        return languages


@dataclass
class SandboxConfig:
    """Limits applied to every script namespace."""

    allowed_imports: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_IMPORTS))
    allow_commands: bool = False


@dataclass
class SiteConfig:
    """Represents the settings defined in site.yml."""

    root: Path
    content_dir: Path
    output_dir: Path
    static_dir: Path
    styles_dir: Path
    scripts_dir: Path
    ignore: List[str] = field(default_factory=list)
    highlight: HighlightConfig = field(default_factory=HighlightConfig)
    embedded: EmbeddedConfig = field(default_factory=EmbeddedConfig)
    sandbox: SandboxConfig = field(default_factory=SandboxConfig)

    @classmethod
    def defaults(cls, root: Path) -> "SiteConfig":
        return cls(
            root=root,
            content_dir=root / "content",
            output_dir=root / "dist",
            static_dir=root / "static",
            styles_dir=root / "styles",
            scripts_dir=root / "scripts",
        )


def load_config(config_path: Path) -> SiteConfig:
    """Load configuration from disk, falling back to defaults when absent."""
    config_file = _resolve_config_path(Path(config_path))
    root = config_file.parent.resolve()
    config = SiteConfig.defaults(root)

    if not config_file.exists():
        return config

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    for key in ("content_dir", "output_dir", "static_dir", "styles_dir", "scripts_dir"):
        value = _as_str(data.get(key))
        if value:
            setattr(config, key, root / value)

    config.ignore = _as_str_list(data.get("ignore"))

    highlight_data = _as_dict(data.get("highlight"))
    prefix = _as_str(highlight_data.get("class_prefix")) if highlight_data else None
    if prefix is not None:
        config.highlight.class_prefix = prefix

    embedded_data = _as_dict(data.get("embedded"))
    if embedded_data:
        python = _as_bool(embedded_data.get("python"))
        jinja = _as_bool(embedded_data.get("jinja"))
        if python is not None:
            config.embedded.python = python
        if jinja is not None:
            config.embedded.jinja = jinja

    sandbox_data = _as_dict(data.get("sandbox"))
    if sandbox_data and "allowed_imports" in sandbox_data:
        config.sandbox.allowed_imports = _as_str_list(sandbox_data.get("allowed_imports"))
    allow_commands = _as_bool(sandbox_data.get("allow_commands"))
    if allow_commands is not None:
        config.sandbox.allow_commands = allow_commands

    return config


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read {path.name}: {exc}") from exc
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded if loaded is not None else {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []
