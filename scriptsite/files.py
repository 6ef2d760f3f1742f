"""Deferred file content: passthrough, generated and transformed files."""

from __future__ import annotations

import io
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence

from PIL import Image, UnidentifiedImageError

from .errors import FileIoError, NotUtf8Error, TransformError, UnsupportedFormatError
from .logging import get_logger

logger = get_logger("files")


class LazyFile(ABC):
    """Handle to byte content that is only produced when it is read or written.

    Resolution is the single point where disk reads and image decodes happen.
    Resolved bytes are cached, so a file that is both read by a script and
    written by the materializer is decoded once.
    """

    def __init__(self) -> None:
        self._resolved: Optional[bytes] = None

    @abstractmethod
    def describe(self) -> str:
        """Short human readable origin, used in error messages."""

    @abstractmethod
    def _resolve(self) -> bytes:
        """Produce the bytes for this file."""

    def read_bytes(self) -> bytes:
        if self._resolved is None:
            self._resolved = self._resolve()
        return self._resolved

    def read_text(self) -> str:
        data = self.read_bytes()
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise NotUtf8Error(f"{self.describe()}: content is not valid UTF-8 ({exc.reason})") from exc

    def write_to(self, destination: Path) -> None:
        """Write the resolved content to `destination`, creating parent directories."""
        destination = Path(destination)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(self.read_bytes())
        except OSError as exc:
            raise FileIoError(destination, f"failed to write {self.describe()}: {exc.strerror or exc}") from exc

    def resize(self, percent: float) -> "ImageTransform":
        """Scale an image by a percentage of its size."""
        return ImageTransform(self, scale=_positive(percent, "percent") / 100.0)

    def resize_width(self, width: int) -> "ImageTransform":
        """Scale an image to a fixed width, keeping the aspect ratio."""
        return ImageTransform(self, width=int(_positive(width, "width")))

    def resize_height(self, height: int) -> "ImageTransform":
        """Scale an image to a fixed height, keeping the aspect ratio."""
        return ImageTransform(self, height=int(_positive(height, "height")))


class DiskFile(LazyFile):
    """Reference to an existing file, copied verbatim."""

    def __init__(self, path: Path | str) -> None:
        super().__init__()
        self.path = Path(path)

    def describe(self) -> str:
        return str(self.path)

    def _resolve(self) -> bytes:
        try:
            return self.path.read_bytes()
        except OSError as exc:
            raise FileIoError(self.path, f"failed to read file: {exc.strerror or exc}") from exc

    def write_to(self, destination: Path) -> None:
        if self._resolved is not None:
            super().write_to(destination)
            return
        destination = Path(destination)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(self.path, destination)
        except OSError as exc:
            raise FileIoError(self.path, f"failed to copy to {destination}: {exc.strerror or exc}") from exc

    def __repr__(self) -> str:
        return f"DiskFile({str(self.path)!r})"


class TextFile(LazyFile):
    """Freshly generated text content, stored as UTF-8."""

    def __init__(self, text: str) -> None:
        super().__init__()
        self.text = text

    def describe(self) -> str:
        return "<generated text>"

    def _resolve(self) -> bytes:
        return self.text.encode("utf-8")

    def read_text(self) -> str:
        return self.text

    def __repr__(self) -> str:
        return f"TextFile({len(self.text)} chars)"


class BinaryFile(LazyFile):
    """Freshly generated binary content."""

    def __init__(self, data: bytes) -> None:
        super().__init__()
        self.data = bytes(data)

    def describe(self) -> str:
        return "<generated bytes>"

    def _resolve(self) -> bytes:
        return self.data

    def __repr__(self) -> str:
        return f"BinaryFile({len(self.data)} bytes)"


class CommandFile(LazyFile):
    """Standard output of an external command, run when the file is resolved."""

    def __init__(self, command: str, arguments: Sequence[str] = (), *, cwd: Optional[Path] = None) -> None:
        super().__init__()
        self.command = str(command)
        self.arguments = [str(argument) for argument in arguments]
        self.cwd = cwd

    def describe(self) -> str:
        return " ".join([self.command, *self.arguments])

    def _resolve(self) -> bytes:
        logger.info("Running command %s", self.describe())
        try:
            completed = subprocess.run(
                [self.command, *self.arguments],
                cwd=str(self.cwd) if self.cwd is not None else None,
                check=True,
                capture_output=True,
            )
        except FileNotFoundError as exc:
            raise TransformError(f"{self.describe()}: command not found") from exc
        except subprocess.CalledProcessError as exc:
            stderr = exc.stderr.decode("utf-8", "replace").strip() if exc.stderr else ""
            detail = f": {stderr}" if stderr else ""
            raise TransformError(f"{self.describe()}: exited with status {exc.returncode}{detail}") from exc
        except OSError as exc:
            raise TransformError(f"{self.describe()}: failed to run command: {exc.strerror or exc}") from exc
        return completed.stdout

    def __repr__(self) -> str:
        return f"CommandFile({self.describe()!r})"


class ImageTransform(LazyFile):
    """Queued resize of an image file.

    Exactly one of `scale`, `width` or `height` is set. Resizing a transform
    again folds the request into new parameters against the same source, so
    the source is decoded and encoded once no matter how often it is resized.
    """

    def __init__(
        self,
        source: LazyFile,
        *,
        scale: Optional[float] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> None:
        super().__init__()
        if sum(value is not None for value in (scale, width, height)) != 1:
            raise ValueError("ImageTransform needs exactly one of scale, width or height")
        if isinstance(source, ImageTransform):
            raise ValueError("ImageTransform source must not itself be a transform")
        self.source = source
        self.scale = scale
        self.width = width
        self.height = height

    def describe(self) -> str:
        return f"{self.source.describe()} ({self._label()})"

    def resize(self, percent: float) -> "ImageTransform":
        factor = _positive(percent, "percent") / 100.0
        if self.scale is not None:
            return ImageTransform(self.source, scale=self.scale * factor)
        if self.width is not None:
            return ImageTransform(self.source, width=max(1, round(self.width * factor)))
        return ImageTransform(self.source, height=max(1, round(self.height * factor)))  # type: ignore[operator]

    def resize_width(self, width: int) -> "ImageTransform":
        return ImageTransform(self.source, width=int(_positive(width, "width")))

    def resize_height(self, height: int) -> "ImageTransform":
        return ImageTransform(self.source, height=int(_positive(height, "height")))

    def target_size(self, original: tuple[int, int]) -> tuple[int, int]:
        """Return the output size for an image of size `original`."""
        orig_width, orig_height = original
        if self.scale is not None:
            return (max(1, round(orig_width * self.scale)), max(1, round(orig_height * self.scale)))
        if self.width is not None:
            return (self.width, max(1, round(orig_height * self.width / orig_width)))
        assert self.height is not None
        return (max(1, round(orig_width * self.height / orig_height)), self.height)

    def _resolve(self) -> bytes:
        data = self.source.read_bytes()
        try:
            with Image.open(io.BytesIO(data)) as image:
                image_format = image.format or "PNG"
                resized = image.resize(self.target_size(image.size), Image.Resampling.LANCZOS)
        except UnidentifiedImageError as exc:
            raise UnsupportedFormatError(
                f"{self.source.describe()}: not an image format that can be resized"
            ) from exc
        except (OSError, ValueError) as exc:
            raise TransformError(f"{self.describe()}: failed to resize image: {exc}") from exc

        buffer = io.BytesIO()
        try:
            resized.save(buffer, format=image_format)
        except (OSError, ValueError, KeyError) as exc:
            raise TransformError(f"{self.describe()}: failed to encode image: {exc}") from exc
        return buffer.getvalue()

    def _label(self) -> str:
        if self.scale is not None:
            return f"resized to {self.scale * 100:g}%"
        if self.width is not None:
            return f"resized to width {self.width}"
        return f"resized to height {self.height}"

    def __repr__(self) -> str:
        return f"ImageTransform({self.source!r}, {self._label()})"


def _positive(value: float, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise TransformError(f"resize {label} must be a positive number, got {value!r}")
    return float(value)


__all__ = ["BinaryFile", "CommandFile", "DiskFile", "ImageTransform", "LazyFile", "TextFile"]
