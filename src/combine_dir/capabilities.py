"""Rendering back-ends as capability providers.

Each provider turns a file into text or reports a failure through
:class:`RenderResult`; it never raises. Third-party libraries are imported when a
provider runs so that their absence is reported once at startup by
:meth:`CapabilitySet.ensure_available` instead of crashing at import time.

Source code is highlighted in one of two modes. In ``fence`` mode (the default)
the source is embedded unchanged under a fence tagged with its language, and
the Markdown viewer does the colouring. In ``ansi`` mode pygments embeds
terminal colour escapes in the text itself.
"""

from __future__ import annotations

import importlib.util
import json
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Literal

from combine_dir.config import RenderResult
from combine_dir.exceptions import MissingCapabilityError, RenderError
from combine_dir.file_manipulation import read_text
from combine_dir.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from pathlib import Path

PDF = "pdf-text"
JSON = "json-pretty"
HIGHLIGHT = "highlight"
DOCUMENT = "document-convert"
IMAGE = "image-metadata"


class Capability(ABC):
    """Base class for a rendering capability.

    Subclasses set ``name`` and ``requires`` (the import name of the library
    backing them) and implement :meth:`run`.
    """

    name: ClassVar[str] = ""
    requires: ClassVar[str] = ""

    def available(self) -> bool:
        """Tell whether the backing library can be imported."""
        return importlib.util.find_spec(self.requires) is not None

    def __call__(self, path: Path, **kwargs: Any) -> RenderResult:  # noqa: ANN401
        try:
            text = self.run(path, **kwargs)
        except RenderError as e:
            return RenderResult.failure(e.reason)
        except Exception as e:  # noqa: BLE001
            return RenderResult.failure(f"{type(e).__name__}: {e}")
        return RenderResult.success(text)

    @abstractmethod
    def run(self, path: Path, **kwargs: Any) -> str:  # noqa: ANN401
        """Produce the rendered text of `path`, raising on failure."""


class PdfTextExtractor(Capability):
    """Extract the plain text of every page of a PDF."""

    name = PDF
    requires = "pypdf"

    def run(self, path: Path, **kwargs: Any) -> str:  # noqa: ANN401, ARG002
        from pypdf import PdfReader  # noqa: PLC0415

        reader = PdfReader(str(path))
        if reader.is_encrypted and not reader.decrypt(""):
            raise RenderError(capability=self.name, path=path, reason="encrypted PDF")
        pages = [page.extract_text() or "" for page in reader.pages]
        return "\n\n".join(p.strip("\n") for p in pages)


class JsonPrettyPrinter(Capability):
    """Re-indent a JSON document."""

    name = JSON
    requires = "json"

    def __init__(self, indent: int = 2) -> None:
        self.indent = indent

    def run(self, path: Path, **kwargs: Any) -> str:  # noqa: ANN401, ARG002
        data = json.loads(read_text(path).lstrip("\ufeff"))
        return json.dumps(data, indent=self.indent, ensure_ascii=False)


class SyntaxHighlighter(Capability):
    """Highlight source code with pygments.

    In ``fence`` mode this provider does no colouring at all: it checks that
    pygments knows the language and returns the source unchanged. The colouring
    is left to the Markdown viewer, which reads the language tag of the fence.
    In ``ansi`` mode the text is rendered with terminal escape sequences.
    """

    name = HIGHLIGHT
    requires = "pygments"

    def __init__(self, mode: Literal["fence", "ansi"] = "fence", style: str = "default") -> None:
        self.mode = mode
        self.style = style

    def run(self, path: Path, *, text: str | None = None, language: str = "", **kwargs: Any) -> str:  # noqa: ANN401, ARG002
        from pygments import highlight  # noqa: PLC0415
        from pygments.formatters import TerminalFormatter  # noqa: PLC0415
        from pygments.lexers import get_lexer_by_name, get_lexer_for_filename  # noqa: PLC0415

        source = read_text(path) if text is None else text
        if self.mode == "fence":
            if language:
                get_lexer_by_name(language)
            return source
        lexer = get_lexer_by_name(language) if language else get_lexer_for_filename(path.name, source)
        return highlight(source, lexer, TerminalFormatter(style=self.style))


class DocumentConverter(Capability):
    """Convert a Word document to Markdown-ish text."""

    name = DOCUMENT
    requires = "docx"

    def run(self, path: Path, **kwargs: Any) -> str:  # noqa: ANN401, ARG002
        import docx  # noqa: PLC0415

        document = docx.Document(str(path))
        lines: list[str] = []
        for para in document.paragraphs:
            text = para.text.strip()
            if not text:
                continue
            style = (para.style.name if para.style is not None else "") or ""
            if style == "Title":
                lines.append(f"# {text}")
            elif style.startswith("Heading"):
                level = style.removeprefix("Heading").strip()
                depth = int(level) if level.isdigit() else 1
                lines.append(f"{'#' * min(depth + 1, 6)} {text}")
            elif style.startswith("List"):
                lines.append(f"- {text}")
            else:
                lines.append(text)
            lines.append("")
        for table in document.tables:
            lines.extend(_table_to_markdown(table))
            lines.append("")
        return "\n".join(lines).strip("\n")


def _table_to_markdown(table: Any) -> Iterator[str]:  # noqa: ANN401
    rows = [[cell.text.strip().replace("|", "\\|") for cell in row.cells] for row in table.rows]
    if not rows:
        return
    yield "| " + " | ".join(rows[0]) + " |"
    yield "|" + "---|" * len(rows[0])
    for row in rows[1:]:
        yield "| " + " | ".join(row) + " |"


class ImageMetadataExtractor(Capability):
    """List image metadata: format, geometry, colour mode and EXIF tags."""

    name = IMAGE
    requires = "PIL"

    def run(self, path: Path, **kwargs: Any) -> str:  # noqa: ANN401, ARG002
        from PIL import ExifTags, Image  # noqa: PLC0415

        with Image.open(path) as img:
            width, height = img.size
            lines = [
                f"File Name: {path.name}",
                f"Format: {img.format}",
                f"MIME Type: {Image.MIME.get(img.format or '', 'unknown')}",
                f"Image Size: {width}x{height}",
                f"Mode: {img.mode}",
            ]
            frames = getattr(img, "n_frames", 1)
            if frames > 1:
                lines.append(f"Frames: {frames}")
            for key, value in sorted(img.info.items(), key=lambda kv: str(kv[0])):
                if isinstance(value, (bytes, bytearray)):
                    continue
                lines.append(f"{key}: {value}")
            for tag_id, value in sorted(img.getexif().items()):
                if isinstance(value, (bytes, bytearray)):
                    continue
                lines.append(f"{ExifTags.TAGS.get(tag_id, tag_id)}: {value}")
        return "\n".join(lines)


class CapabilitySet:
    """Named capability providers consulted by the renderer registry."""

    def __init__(self, providers: Iterable[Capability]) -> None:
        self._providers = {p.name: p for p in providers}

    def __getitem__(self, name: str) -> Capability:
        return self._providers[name]

    def __iter__(self) -> Iterator[Capability]:
        return iter(self._providers.values())

    def missing(self) -> tuple[str, ...]:
        return tuple(p.name for p in self if not p.available())

    def ensure_available(self) -> None:
        """Check once, before traversal, that every provider can run.

        Raises:
            MissingCapabilityError: if any provider's library is absent.
        """
        missing = self.missing()
        if missing:
            logger.error("missing_capabilities", missing=list(missing))
            raise MissingCapabilityError(missing=missing)


def default_capabilities(highlight: Literal["fence", "ansi"] = "fence") -> CapabilitySet:
    """Build the default provider set.

    Args:
        highlight (Literal["fence", "ansi"]): syntax highlighting mode

    Returns:
        CapabilitySet: providers for PDF, JSON, source, document and image content
    """
    return CapabilitySet(
        [
            PdfTextExtractor(),
            JsonPrettyPrinter(),
            SyntaxHighlighter(mode=highlight),
            DocumentConverter(),
            ImageMetadataExtractor(),
        ],
    )
