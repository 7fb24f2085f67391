"""Content-category detection.

The category of a file is decided by an ordered list of ``(predicate, category)``
rules evaluated first-match-wins over a :class:`Probe` of the file. The order
matters because categories overlap: JSON is text, a PDF may be pure ASCII,
Markdown is both text and something pygments can lex.
"""

from __future__ import annotations

import json
import zipfile
from functools import cached_property
from typing import TYPE_CHECKING

from combine_dir.config import PROBE_BYTES, ContentCategory, Detection
from combine_dir.file_manipulation import is_probably_text, read_head, read_text

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from pygments.lexer import Lexer

    Rule = tuple[Callable[["Probe"], bool], ContentCategory]

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
MSWORD_MIME = "application/msword"
DOCUMENT_MIMES = frozenset({DOCX_MIME, MSWORD_MIME})

_OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

_PREFIX_SIGNATURES: list[tuple[bytes, str]] = [
    (b"%PDF-", PDF_MIME),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"II*\x00", "image/tiff"),
    (b"MM\x00*", "image/tiff"),
    (b"\x00\x00\x01\x00", "image/vnd.microsoft.icon"),
    (_OLE2_MAGIC, MSWORD_MIME),
    (b"\x1f\x8b", "application/gzip"),
    (b"BZh", "application/x-bzip2"),
    (b"\xfd7zXZ\x00", "application/x-xz"),
    (b"7z\xbc\xaf\x27\x1c", "application/x-7z-compressed"),
    (b"\x7fELF", "application/x-executable"),
    (b"SQLite format 3\x00", "application/vnd.sqlite3"),
]

_TEXT_LEXER_ALIASES = frozenset({"text"})


class Probe:
    """Lazy view over one file's bytes, shared by every detection rule."""

    def __init__(self, path: Path, size: int | None = None) -> None:
        self.path = path
        self.size = path.stat().st_size if size is None else size

    @cached_property
    def head(self) -> bytes:
        return read_head(self.path, PROBE_BYTES) if self.size else b""

    @cached_property
    def is_text(self) -> bool:
        return bool(self.head) and is_probably_text(self.head)

    @cached_property
    def text(self) -> str:
        return read_text(self.path)

    @cached_property
    def signature(self) -> str | None:
        """MIME label derived from magic bytes, or None."""
        head = self.head
        for prefix, mime in _PREFIX_SIGNATURES:
            if head.startswith(prefix):
                return mime
        if head.startswith(b"RIFF") and head[8:12] == b"WEBP":
            return "image/webp"
        if head.startswith(b"BM") and len(head) >= 14 and head[6:10] == b"\x00\x00\x00\x00":  # noqa: PLR2004
            return "image/bmp"
        if head.startswith(b"PK\x03\x04"):
            return self._zip_flavour()
        return None

    def _zip_flavour(self) -> str:
        try:
            with zipfile.ZipFile(self.path) as zf:
                names = set(zf.namelist())
        except (zipfile.BadZipFile, OSError):
            return "application/zip"
        if "word/document.xml" in names:
            return DOCX_MIME
        return "application/zip"

    @cached_property
    def lexer(self) -> Lexer | None:
        """The pygments lexer for this file, if it is script or source code."""
        if not self.is_text:
            return None
        from pygments.lexers import get_lexer_for_filename, guess_lexer  # noqa: PLC0415
        from pygments.util import ClassNotFound  # noqa: PLC0415

        sample = self.head.decode("utf-8", errors="ignore")
        try:
            lexer = get_lexer_for_filename(self.path.name, sample)
        except ClassNotFound:
            lexer = None
        if lexer is not None and not _TEXT_LEXER_ALIASES.intersection(lexer.aliases):
            return lexer
        if sample.startswith("#!"):
            try:
                return guess_lexer(sample)
            except ClassNotFound:
                return None
        return None


def is_empty(probe: Probe) -> bool:
    return probe.size == 0


def is_pure_binary(probe: Probe) -> bool:
    return not probe.is_text and probe.signature is None


def is_json(probe: Probe) -> bool:
    if not probe.is_text:
        return False
    stripped = probe.head.lstrip()
    if stripped.startswith(b"\xef\xbb\xbf"):
        stripped = stripped[3:].lstrip()
    if not stripped.startswith((b"{", b"[")):
        return False
    try:
        json.loads(probe.text.lstrip("\ufeff"))
    except ValueError:
        return False
    return True


def is_pdf(probe: Probe) -> bool:
    return probe.signature == PDF_MIME


def is_source(probe: Probe) -> bool:
    return probe.is_text and (probe.head.startswith(b"#!") or probe.lexer is not None)


def is_document(probe: Probe) -> bool:
    return probe.signature in DOCUMENT_MIMES


def is_image(probe: Probe) -> bool:
    return (probe.signature or "").startswith("image/")


def is_text(probe: Probe) -> bool:
    return probe.is_text


CATEGORY_RULES: list[Rule] = [
    (is_empty, ContentCategory.EMPTY),
    (is_pure_binary, ContentCategory.BINARY),
    (is_json, ContentCategory.JSON),
    (is_pdf, ContentCategory.PDF),
    (is_source, ContentCategory.SOURCE),
    (is_document, ContentCategory.DOCUMENT),
    (is_image, ContentCategory.IMAGE),
    (is_text, ContentCategory.TEXT),
]


def _mime_for(probe: Probe, category: ContentCategory) -> str:
    match category:
        case ContentCategory.EMPTY:
            return "inode/x-empty"
        case ContentCategory.BINARY:
            return "application/octet-stream"
        case ContentCategory.JSON:
            return "application/json"
        case ContentCategory.SOURCE:
            lexer = probe.lexer
            if lexer is not None and lexer.mimetypes:
                return lexer.mimetypes[0]
            return "text/x-script"
        case ContentCategory.TEXT:
            return "text/plain"
        case _:
            return probe.signature or "application/octet-stream"


def detect(path: Path, size: int | None = None, rules: list[Rule] | None = None) -> Detection:
    """Classify a file by inspecting its content.

    Args:
        path (Path): the file to classify
        size (int | None): the file size if already known
        rules (list[Rule] | None): ordered rules; defaults to CATEGORY_RULES

    Raises:
        OSError: if the file cannot be read.

    Returns:
        Detection: the first matching category, its MIME label and, for source
            files, the pygments alias used as fence language
    """
    probe = Probe(path, size)
    for predicate, category in rules or CATEGORY_RULES:
        if predicate(probe):
            break
    else:
        category = ContentCategory.UNRECOGNIZED

    language = ""
    if category is ContentCategory.SOURCE and probe.lexer is not None and probe.lexer.aliases:
        language = probe.lexer.aliases[0]
    elif category is ContentCategory.JSON:
        language = "json"
    return Detection(category=category, mime=_mime_for(probe, category), language=language)
