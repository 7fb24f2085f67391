from __future__ import annotations

from typing import TYPE_CHECKING

from combine_dir import capabilities as caps
from combine_dir.config import RENDERERS, ContentCategory, RenderedSection, register_renderer
from combine_dir.detection import detect
from combine_dir.file_manipulation import read_text
from combine_dir.logging import logger

if TYPE_CHECKING:
    from combine_dir.capabilities import CapabilitySet
    from combine_dir.config import Detection, FileEntry, RenderResult


def _degraded(entry: FileEntry, detection: Detection, what: str, result: RenderResult) -> RenderedSection:
    logger.info("%s failed for %s: %s", what, entry.path, result.error)
    return RenderedSection(
        rel=entry.rel,
        category=detection.category,
        body="",
        note=f"{what} failed: {result.error}",
        error=result.error,
    )


@register_renderer(ContentCategory.EMPTY)
def render_empty(entry: FileEntry, detection: Detection, capabilities: CapabilitySet) -> RenderedSection:  # noqa: ARG001
    return RenderedSection(rel=entry.rel, category=detection.category, note="empty file")


@register_renderer(ContentCategory.BINARY)
def render_binary(entry: FileEntry, detection: Detection, capabilities: CapabilitySet) -> RenderedSection:  # noqa: ARG001
    return RenderedSection(
        rel=entry.rel,
        category=detection.category,
        note=f"binary file ({detection.mime}, {entry.size} bytes), content not rendered",
    )


@register_renderer(ContentCategory.JSON)
def render_json(entry: FileEntry, detection: Detection, capabilities: CapabilitySet) -> RenderedSection:
    """Pretty-print JSON, keeping the raw text when pretty-printing fails."""
    result = capabilities[caps.JSON](entry.path)
    if result.ok:
        return RenderedSection(rel=entry.rel, category=detection.category, language="json", body=result.text)
    logger.info("JSON pretty-printing failed for %s, using raw content: %s", entry.path, result.error)
    return RenderedSection(
        rel=entry.rel,
        category=detection.category,
        language="json",
        body=read_text(entry.path),
        error=result.error,
    )


@register_renderer(ContentCategory.PDF)
def render_pdf(entry: FileEntry, detection: Detection, capabilities: CapabilitySet) -> RenderedSection:
    result = capabilities[caps.PDF](entry.path)
    if not result.ok:
        return _degraded(entry, detection, "PDF text extraction", result)
    return RenderedSection(rel=entry.rel, category=detection.category, body=result.text)


@register_renderer(ContentCategory.SOURCE)
def render_source(entry: FileEntry, detection: Detection, capabilities: CapabilitySet) -> RenderedSection:
    """Highlight source code; on failure keep the raw text in an untagged fence."""
    raw = read_text(entry.path)
    result = capabilities[caps.HIGHLIGHT](entry.path, text=raw, language=detection.language)
    if result.ok:
        return RenderedSection(
            rel=entry.rel,
            category=detection.category,
            language=detection.language,
            body=result.text,
        )
    logger.info("Highlighting failed for %s, using raw content: %s", entry.path, result.error)
    return RenderedSection(rel=entry.rel, category=detection.category, body=raw, error=result.error)


@register_renderer(ContentCategory.DOCUMENT)
def render_document(entry: FileEntry, detection: Detection, capabilities: CapabilitySet) -> RenderedSection:
    result = capabilities[caps.DOCUMENT](entry.path)
    if not result.ok:
        return _degraded(entry, detection, "document conversion", result)
    return RenderedSection(rel=entry.rel, category=detection.category, language="markdown", body=result.text)


@register_renderer(ContentCategory.IMAGE)
def render_image(entry: FileEntry, detection: Detection, capabilities: CapabilitySet) -> RenderedSection:
    result = capabilities[caps.IMAGE](entry.path)
    if not result.ok:
        return _degraded(entry, detection, "image metadata extraction", result)
    return RenderedSection(rel=entry.rel, category=detection.category, body=result.text)


@register_renderer(ContentCategory.TEXT)
def render_text(entry: FileEntry, detection: Detection, capabilities: CapabilitySet) -> RenderedSection:  # noqa: ARG001
    return RenderedSection(rel=entry.rel, category=detection.category, body=read_text(entry.path))


@register_renderer(ContentCategory.UNRECOGNIZED)
def render_unrecognized(entry: FileEntry, detection: Detection, capabilities: CapabilitySet) -> RenderedSection:  # noqa: ARG001
    logger.info("Skipping unsupported file type: %s (%s)", entry.path, detection.mime)
    return RenderedSection(
        rel=entry.rel,
        category=detection.category,
        note=f"unsupported file type ({detection.mime}), content not rendered",
    )


class Renderer:
    """Turn file entries into rendered sections.

    Rendering never raises: a failure while detecting, reading or rendering a
    file becomes a note in that file's section.
    """

    def __init__(self, capabilities: CapabilitySet) -> None:
        self.capabilities = capabilities

    def render(self, entry: FileEntry) -> RenderedSection:
        try:
            detection = detect(entry.path, entry.size)
            return self.render_detected(entry, detection)
        except Exception as e:  # noqa: BLE001
            logger.info("Rendering failed for %s: %s", entry.path, e)
            return RenderedSection(
                rel=entry.rel,
                category=ContentCategory.UNRECOGNIZED,
                note=f"could not be rendered: {e}",
                error=str(e),
            )

    def render_detected(self, entry: FileEntry, detection: Detection) -> RenderedSection:
        strategy = RENDERERS.get(detection.category, render_unrecognized)
        return strategy(entry, detection, self.capabilities)
