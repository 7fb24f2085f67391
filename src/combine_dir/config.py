from __future__ import annotations

import re
from enum import StrEnum, auto
from functools import wraps
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

if TYPE_CHECKING:
    from collections.abc import Callable

    RendererFn = Callable[..., "RenderedSection"]

_ = Path()

DEFAULT_OUTPUT = "combined_output.md"
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024
DEFAULT_RENDER_TIMEOUT = 30.0
PROBE_BYTES = 8192


class ContentCategory(StrEnum):
    """Classification of a file's bytes, used to pick a rendering strategy.

    The category comes from content inspection; the file name only refines
    the choice between generic text and script/source.
    """

    EMPTY = auto()
    BINARY = auto()
    JSON = auto()
    PDF = auto()
    SOURCE = auto()
    DOCUMENT = auto()
    IMAGE = auto()
    TEXT = auto()
    UNRECOGNIZED = auto()


class EntryKind(StrEnum):
    """Kind of a discovered filesystem entry."""

    FILE = auto()
    DIRECTORY = auto()
    SYMLINK = auto()
    OTHER = auto()


class DiagnosticKind(StrEnum):
    """Level at which a non-fatal problem was handled."""

    DIRECTORY = auto()
    FILE = auto()
    RENDER = auto()


RENDERERS: dict[ContentCategory, Callable[..., RenderedSection]] = {}

_BACKTICK_RUN = re.compile(r"`+")


class TraversalConfig(BaseModel):
    """Immutable snapshot of everything the traversal needs to decide on skips.

    Attributes:
        output_path: Absolute path of the Markdown output, never embedded in itself.
        json_output_path: Absolute path of the optional JSON wrapper, also self-excluded.
        max_file_size: Files strictly larger than this are skipped, never truncated.
        exclude_dirs: Substrings of canonical directory paths to skip.
        exclude_extensions: Extensions (no leading dot) to skip.
        respect_ignore_rules: Consult git ignore rules and the tracked-file listing.
        exclude_match: ``substring`` matches anywhere in the canonical path,
            ``segment`` requires a whole path segment below the root.
        include_hidden: Also walk entries whose name starts with a dot.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    output_path: Path = Field(..., description="Absolute output file path")
    json_output_path: Path | None = Field(default=None, description="Absolute JSON output path")
    max_file_size: int = Field(default=DEFAULT_MAX_FILE_SIZE, gt=0, description="Maximum file size in bytes")
    exclude_dirs: frozenset[str] = Field(default_factory=frozenset, description="Directory substrings to skip")
    exclude_extensions: frozenset[str] = Field(default_factory=frozenset, description="Extensions to skip")
    respect_ignore_rules: bool = Field(default=False, description="Consult git ignore rules")
    exclude_match: Literal["substring", "segment"] = Field(default="substring")
    include_hidden: bool = Field(default=False, description="Walk dot-entries such as .git or .env")

    @field_validator("exclude_dirs", mode="before")
    @classmethod
    def _drop_blank_dirs(cls, value: Any) -> frozenset[str]:  # noqa: ANN401
        return frozenset(str(v).strip() for v in value or () if str(v).strip())

    @field_validator("exclude_extensions", mode="before")
    @classmethod
    def _normalize_extensions(cls, value: Any) -> frozenset[str]:  # noqa: ANN401
        return frozenset(str(v).strip().lstrip(".").lower() for v in value or () if str(v).strip())

    @computed_field
    @property
    def self_paths(self) -> frozenset[Path]:
        """Paths written by this run, which must never be processed as input."""
        paths = {self.output_path.resolve()}
        if self.json_output_path is not None:
            paths.add(self.json_output_path.resolve())
        return frozenset(paths)


class FileEntry(BaseModel):
    """A discovered filesystem entry, produced and consumed within one traversal step."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    path: Path = Field(..., description="Path as reached by the walk")
    rel: str = Field(..., description="POSIX path relative to the traversal root")
    kind: EntryKind = Field(default=EntryKind.FILE)
    size: int = Field(default=0, ge=0, description="File size in bytes")
    category: ContentCategory | None = Field(default=None, description="Detected content category, set once rendered")


class Detection(BaseModel):
    """Outcome of content inspection."""

    model_config = ConfigDict(frozen=True)

    category: ContentCategory
    mime: str = "application/octet-stream"
    language: str = ""


class RenderResult(BaseModel):
    """Success or failure of one capability invocation."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    text: str = ""
    error: str = ""

    @classmethod
    def success(cls, text: str) -> RenderResult:
        return cls(ok=True, text=text)

    @classmethod
    def failure(cls, error: str) -> RenderResult:
        return cls(ok=False, error=error)


class Diagnostic(BaseModel):
    """A non-fatal skip or degradation recorded during one run."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    path: Path
    kind: DiagnosticKind
    reason: str


class RenderedSection(BaseModel):
    """The Markdown fragment for one file.

    Attributes:
        rel: Header naming the file, relative to the traversal root.
        category: Detected content category.
        language: Info string of the fenced block (may be empty).
        body: Fenced content; ``None`` when no block is emitted at all.
        note: Metadata or diagnostic line shown after the block.
        error: Why a renderer degraded, for diagnostics; never serialised.
    """

    model_config = ConfigDict(frozen=True)

    rel: str
    category: ContentCategory
    language: str = ""
    body: str | None = None
    note: str = ""
    error: str = Field(default="", exclude=True)

    def to_markdown(self) -> str:
        """Serialise the section; the result is always a closed, self-contained fragment."""
        parts = [f"## {self.rel}\n\n"]
        if self.body is not None:
            body = self.body.rstrip("\n")
            longest = max((len(m) for m in _BACKTICK_RUN.findall(body)), default=0)
            fence = "`" * max(3, longest + 1)
            parts.append(f"{fence}{self.language}\n{body}\n{fence}\n")
        if self.note:
            parts.append(f"_{self.note}_\n")
        parts.append("\n")
        return "".join(parts)


def register_renderer(
    category: ContentCategory | list[ContentCategory],
) -> Callable[[RendererFn], RendererFn]:
    """Decorator to register a rendering strategy for one or more content categories.

    Args:
        category (ContentCategory | list[ContentCategory]): The category (or categories)
            that the decorated function renders.

    Returns:
        Callable[[RendererFn], RendererFn]: A decorator that registers the given function
        in the RENDERERS mapping under the specified categories and returns it.
    """

    def decorator(func: RendererFn) -> RendererFn:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:  # noqa: ANN401
            return func(*args, **kwargs)

        if isinstance(category, list):
            for c in category:
                RENDERERS[c] = wrapper
        else:
            RENDERERS[category] = wrapper
        return wrapper

    return decorator
