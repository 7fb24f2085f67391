from __future__ import annotations

import threading
import time
from collections import deque
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from pydantic import BaseModel, ConfigDict, Field

from combine_dir.config import DEFAULT_RENDER_TIMEOUT, ContentCategory, Diagnostic, DiagnosticKind, RenderedSection
from combine_dir.file_manipulation import build_tree_lines, tree_summary
from combine_dir.logging import logger
from combine_dir.renderers import Renderer
from combine_dir.traversal import TraversalState, discover

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

    from combine_dir.capabilities import CapabilitySet
    from combine_dir.config import FileEntry, TraversalConfig
    from combine_dir.vcs import GitIgnoreEvaluator

PREAMBLE_SEPARATOR = "\n\n"


class CombineResult(BaseModel):
    """Summary of one combine run."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    output_path: Path = Field(..., description="Markdown document written")
    sections: int = Field(..., ge=0, description="Number of file sections written")
    diagnostics: list[Diagnostic] = Field(default_factory=list, description="Skips and degraded renders")
    json_output_path: Path | None = Field(default=None, description="JSON wrapper written, if any")
    tokens: int | None = Field(default=None, ge=0, description="Estimated token count, if requested")


class DocumentAssembler:
    """Write the combined document to a text stream, in the order received.

    Every write is a complete fragment followed by a flush, so an interrupted
    run leaves the file cut at a section boundary.
    """

    def __init__(self, stream: TextIO) -> None:
        self.stream = stream
        self.sections_written = 0

    def write_preamble(self, root_name: str, rel_paths: Sequence[str]) -> None:
        """Write the structural tree, then exactly two blank lines."""
        lines = build_tree_lines(root_name, rel_paths)
        block = "```text\n" + "\n".join(lines) + "\n\n" + tree_summary(rel_paths) + "\n```\n"
        self.stream.write(block + PREAMBLE_SEPARATOR)
        self.stream.flush()

    def append_section(self, section: RenderedSection) -> None:
        self.stream.write(section.to_markdown())
        self.stream.flush()
        self.sections_written += 1


def timed_out_section(entry: FileEntry, timeout: float) -> RenderedSection:
    reason = f"rendering timed out after {timeout:g}s"
    return RenderedSection(rel=entry.rel, category=ContentCategory.UNRECOGNIZED, note=reason, error=reason)


def _start_render(renderer: Renderer, entry: FileEntry) -> Future[RenderedSection]:
    """Render `entry` on its own daemon thread; a render that never returns cannot block interpreter exit."""
    future: Future[RenderedSection] = Future()

    def work() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(renderer.render(entry))
        except Exception as e:  # noqa: BLE001
            future.set_exception(e)

    threading.Thread(target=work, name="combine-render", daemon=True).start()
    return future


def render_in_order(
    entries: Iterable[FileEntry],
    renderer: Renderer,
    *,
    workers: int = 1,
    timeout: float = DEFAULT_RENDER_TIMEOUT,
) -> Iterator[tuple[FileEntry, RenderedSection]]:
    """Render entries concurrently and yield them back in submission order.

    At most `workers` renders are awaited at once. Each one starts on its own
    thread as soon as it enters that window, so its timeout runs from the
    start of its render. A render that times out leaves the window; its thread
    is abandoned and the next entry starts in its place.

    Args:
        entries (Iterable[FileEntry]): eligible files in discovery order
        renderer (Renderer): the renderer registry front-end
        workers (int): number of renders in flight
        timeout (float): seconds allowed for each render, from its start

    Yields:
        tuple[FileEntry, RenderedSection]: each entry with its section, in input order
    """
    pending = iter(entries)
    in_flight: deque[tuple[FileEntry, Future[RenderedSection], float]] = deque()

    def fill() -> None:
        while len(in_flight) < workers:
            entry = next(pending, None)
            if entry is None:
                return
            in_flight.append((entry, _start_render(renderer, entry), time.monotonic() + timeout))

    fill()
    while in_flight:
        entry, future, deadline = in_flight.popleft()
        try:
            section = future.result(timeout=max(0.0, deadline - time.monotonic()))
        except FutureTimeoutError:
            future.cancel()
            logger.info("Rendering %s timed out after %ss", entry.path, timeout)
            section = timed_out_section(entry, timeout)
        fill()
        yield entry.model_copy(update={"category": section.category}), section


def build_document(
    root: Path,
    config: TraversalConfig,
    capabilities: CapabilitySet,
    *,
    workers: int = 1,
    render_timeout: float = DEFAULT_RENDER_TIMEOUT,
    state: TraversalState | None = None,
    ignore_evaluator: GitIgnoreEvaluator | None = None,
) -> CombineResult:
    """Traverse `root` and write the combined Markdown document to ``config.output_path``.

    The eligible files are discovered first (stat only), so the tree preamble
    can be written before any section; rendering then streams section by
    section in discovery order.

    Args:
        root (Path): the directory to combine
        config (TraversalConfig): exclusion and size policy, output identity
        capabilities (CapabilitySet): rendering back-ends
        workers (int): number of rendering threads
        render_timeout (float): per-file rendering timeout in seconds
        state (TraversalState | None): per-run state; a fresh one if omitted
        ignore_evaluator (GitIgnoreEvaluator | None): override for the git ignore evaluator

    Returns:
        CombineResult: the output path, section count and diagnostics
    """
    root = root.resolve()
    state = state if state is not None else TraversalState()
    entries = list(discover(root, config, state=state, ignore_evaluator=ignore_evaluator))
    renderer = Renderer(capabilities)

    config.output_path.parent.mkdir(parents=True, exist_ok=True)
    with config.output_path.open("w", encoding="utf-8", newline="\n") as out:
        assembler = DocumentAssembler(out)
        assembler.write_preamble(root.name or str(root), [e.rel for e in entries])
        for entry, section in render_in_order(entries, renderer, workers=workers, timeout=render_timeout):
            if section.error:
                state.record(entry.path, DiagnosticKind.RENDER, section.error, log=False)
            assembler.append_section(section)

    return CombineResult(
        output_path=config.output_path,
        sections=assembler.sections_written,
        diagnostics=list(state.diagnostics),
    )
