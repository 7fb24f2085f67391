"""Directory traversal.

The walk is depth-first and pre-order, with children visited in name order so
the output is reproducible. All per-run mutable state (the visited set and the
diagnostics) lives in a :class:`TraversalState` owned by one run.
"""

from __future__ import annotations

import os
import subprocess  # noqa: S404
from pathlib import Path
from typing import TYPE_CHECKING

from combine_dir.config import Diagnostic, DiagnosticKind, EntryKind, FileEntry
from combine_dir.exceptions import CombineDirError
from combine_dir.exclusion import ExclusionPolicy, file_extension
from combine_dir.file_manipulation import is_regular_file, relpath
from combine_dir.logging import logger
from combine_dir.vcs import GitIgnoreEvaluator, git_ls_files

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

    from combine_dir.config import TraversalConfig


class TraversalState:
    """Visited directories and diagnostics of one traversal run."""

    def __init__(self) -> None:
        self.visited: set[Path] = set()
        self.diagnostics: list[Diagnostic] = []

    def record(self, path: Path, kind: DiagnosticKind, reason: str, *, log: bool = True) -> None:
        self.diagnostics.append(Diagnostic(path=path, kind=kind, reason=reason))
        if log:
            logger.info("Skipping %s %s: %s", kind.value, path, reason)


class Traverser:
    """Produce the eligible files below `root`, in discovery order."""

    def __init__(
        self,
        root: Path,
        config: TraversalConfig,
        *,
        policy: ExclusionPolicy | None = None,
        state: TraversalState | None = None,
    ) -> None:
        self.root = root.resolve()
        self.config = config
        self.policy = policy or ExclusionPolicy(config, self.root)
        self.state = state if state is not None else TraversalState()

    def traverse(self) -> Iterator[FileEntry]:
        """Walk the filesystem from the root."""
        yield from self._walk(self.root)

    def _enter(self, directory: Path) -> bool:
        reason = self.policy.directory_skip_reason(directory, self.state.visited)
        if reason is not None:
            self.state.record(directory, DiagnosticKind.DIRECTORY, reason)
            return False
        self.state.visited.add(directory.resolve())
        return True

    def _walk(self, directory: Path) -> Iterator[FileEntry]:
        if not self._enter(directory):
            return
        try:
            with os.scandir(directory) as it:
                children = sorted(it, key=lambda e: e.name)
        except OSError as e:
            self.state.record(directory, DiagnosticKind.DIRECTORY, f"cannot be read: {e.strerror or e}")
            return

        for child in children:
            path = Path(child.path)
            try:
                is_dir = child.is_dir()
                is_file = not is_dir and child.is_file()
            except OSError as e:
                self.state.record(path, DiagnosticKind.FILE, f"cannot be inspected: {e.strerror or e}")
                continue
            if is_dir:
                yield from self._walk(path)
            elif is_file:
                entry = self._process_file(path)
                if entry is not None:
                    yield entry
            else:
                self.state.record(path, DiagnosticKind.FILE, "not a regular file")

    def _process_file(self, path: Path) -> FileEntry | None:
        reason = self.policy.file_skip_reason(path, file_extension(path))
        if reason is not None:
            self.state.record(path, DiagnosticKind.FILE, reason)
            return None
        try:
            size = path.stat().st_size
        except OSError as e:
            self.state.record(path, DiagnosticKind.FILE, f"cannot be inspected: {e.strerror or e}")
            return None
        if size > self.config.max_file_size:
            self.state.record(
                path,
                DiagnosticKind.FILE,
                f"file size ({size} bytes) exceeds maximum ({self.config.max_file_size} bytes)",
            )
            return None
        logger.info("Processing %s", path)
        return FileEntry(
            path=path,
            rel=relpath(path, self.root),
            kind=EntryKind.SYMLINK if path.is_symlink() else EntryKind.FILE,
            size=size,
        )

    def traverse_listed(self, files: Iterable[Path]) -> Iterator[FileEntry]:
        """Yield the eligible files among an externally produced listing.

        Files are ordered by path components, which matches the order of the
        filesystem walk. Every ancestor directory goes through the directory
        rules once; a skipped ancestor hides everything below it.

        Args:
            files (Iterable[Path]): files below the root (e.g. from `git ls-files`)

        Yields:
            FileEntry: the eligible files in discovery order
        """
        decided: dict[Path, bool] = {}

        def allowed(directory: Path) -> bool:
            if directory not in decided:
                decided[directory] = self._enter(directory)
            return decided[directory]

        def key(p: Path) -> tuple[str, ...]:
            return Path(relpath(p, self.root)).parts

        for path in sorted(set(files), key=key):
            parts = key(path)
            ancestors = [self.root.joinpath(*parts[:i]) for i in range(len(parts))]
            if not all(allowed(d) for d in ancestors):
                continue
            if path.is_dir():
                reason = "symbolic link to a directory, not followed" if path.is_symlink() else "not a regular file"
                self.state.record(path, DiagnosticKind.DIRECTORY, reason)
                continue
            if not is_regular_file(path):
                self.state.record(path, DiagnosticKind.FILE, "listed but missing or not a regular file")
                continue
            entry = self._process_file(path)
            if entry is not None:
                yield entry


def discover(
    root: Path,
    config: TraversalConfig,
    *,
    state: TraversalState | None = None,
    lister: Callable[[Path], list[Path]] | None = None,
    ignore_evaluator: GitIgnoreEvaluator | None = None,
) -> Iterator[FileEntry]:
    """Produce the eligible files of `root` according to `config`.

    With ignore rules enabled the git listing is preferred, since it already
    applies the ignore rules. When listing fails (not a work tree, git missing)
    the filesystem is walked and each entry is checked with `git check-ignore`.

    Args:
        root (Path): the directory to combine
        config (TraversalConfig): the traversal configuration
        state (TraversalState | None): state to fill; a fresh one if omitted
        lister (Callable[[Path], list[Path]] | None): tracked-file lister, `git ls-files` if omitted
        ignore_evaluator (GitIgnoreEvaluator | None): evaluator for the fallback walk

    Yields:
        FileEntry: the eligible files in discovery order
    """
    root = root.resolve()
    state = state if state is not None else TraversalState()
    if not config.respect_ignore_rules:
        yield from Traverser(root, config, state=state).traverse()
        return

    try:
        listed = (lister or git_ls_files)(root)
    except (CombineDirError, OSError, subprocess.SubprocessError) as e:
        logger.info("Listing tracked files failed, walking the filesystem: %s", e)
        listed = None

    if listed is None:
        evaluator = ignore_evaluator or GitIgnoreEvaluator(root)
        policy = ExclusionPolicy(config, root, ignore_evaluator=evaluator)
        yield from Traverser(root, config, policy=policy, state=state).traverse()
    else:
        yield from Traverser(root, config, state=state).traverse_listed(listed)
