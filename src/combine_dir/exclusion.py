from __future__ import annotations

import subprocess  # noqa: S404
from pathlib import Path
from typing import TYPE_CHECKING

from combine_dir.exceptions import CombineDirError
from combine_dir.logging import logger

if TYPE_CHECKING:
    from collections.abc import Set as AbstractSet

    from combine_dir.config import TraversalConfig
    from combine_dir.vcs import GitIgnoreEvaluator


def file_extension(path: Path) -> str:
    """Return the text after the final `.` of the file name, or "" if there is none."""
    name = path.name
    return name.rsplit(".", 1)[1] if "." in name else ""


def contains_segments(parts: tuple[str, ...], needle: tuple[str, ...]) -> bool:
    """Check whether `needle` appears as a contiguous run of path segments in `parts`."""
    n = len(needle)
    if not n:
        return False
    return any(parts[i : i + n] == needle for i in range(len(parts) - n + 1))


class ExclusionPolicy:
    """Decide whether a directory or a file is skipped.

    Every decision comes with a human-readable reason so the traversal can
    record it as a diagnostic; the ``should_skip_*`` helpers only answer yes/no.
    """

    def __init__(
        self,
        config: TraversalConfig,
        root: Path,
        ignore_evaluator: GitIgnoreEvaluator | None = None,
    ) -> None:
        self.config = config
        self.root = root.resolve()
        self.ignore_evaluator = ignore_evaluator

    def is_ignored(self, path: Path) -> bool:
        """Consult the ignore rules; any evaluator error counts as "not ignored"."""
        if self.ignore_evaluator is None:
            return False
        try:
            return self.ignore_evaluator.is_ignored(path)
        except (CombineDirError, OSError, subprocess.SubprocessError) as e:
            logger.info("ignore rule evaluation failed for %s: %s", path, e)
            return False

    def is_hidden(self, path: Path) -> bool:
        """Check whether `path` is a dot-entry below the root, unless hidden entries are included."""
        return not self.config.include_hidden and path.name.startswith(".") and path != self.root

    def matches_excluded_dir(self, canonical: Path) -> str | None:
        """Return the exclude entry matching `canonical`, if any."""
        if self.config.exclude_match == "segment":
            try:
                parts = canonical.relative_to(self.root).parts
            except ValueError:
                parts = canonical.parts
            for ex in sorted(self.config.exclude_dirs):
                if contains_segments(parts, Path(ex).parts):
                    return ex
            return None
        text = str(canonical)
        for ex in sorted(self.config.exclude_dirs):
            if ex in text:
                return ex
        return None

    def directory_skip_reason(self, path: Path, visited: AbstractSet[Path]) -> str | None:
        """Explain why the directory at `path` must not be entered, or return None.

        Args:
            path (Path): the directory as reached by the walk (not resolved)
            visited (AbstractSet[Path]): canonical identities already entered

        Returns:
            str | None: the skip reason, or None to enter the directory
        """
        if self.is_hidden(path):
            return "hidden directory"
        if self.config.respect_ignore_rules and self.is_ignored(path):
            return "excluded by ignore rules"
        if path.is_symlink():
            return "symbolic link to a directory, not followed"
        canonical = path.resolve()
        matched = self.matches_excluded_dir(canonical)
        if matched is not None:
            return f"matches excluded directory {matched!r}"
        if canonical in visited:
            return "already visited"
        return None

    def should_skip_directory(self, path: Path, visited: AbstractSet[Path]) -> bool:
        return self.directory_skip_reason(path, visited) is not None

    def file_skip_reason(self, path: Path, extension: str | None = None) -> str | None:
        """Explain why the file at `path` must not be rendered, or return None.

        Checks, in order: self-reference to an output of this run, hidden
        names, the extension denylist, then the ignore rules.

        Args:
            path (Path): the file as reached by the walk
            extension (str | None): the file extension, computed from `path` if omitted

        Returns:
            str | None: the skip reason, or None to keep the file
        """
        if path.resolve() in self.config.self_paths:
            return "output file of this run"
        if self.is_hidden(path):
            return "hidden file"
        ext = file_extension(path) if extension is None else extension
        if ext.lower() in self.config.exclude_extensions:
            return f"excluded extension {ext!r}"
        if self.config.respect_ignore_rules and self.is_ignored(path):
            return "excluded by ignore rules"
        return None

    def should_skip_file(self, path: Path, extension: str | None = None) -> bool:
        return self.file_skip_reason(path, extension) is not None
