from __future__ import annotations

import codecs
import stat
from pathlib import Path
from typing import TYPE_CHECKING, Any

from combine_dir.config import PROBE_BYTES

if TYPE_CHECKING:
    from collections.abc import Sequence

_TEXT_BYTES = frozenset({7, 8, 9, 10, 12, 13, 27} | set(range(32, 127)))
_MAX_NON_TEXT_RATIO = 0.30


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


def is_regular_file(path: Path) -> bool:
    """Check if a file is regular (symlinks to regular files count).

    Args:
        path (Path): path to test.

    Returns:
        bool: True if the file is regular, False otherwise.
    """
    try:
        st = path.stat()
    except OSError:
        return False
    return stat.S_ISREG(st.st_mode)


def read_head(path: Path, nbytes: int = PROBE_BYTES) -> bytes:
    """Read the first `nbytes` bytes of a file.

    Raises:
        OSError: if the file cannot be opened or read.
    """
    with path.open("rb") as f:
        return f.read(nbytes)


def sniff_text_utf8(chunk: bytes) -> bool:
    """Check if a leading chunk of bytes decodes as UTF-8.

    The chunk may stop in the middle of a multi-byte sequence, so the decoder
    is not asked to finish.

    Args:
        chunk (bytes): leading bytes of a file.

    Returns:
        bool: True if the bytes are valid (possibly truncated) UTF-8.
    """
    try:
        codecs.getincrementaldecoder("utf-8")().decode(chunk, final=False)
    except UnicodeDecodeError:
        return False
    return True


def is_probably_text(chunk: bytes) -> bool:
    """Heuristically determine whether a leading chunk of bytes is text.

    NUL bytes mean binary. Otherwise valid UTF-8 is text, and so is any chunk
    where at most 30% of the bytes are outside printable ASCII and common
    control characters (covers latin-1 and similar single-byte encodings).

    Args:
        chunk (bytes): leading bytes of a file.

    Returns:
        bool: True if the file is probably text, False otherwise
    """
    if b"\x00" in chunk:
        return False
    if sniff_text_utf8(chunk):
        return True
    non_text = sum(b not in _TEXT_BYTES for b in chunk)
    return non_text / max(len(chunk), 1) <= _MAX_NON_TEXT_RATIO


def read_text(path: Path) -> str:
    """Read a whole file as UTF-8 text, falling back to latin-1 so no byte is lost."""
    data = path.read_bytes()
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def build_tree_lines(root_name: str, rel_paths: Sequence[str]) -> list[str]:
    """Build a visual tree representation of file paths.

    Args:
        root_name (str): the name to use for the root of the tree
        rel_paths (Sequence[str]): the list of file paths relative to the root, using POSIX separators (e.g. "src/main.py")

    Returns:
        list[str]: a list of strings representing the tree structure, suitable for printing
    """
    rels = sorted({p.strip("/").replace("\\", "/") for p in rel_paths if p.strip()})
    # Each node is (subdirectories, file names).
    tree: tuple[dict[str, Any], set[str]] = ({}, set())
    for rp in rels:
        dirs, files = tree
        *parents, leaf = rp.split("/")
        for part in parents:
            dirs, files = dirs.setdefault(part, ({}, set()))
        files.add(leaf)

    lines: list[str] = [root_name]

    def walk(node: tuple[dict[str, Any], set[str]], prefix: str) -> None:
        dirs, files = node
        entries: list[tuple[str, str, Any]] = []
        entries.extend(("dir", d, child) for d, child in dirs.items())
        entries.extend(("file", f, None) for f in files)
        entries.sort(key=lambda e: e[1])
        for idx, (kind, name, child) in enumerate(entries):
            last = idx == len(entries) - 1
            branch = "└── " if last else "├── "
            lines.append(prefix + branch + name + ("/" if kind == "dir" else ""))
            if kind == "dir":
                ext = "    " if last else "│   "
                walk(child, prefix + ext)

    walk(tree, "")
    return lines


def tree_summary(rel_paths: Sequence[str]) -> str:
    """Return the `tree`-style footer line, e.g. ``2 directories, 5 files``."""
    files = {p.strip("/") for p in rel_paths if p.strip()}
    dirs: set[str] = set()
    for rp in files:
        parts = rp.split("/")[:-1]
        for i in range(1, len(parts) + 1):
            dirs.add("/".join(parts[:i]))
    d_word = "directory" if len(dirs) == 1 else "directories"
    f_word = "file" if len(files) == 1 else "files"
    return f"{len(dirs)} {d_word}, {len(files)} {f_word}"
