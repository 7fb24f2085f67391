from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from combine_dir.config import DiagnosticKind, EntryKind, TraversalConfig
from combine_dir.exceptions import NotAGitRepositoryError
from combine_dir.traversal import TraversalState, Traverser, discover

if TYPE_CHECKING:
    from collections.abc import Iterator

    from pytest_mock import MockerFixture


def _tree(root: Path, files: dict[str, bytes | str]) -> Path:
    for rel, data in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(data, str):
            path.write_text(data, encoding="utf-8")
        else:
            path.write_bytes(data)
    return root


def _config(root: Path, **kwargs: object) -> TraversalConfig:
    return TraversalConfig(output_path=root / "combined_output.md", **kwargs)  # type: ignore[arg-type]


@pytest.mark.unit
def test_walk_is_depth_first_in_name_order(tmp_path: Path) -> None:
    root = _tree(tmp_path / "proj", {"b.txt": "b", "a/z.txt": "z", "a/c/d.txt": "d", "c.txt": "c"})

    rels = [e.rel for e in Traverser(root, _config(root)).traverse()]

    assert rels == ["a/c/d.txt", "a/z.txt", "b.txt", "c.txt"]


@pytest.mark.unit
def test_symlinked_directory_is_not_followed(tmp_path: Path) -> None:
    _tree(tmp_path / "outside", {"secret.txt": "nope"})
    root = _tree(tmp_path / "proj", {"keep.txt": "yes"})
    (root / "link").symlink_to(Path("..") / "outside", target_is_directory=True)
    state = TraversalState()

    rels = [e.rel for e in Traverser(root, _config(root), state=state).traverse()]

    assert rels == ["keep.txt"]
    skipped = [d for d in state.diagnostics if d.kind is DiagnosticKind.DIRECTORY]
    assert [(d.path.name, d.reason) for d in skipped] == [("link", "symbolic link to a directory, not followed")]


@pytest.mark.unit
def test_symlinked_file_is_processed(tmp_path: Path) -> None:
    root = _tree(tmp_path / "proj", {"real.txt": "data"})
    (root / "alias.txt").symlink_to(root / "real.txt")

    entries = list(Traverser(root, _config(root)).traverse())

    assert [(e.rel, e.kind) for e in entries] == [("alias.txt", EntryKind.SYMLINK), ("real.txt", EntryKind.FILE)]


@pytest.mark.unit
def test_excluded_extension_is_skipped(tmp_path: Path) -> None:
    root = _tree(tmp_path / "proj", {"app.log": "log", "app.txt": "txt"})

    rels = [e.rel for e in Traverser(root, _config(root, exclude_extensions={"log"})).traverse()]

    assert rels == ["app.txt"]


@pytest.mark.unit
def test_output_file_is_never_an_entry(tmp_path: Path) -> None:
    root = _tree(tmp_path / "proj", {"combined_output.md": "# old run", "a.txt": "a"})

    rels = [e.rel for e in Traverser(root, _config(root)).traverse()]

    assert rels == ["a.txt"]


@pytest.mark.unit
def test_size_limit_is_inclusive(tmp_path: Path) -> None:
    root = _tree(tmp_path / "proj", {"fits.txt": "12345", "big.txt": "123456"})
    state = TraversalState()

    rels = [e.rel for e in Traverser(root, _config(root, max_file_size=5), state=state).traverse()]

    assert rels == ["fits.txt"]
    assert [d.reason for d in state.diagnostics] == ["file size (6 bytes) exceeds maximum (5 bytes)"]


@pytest.mark.unit
def test_excluded_directory_hides_its_subtree(tmp_path: Path) -> None:
    root = _tree(tmp_path / "proj", {"node_modules/x/y.js": "y", "src/app.js": "a"})

    rels = [e.rel for e in Traverser(root, _config(root, exclude_dirs={"node_modules"})).traverse()]

    assert rels == ["src/app.js"]


@pytest.mark.unit
def test_non_regular_entries_are_recorded(tmp_path: Path) -> None:
    root = _tree(tmp_path / "proj", {"a.txt": "a"})
    (root / "dangling").symlink_to(root / "missing")
    state = TraversalState()

    rels = [e.rel for e in Traverser(root, _config(root), state=state).traverse()]

    assert rels == ["a.txt"]
    assert [(d.path.name, d.reason) for d in state.diagnostics] == [("dangling", "not a regular file")]


@pytest.mark.unit
def test_visited_set_prevents_reentry(tmp_path: Path) -> None:
    root = _tree(tmp_path / "proj", {"a/b.txt": "b"})
    state = TraversalState()
    traverser = Traverser(root, _config(root), state=state)

    first = [e.rel for e in traverser.traverse()]
    second = [e.rel for e in traverser.traverse()]

    assert first == ["a/b.txt"]
    assert second == []
    assert state.diagnostics[-1].reason == "already visited"


@pytest.mark.unit
def test_traverse_listed_orders_by_components_and_applies_directory_rules(tmp_path: Path) -> None:
    root = _tree(
        tmp_path / "proj",
        {"b.txt": "b", "a/z.txt": "z", "a-b.txt": "ab", "build/out.txt": "o", "app.log": "l"},
    )
    listed = [root / "b.txt", root / "a-b.txt", root / "a/z.txt", root / "build/out.txt", root / "app.log"]
    config = _config(root, exclude_dirs={"build"}, exclude_extensions={"log"})

    rels = [e.rel for e in Traverser(root, config).traverse_listed(listed)]

    assert rels == ["a/z.txt", "a-b.txt", "b.txt"]


@pytest.mark.unit
def test_traverse_listed_records_missing_files(tmp_path: Path) -> None:
    root = _tree(tmp_path / "proj", {"a.txt": "a"})
    state = TraversalState()

    traverser = Traverser(root, _config(root), state=state)

    rels = [e.rel for e in traverser.traverse_listed([root / "gone.txt", root / "a.txt"])]

    assert rels == ["a.txt"]
    assert state.diagnostics[0].reason == "listed but missing or not a regular file"


@pytest.mark.unit
def test_discover_without_ignore_rules_does_not_call_git(tmp_path: Path, mocker: MockerFixture) -> None:
    root = _tree(tmp_path / "proj", {"a.txt": "a"})
    lister = mocker.Mock()

    rels = [e.rel for e in discover(root, _config(root), lister=lister)]

    assert rels == ["a.txt"]
    lister.assert_not_called()


@pytest.mark.unit
def test_discover_uses_listing_when_available(tmp_path: Path, mocker: MockerFixture) -> None:
    root = _tree(tmp_path / "proj", {"tracked.txt": "t", "ignored.txt": "i"})
    lister = mocker.Mock(return_value=[root.resolve() / "tracked.txt"])

    rels = [e.rel for e in discover(root, _config(root, respect_ignore_rules=True), lister=lister)]

    assert rels == ["tracked.txt"]


@pytest.mark.unit
def test_discover_falls_back_to_walk_with_ignore_evaluator(tmp_path: Path, mocker: MockerFixture) -> None:
    root = _tree(tmp_path / "proj", {"keep.txt": "k", "skip.txt": "s"})
    lister = mocker.Mock(side_effect=NotAGitRepositoryError(folder=root))
    evaluator = mocker.Mock()
    evaluator.is_ignored.side_effect = lambda p: Path(p).name == "skip.txt"
    state = TraversalState()

    rels = [
        e.rel
        for e in discover(
            root,
            _config(root, respect_ignore_rules=True),
            state=state,
            lister=lister,
            ignore_evaluator=evaluator,
        )
    ]

    assert rels == ["keep.txt"]
    assert [(d.path.name, d.reason) for d in state.diagnostics] == [("skip.txt", "excluded by ignore rules")]


@pytest.mark.unit
def test_walk_skips_hidden_entries_by_default(tmp_path: Path) -> None:
    root = _tree(
        tmp_path / "proj",
        {".git/HEAD": "ref: refs/heads/main", ".git/config": "[core]", ".env": "TOKEN=x", "app.py": "pass"},
    )
    state = TraversalState()

    rels = [e.rel for e in Traverser(root, _config(root), state=state).traverse()]

    assert rels == ["app.py"]
    assert [(d.path.name, d.reason) for d in state.diagnostics] == [
        (".env", "hidden file"),
        (".git", "hidden directory"),
    ]


@pytest.mark.unit
def test_walk_includes_hidden_entries_on_request(tmp_path: Path) -> None:
    root = _tree(tmp_path / "proj", {".github/ci.yml": "on: push", ".env": "TOKEN=x", "app.py": "pass"})

    rels = [e.rel for e in Traverser(root, _config(root, include_hidden=True)).traverse()]

    assert rels == [".env", ".github/ci.yml", "app.py"]


@pytest.mark.unit
def test_traverse_listed_skips_hidden_entries(tmp_path: Path) -> None:
    root = _tree(tmp_path / "proj", {".github/ci.yml": "on: push", ".gitignore": "*.log", "app.py": "pass"})
    listed = [root / ".github/ci.yml", root / ".gitignore", root / "app.py"]

    rels = [e.rel for e in Traverser(root, _config(root)).traverse_listed(listed)]

    assert rels == ["app.py"]


@pytest.mark.unit
def test_unreadable_directory_is_recorded_and_siblings_are_kept(tmp_path: Path, mocker: MockerFixture) -> None:
    root = _tree(tmp_path / "proj", {"a.txt": "a", "locked/secret.txt": "s", "z.txt": "z"})
    real_scandir = os.scandir

    def scandir(path: str | os.PathLike[str]) -> Iterator[os.DirEntry[str]]:
        if Path(path).name == "locked":
            raise PermissionError(13, "Permission denied", str(path))
        return real_scandir(path)

    mocker.patch("combine_dir.traversal.os.scandir", side_effect=scandir)
    state = TraversalState()

    rels = [e.rel for e in Traverser(root, _config(root), state=state).traverse()]

    assert rels == ["a.txt", "z.txt"]
    assert [(d.kind, d.path.name, d.reason) for d in state.diagnostics] == [
        (DiagnosticKind.DIRECTORY, "locked", "cannot be read: Permission denied"),
    ]
