"""
combine_dir: combine a directory tree into one Markdown document.

Overview
--------
The output starts with a tree of the eligible files, followed by one section
per file (``## <relative path>`` and a fenced block). The fence content depends
on what the file holds:

- source code is fenced with its language (or ANSI highlighted),
- JSON is pretty-printed,
- PDF text and Word documents are extracted,
- images are described by their metadata,
- empty, binary and unsupported files get a one-line note.

Entries whose name starts with a dot (``.git``, ``.env``) are skipped unless
``--include-hidden`` is given. Directories can be skipped by substring
(``-e``), files by extension (``-x``) or by size (``-s``). With ``-g`` the git
ignore rules apply, using ``git ls-files`` when the root is a work tree.

Defaults can be provided by a ``.combine-dir.yaml`` file in the root (or
``--config``), and by ``COMBINE_DIR_*`` variables (or a ``.env`` file).

Usage
-----
Run ``combine-dir --help`` for full options. Common examples:
    - Combine the current directory:
        uv run combine-dir

    - Skip build output and lock files, honour .gitignore:
        uv run combine-dir src -e build -e .venv -x lock -g -o context.md

    - Also produce JSON and print a token estimate:
        uv run combine-dir -j context.json -t
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from combine_dir import __version__
from combine_dir.capabilities import default_capabilities
from combine_dir.config import DEFAULT_MAX_FILE_SIZE, DEFAULT_OUTPUT
from combine_dir.exceptions import MissingCapabilityError
from combine_dir.logging import logger, setup_logging
from combine_dir.output_construction import build_document
from combine_dir.postprocess import apply_postprocessors
from combine_dir.settings import Settings, find_config_file, load_env_defaults, load_yaml_config
from combine_dir.vcs import git_available

if TYPE_CHECKING:
    from collections.abc import Sequence


def build_parser() -> argparse.ArgumentParser:
    # Options default to SUPPRESS so only flags given on the command line
    # override the YAML and environment layers.
    p = argparse.ArgumentParser(
        prog="combine-dir",
        description="Combine a directory tree into a single Markdown document.",
        argument_default=argparse.SUPPRESS,
    )
    p.add_argument("root", nargs="?", type=Path, help="Directory to combine (default: current directory).")
    p.add_argument(
        "-o",
        "--output",
        type=Path,
        help=f"Output Markdown file (default: {DEFAULT_OUTPUT}).",
    )
    p.add_argument("-j", "--json-output", type=Path, help="Also write the document wrapped in JSON.")
    p.add_argument(
        "-s",
        "--max-file-size",
        type=int,
        help=f"Skip files larger than this many bytes (default: {DEFAULT_MAX_FILE_SIZE}).",
    )
    p.add_argument(
        "-e",
        "--exclude-dir",
        action="append",
        help="Skip directories whose path contains this text (repeatable).",
    )
    p.add_argument(
        "-x",
        "--exclude-extension",
        action="append",
        help="Skip files with this extension, with or without the dot (repeatable).",
    )
    p.add_argument(
        "--exclude-match",
        choices=["substring", "segment"],
        help="Match --exclude-dir as a path substring (default) or as whole path segments.",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Report skipped and degraded files on stderr.")
    p.add_argument(
        "-g",
        "--respect-ignore-rules",
        action="store_true",
        help="Honour git ignore rules (requires git).",
    )
    p.add_argument(
        "--include-hidden",
        action="store_true",
        help="Also combine files and directories whose name starts with a dot (skipped by default).",
    )
    p.add_argument("-t", "--calculate-tokens", action="store_true", help="Print an estimated token count.")
    p.add_argument(
        "--highlight",
        choices=["fence", "ansi"],
        help="Tag source fences with their language (default) or embed ANSI highlighting.",
    )
    p.add_argument("--workers", type=int, help="Number of rendering threads (default: 1).")
    p.add_argument("--render-timeout", type=float, help="Seconds allowed to render one file.")
    p.add_argument("--config", type=Path, help="YAML defaults file (default: <root>/.combine-dir.yaml).")
    p.add_argument("--log-file", type=str, help="Write diagnostics to this file instead of stderr.")
    p.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")
    return p


def merge_layers(*layers: dict[str, Any]) -> dict[str, Any]:
    """Merge setting layers, later layers winning; list settings are replaced, not extended."""
    merged: dict[str, Any] = {}
    for layer in layers:
        merged.update(layer)
    return merged


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    """Parse the command line and merge it over the YAML and environment defaults.

    Args:
        argv (Sequence[str] | None): arguments, ``sys.argv[1:]`` if None

    Returns:
        Settings: the validated settings
    """
    cli = vars(build_parser().parse_args(argv))
    env = load_env_defaults()
    root = Path(cli.get("root", env.get("root", ".")))
    explicit = cli.get("config", env.get("config"))
    config_file = find_config_file(root, Path(explicit) if explicit else None)
    yaml_layer = load_yaml_config(config_file) if config_file is not None else {}
    return Settings(**merge_layers(env, yaml_layer, cli))


def main(argv: Sequence[str] | None = None) -> int:
    settings = parse_args(argv)
    setup_logging(settings.log_file or None, verbose=settings.verbose)

    root = settings.root.resolve()
    if not root.is_dir():
        print(f"Error: {settings.root} is not a directory", file=sys.stderr)
        return 1

    capabilities = default_capabilities(settings.highlight)
    try:
        capabilities.ensure_available()
        if settings.respect_ignore_rules and not git_available():
            logger.error("missing_capabilities", missing=["git"])
            raise MissingCapabilityError(missing=("git",))
    except MissingCapabilityError as e:
        print(f"Error: {e}. Please install them before running combine-dir.", file=sys.stderr)
        return 1

    config = settings.to_traversal_config()
    result = build_document(
        root,
        config,
        capabilities,
        workers=settings.workers,
        render_timeout=settings.render_timeout,
    )
    logger.info("Wrote %s: %d sections, %d diagnostics", result.output_path, result.sections, len(result.diagnostics))

    result = apply_postprocessors(
        result,
        json_path=config.json_output_path,
        calculate_tokens=settings.calculate_tokens,
    )
    if result.tokens is not None:
        print(f"Estimated tokens: {result.tokens}")

    print(f"Done! Combined output is in {settings.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
