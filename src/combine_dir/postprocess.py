"""Transformations applied once to the finished document."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from combine_dir.output_construction import CombineResult

JSON_CONTENT_FIELD = "content"


def estimate_tokens(text: str) -> int:
    """Approximate the token count of `text` as four tokens for every three words."""
    return int(len(text.split()) * 4 / 3)


def wrap_json(text: str) -> str:
    """Wrap a document as a JSON object with a single field holding its full text."""
    return json.dumps({JSON_CONTENT_FIELD: text}, ensure_ascii=False, indent=2) + "\n"


def unwrap_json(payload: str) -> str:
    return json.loads(payload)[JSON_CONTENT_FIELD]


def write_json_output(markdown_path: Path, json_path: Path) -> Path:
    """Write the JSON wrapper of the Markdown document at `markdown_path`.

    Args:
        markdown_path (Path): the finished Markdown document
        json_path (Path): where to write the JSON wrapper

    Returns:
        Path: `json_path`
    """
    text = markdown_path.read_text(encoding="utf-8")
    json_path.parent.mkdir(parents=True, exist_ok=True)
    json_path.write_text(wrap_json(text), encoding="utf-8")
    return json_path


def apply_postprocessors(
    result: CombineResult,
    *,
    json_path: Path | None = None,
    calculate_tokens: bool = False,
) -> CombineResult:
    """Run the requested post-processors once over the finished document.

    Args:
        result (CombineResult): the outcome of the combine run
        json_path (Path | None): write the JSON wrapper here if given
        calculate_tokens (bool): estimate the token count of the document

    Returns:
        CombineResult: `result` with the JSON path and token estimate filled in
    """
    update: dict[str, object] = {}
    if json_path is not None:
        update["json_output_path"] = write_json_output(result.output_path, json_path)
    if calculate_tokens:
        update["tokens"] = estimate_tokens(result.output_path.read_text(encoding="utf-8"))
    return result.model_copy(update=update)
