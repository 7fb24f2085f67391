from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field

from combine_dir.config import DEFAULT_MAX_FILE_SIZE, DEFAULT_OUTPUT, DEFAULT_RENDER_TIMEOUT, TraversalConfig

ENV_FILE = find_dotenv(usecwd=True)
ENV_PREFIX = "COMBINE_DIR_"
CONFIG_FILENAME = ".combine-dir.yaml"

_LIST_FIELDS = {"exclude_dir", "exclude_extension"}


class Settings(BaseModel):
    """Configuration settings for the combine_dir module."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    root: Path = Field(default=Path(), description="Directory to combine.")
    output: Path = Field(default=Path(DEFAULT_OUTPUT), description="Markdown output file.")
    json_output: Path | None = Field(default=None, description="Optional JSON wrapper output file.")
    max_file_size: int = Field(default=DEFAULT_MAX_FILE_SIZE, gt=0, description="Skip files above this size.")
    exclude_dir: list[str] = Field(default_factory=list, description="Directory path substrings to skip.")
    exclude_extension: list[str] = Field(default_factory=list, description="File extensions to skip.")
    exclude_match: Literal["substring", "segment"] = Field(
        default="substring",
        description="How --exclude-dir entries are matched.",
    )
    verbose: bool = Field(default=False, description="Emit diagnostics to stderr.")
    respect_ignore_rules: bool = Field(default=False, description="Honour git ignore rules.")
    include_hidden: bool = Field(default=False, description="Include files and directories starting with a dot.")
    calculate_tokens: bool = Field(default=False, description="Print a token estimate.")
    highlight: Literal["fence", "ansi"] = Field(
        default="fence",
        description="Tag fences with the language, or embed ANSI highlighting.",
    )
    workers: int = Field(default=1, ge=1, description="Rendering threads.")
    render_timeout: float = Field(default=DEFAULT_RENDER_TIMEOUT, gt=0, description="Seconds per file render.")
    log_file: str = Field(default="", description="Log file path.")
    config: Path | None = Field(default=None, description="YAML file with default settings.")

    def to_traversal_config(self) -> TraversalConfig:
        """Freeze the traversal-relevant part of the settings.

        Relative output paths are anchored at the current working directory.

        Returns:
            TraversalConfig: the immutable snapshot used by the traversal engine
        """
        return TraversalConfig(
            output_path=self.output.resolve(),
            json_output_path=self.json_output.resolve() if self.json_output else None,
            max_file_size=self.max_file_size,
            exclude_dirs=self.exclude_dir,
            exclude_extensions=self.exclude_extension,
            respect_ignore_rules=self.respect_ignore_rules,
            exclude_match=self.exclude_match,
            include_hidden=self.include_hidden,
        )


def load_env_defaults(env_file: str | None = None, environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Collect ``COMBINE_DIR_*`` values from a `.env` file and the process environment.

    Process environment variables win over the `.env` file. List settings are
    given as comma-separated values.

    Args:
        env_file (str | None): the `.env` file to read; defaults to the one found from the cwd
        environ (dict[str, str] | None): environment mapping; defaults to ``os.environ``

    Returns:
        dict[str, Any]: raw setting values keyed by field name
    """
    env_file = ENV_FILE if env_file is None else env_file
    values: dict[str, str | None] = dict(dotenv_values(env_file)) if env_file else {}
    values.update(os.environ if environ is None else environ)

    out: dict[str, Any] = {}
    for name in Settings.model_fields:
        raw = values.get(ENV_PREFIX + name.upper())
        if raw is None or raw == "":
            continue
        if name in _LIST_FIELDS:
            out[name] = [v.strip() for v in raw.split(",") if v.strip()]
        else:
            out[name] = raw
    return out


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Read default settings from a YAML mapping.

    Keys may use dashes or underscores (``max-file-size`` or ``max_file_size``).

    Args:
        path (Path): the YAML file to read

    Raises:
        ValueError: if the document is not a mapping

    Returns:
        dict[str, Any]: raw setting values keyed by field name
    """
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        msg = f"{path}: expected a mapping of settings, got {type(data).__name__}"
        raise ValueError(msg)  # noqa: TRY004
    return {str(k).replace("-", "_"): v for k, v in data.items()}


def find_config_file(root: Path, explicit: Path | None = None) -> Path | None:
    """Return the YAML config to use: the explicit one, or `.combine-dir.yaml` in `root`."""
    if explicit is not None:
        return explicit
    candidate = root / CONFIG_FILENAME
    return candidate if candidate.is_file() else None
