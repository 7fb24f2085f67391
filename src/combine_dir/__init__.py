"""combine_dir: combine a directory tree into a single Markdown document."""

__version__ = "1.0.0"
