from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CombineDirError(Exception):
    """Base exception for errors in the combine_dir module."""

    def __str__(self) -> str:
        return getattr(self, "message", self.__class__.__name__)


@dataclass(frozen=True)
class MissingCapabilityError(CombineDirError):
    """Raised at startup when a required rendering capability is unavailable."""

    missing: tuple[str, ...]

    @property
    def message(self) -> str:
        return "Missing required capabilities: " + ", ".join(self.missing)


@dataclass(frozen=True)
class GitCommandError(CombineDirError):
    """Raised when a git command fails."""

    command: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def message(self) -> str:
        return f"`{self.command}` exited with {self.returncode}: {self.stderr.strip()}"


@dataclass(frozen=True)
class NotAGitRepositoryError(CombineDirError):
    """Raised when the specified directory is not inside a Git work tree."""

    folder: Path
    message: str = "The specified directory is not a Git repository."


@dataclass(frozen=True)
class RenderError(CombineDirError):
    """Raised by a capability provider when it cannot render a file."""

    capability: str
    path: Path
    reason: str

    @property
    def message(self) -> str:
        return f"{self.capability} failed for {self.path.name}: {self.reason}"
