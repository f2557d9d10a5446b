"""Configuration defaults, env vars, and runtime options for wd."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path


VERSION = "0.3.0"

DOCUMENT_NAME = "WHATDO.yaml"
DEFAULT_REMOTE = "origin"

_FALSE_VALUES = {"", "0", "false", "no", "off"}


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() not in _FALSE_VALUES


@dataclass
class Config:
    """Runtime configuration; env vars fill anything left at its default."""

    # Document
    document: str = ""

    # Git
    remote: str = ""
    default_branch: str = ""
    push: bool = True

    # Misc
    verbose: bool = False

    def __post_init__(self) -> None:
        if not self.document:
            self.document = os.environ.get("WHATDO_FILE") or DOCUMENT_NAME
        if not self.remote:
            self.remote = os.environ.get("WHATDO_REMOTE") or DEFAULT_REMOTE
        if not self.default_branch:
            self.default_branch = os.environ.get("WHATDO_DEFAULT_BRANCH", "")
        if _env_flag("WHATDO_NO_PUSH"):
            self.push = False

    def document_path(self, root: Path | None = None) -> Path:
        """Absolute path of the task document, relative paths anchored at *root*."""
        path = Path(self.document)
        if path.is_absolute():
            return path
        return (root or resolve_repo_root()) / path


def resolve_repo_root(cwd: Path | None = None) -> Path:
    """Return the git repository root, falling back to cwd."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            capture_output=True,
            text=True,
            check=True,
            cwd=cwd,
        )
        return Path(result.stdout.strip())
    except (subprocess.CalledProcessError, FileNotFoundError):
        return cwd or Path.cwd()
