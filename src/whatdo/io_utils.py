"""UTF-8 text file I/O that reports failures as IOFailure."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from whatdo.errors import IOFailure

PathLike = Path | str


def read_text(path: PathLike) -> str:
    p = Path(path)
    try:
        return p.read_text(encoding="utf-8")
    except OSError as e:
        raise IOFailure(f"Cannot read {p}: {e.strerror or e}") from e


def write_text(path: PathLike, text: str) -> None:
    """Replace *path* with *text* atomically (temp file in the same directory)."""
    p = Path(path)
    try:
        fd, tmp = tempfile.mkstemp(prefix=f".{p.name}.", dir=p.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
                f.write(text)
            os.chmod(tmp, p.stat().st_mode if p.exists() else 0o644)
            os.replace(tmp, p)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise IOFailure(f"Cannot write {p}: {e.strerror or e}") from e
