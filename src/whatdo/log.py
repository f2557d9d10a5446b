"""Console output for wd, colored via Rich.

Besides the usual levels there are two workflow helpers: :func:`step` reports
progress through a start/resolve/finish sequence, and :func:`failure` prints a
:class:`~whatdo.errors.WhatdoError` with the step, branch and current-task
context it was raised with.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape

if TYPE_CHECKING:
    from whatdo.errors import WhatdoError

console = Console(highlight=False)
_err_console = Console(highlight=False, stderr=True)

_verbose = False


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = enabled


def info(msg: str) -> None:
    console.print(f"[blue]\\[INFO][/blue] {escape(msg)}")


def success(msg: str) -> None:
    console.print(f"[green]\\[OK][/green] {escape(msg)}")


def warn(msg: str) -> None:
    console.print(f"[yellow]\\[WARN][/yellow] {escape(msg)}")


def error(msg: str) -> None:
    _err_console.print(f"[red]\\[ERROR][/red] {escape(msg)}")


def debug(msg: str) -> None:
    if _verbose:
        console.print(f"[dim]\\[DEBUG] {escape(msg)}[/dim]")


def step(name: str, msg: str) -> None:
    """One workflow step, e.g. ``step("merge", "docs -> main")``."""
    console.print(f"[cyan]\\[{escape(name)}][/cyan] {escape(msg)}")


def failure(err: WhatdoError) -> None:
    """Print *err* on stderr; workflow context goes on a dimmed second line."""
    error(err.message)
    if err.step is None:
        return
    context = f"step: {err.step}  branch: {err.branch or '-'}  current: {err.current or '-'}"
    _err_console.print(f"  [dim]{escape(context)}[/dim]")
    if err.recoverable:
        _err_console.print("  [yellow]Resolve the problem and re-run the same command to continue.[/yellow]")
