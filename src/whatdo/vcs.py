"""Branch operations used by the workflow: a git backend and an in-memory fake."""

from __future__ import annotations

import subprocess
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from whatdo import log
from whatdo.errors import (
    BranchAlreadyExists,
    MergeConflict,
    VCSFailure,
    WhatdoError,
    looks_like_merge_conflict,
)


class VCSGateway(Protocol):
    def create_branch(self, name: str) -> None: ...

    def checkout(self, name: str) -> None: ...

    def current_branch(self) -> str: ...

    def branch_exists(self, name: str) -> bool: ...

    def default_branch(self) -> str: ...

    def has_remote(self) -> bool: ...

    def has_uncommitted_changes(self) -> bool: ...

    def dirty_entries(self) -> list[str]: ...

    def commit(self, message: str, paths: Iterable[Path] = ()) -> None: ...

    def push(self, branch: str) -> None: ...

    def merge(self, source: str, into: str) -> None: ...

    def delete_branch(self, name: str, remote: bool = False) -> None: ...


# ── git ──────────────────────────────────────────────────────────────


class GitGateway:
    """Runs ``git`` in *cwd*; every failure raises VCSFailure with git's stderr."""

    def __init__(self, cwd: Path | None = None, remote: str = "origin", default: str = "") -> None:
        self.cwd = cwd
        self.remote = remote
        self._default = default

    def _git(self, *args: str) -> subprocess.CompletedProcess[str]:
        log.debug(f"git {' '.join(args)}")
        try:
            return subprocess.run(
                ["git", *args],
                capture_output=True,
                text=True,
                cwd=self.cwd,
            )
        except FileNotFoundError as e:
            raise VCSFailure(args[0], "git executable not found") from e

    def _run(self, *args: str) -> str:
        r = self._git(*args)
        if r.returncode != 0:
            raise VCSFailure(" ".join(args), (r.stderr or r.stdout).strip())
        return r.stdout.strip()

    def current_branch(self) -> str:
        return self._run("rev-parse", "--abbrev-ref", "HEAD")

    def branch_exists(self, name: str) -> bool:
        r = self._git("show-ref", "--verify", "--quiet", f"refs/heads/{name}")
        return r.returncode == 0

    def default_branch(self) -> str:
        if self._default:
            return self._default
        r = self._git("rev-parse", "--abbrev-ref", f"{self.remote}/HEAD")
        prefix = f"{self.remote}/"
        if r.returncode == 0 and r.stdout.strip().startswith(prefix):
            self._default = r.stdout.strip()[len(prefix):]
            return self._default
        for candidate in ("main", "master"):
            if self.branch_exists(candidate):
                self._default = candidate
                return candidate
        return self.current_branch()

    def has_remote(self) -> bool:
        r = self._git("remote")
        return self.remote in r.stdout.split()

    def dirty_entries(self) -> list[str]:
        """Concise entries from ``git status --porcelain``."""
        out = self._run("status", "--porcelain")
        return [line.strip() for line in out.splitlines() if line.strip()]

    def has_uncommitted_changes(self) -> bool:
        return bool(self.dirty_entries())

    def create_branch(self, name: str) -> None:
        if self.branch_exists(name):
            raise BranchAlreadyExists(name)
        self._run("checkout", "-b", name)

    def checkout(self, name: str) -> None:
        self._run("checkout", name)

    def commit(self, message: str, paths: Iterable[Path] = ()) -> None:
        """Commit *paths* only (everything staged when no paths are given)."""
        specs = [str(p) for p in paths]
        if specs:
            self._run("add", "--", *specs)
            self._run("commit", "-m", message, "--", *specs)
        else:
            self._run("commit", "-m", message)

    def push(self, branch: str) -> None:
        self._run("push", "-u", self.remote, branch)

    def conflicted_files(self) -> list[str]:
        r = self._git("diff", "--name-only", "--diff-filter=U")
        if r.returncode != 0:
            return []
        return [f.strip() for f in r.stdout.splitlines() if f.strip()]

    def merge(self, source: str, into: str) -> None:
        """Check out *into* and merge *source*.

        A conflicted merge is left in place for the user to resolve with git.
        """
        if self.current_branch() != into:
            self.checkout(into)
        r = self._git("merge", "--no-edit", source)
        if r.returncode == 0:
            return
        files = self.conflicted_files()
        if files or looks_like_merge_conflict(r.stdout + r.stderr):
            raise MergeConflict(source, into, files)
        raise VCSFailure(f"merge {source}", (r.stderr or r.stdout).strip())

    def delete_branch(self, name: str, remote: bool = False) -> None:
        if remote:
            self._run("push", self.remote, "--delete", name)
        if self.branch_exists(name):
            self._run("branch", "-d", name)


# ── in-memory ────────────────────────────────────────────────────────


@dataclass
class MemoryGateway:
    """Deterministic stand-in for git.

    Branches are names only; merges are recorded as ``(source, into)`` pairs.
    ``failures`` maps an operation name (``"push"``, ``"merge"``, ...) to the
    error raised the next time it runs; ``conflicts`` holds merge pairs that
    conflict until removed.
    """

    default: str = "main"
    branches: set[str] = field(default_factory=set)
    head: str = ""
    remote: bool = True
    remote_branches: set[str] = field(default_factory=set)
    dirty: list[str] = field(default_factory=list)
    merged: list[tuple[str, str]] = field(default_factory=list)
    commits: list[tuple[str, str]] = field(default_factory=list)
    conflicts: set[tuple[str, str]] = field(default_factory=set)
    failures: dict[str, WhatdoError] = field(default_factory=dict)
    calls: list[tuple[str, ...]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.branches.add(self.default)
        if not self.head:
            self.head = self.default

    def _call(self, op: str, *args: str) -> None:
        self.calls.append((op, *args))
        err = self.failures.pop(op, None)
        if err is not None:
            raise err

    def ops(self) -> list[str]:
        return [call[0] for call in self.calls]

    def current_branch(self) -> str:
        return self.head

    def branch_exists(self, name: str) -> bool:
        return name in self.branches

    def default_branch(self) -> str:
        return self.default

    def has_remote(self) -> bool:
        return self.remote

    def dirty_entries(self) -> list[str]:
        return list(self.dirty)

    def has_uncommitted_changes(self) -> bool:
        return bool(self.dirty)

    def create_branch(self, name: str) -> None:
        self._call("create_branch", name)
        if name in self.branches:
            raise BranchAlreadyExists(name)
        self.branches.add(name)
        self.head = name

    def checkout(self, name: str) -> None:
        self._call("checkout", name)
        if name not in self.branches:
            raise VCSFailure(f"checkout {name}", f"pathspec '{name}' did not match")
        self.head = name

    def commit(self, message: str, paths: Iterable[Path] = ()) -> None:
        self._call("commit", message)
        self.commits.append((self.head, message))
        self.dirty.clear()

    def push(self, branch: str) -> None:
        self._call("push", branch)
        self.remote_branches.add(branch)

    def merge(self, source: str, into: str) -> None:
        self._call("merge", source, into)
        self.head = into
        if (source, into) in self.conflicts:
            self.dirty.append(f"UU {source}")
            raise MergeConflict(source, into, [f"{source}.txt"])
        self.merged.append((source, into))

    def delete_branch(self, name: str, remote: bool = False) -> None:
        self._call("delete_branch", name)
        if remote:
            self.remote_branches.discard(name)
        self.branches.discard(name)
