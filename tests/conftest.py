"""Shared fixtures for whatdo tests.

File handling in tests:
- Use tmp_path for any directory or file creation so tests are isolated and cleaned up.
- Git-backed tests run against a throwaway repository whose default branch is ``main``.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from whatdo.io_utils import write_text
from whatdo.tasks.document import DocumentStore, loads
from whatdo.tasks.model import Task, TaskTree
from whatdo.vcs import MemoryGateway

SAMPLE_DOCUMENT = """\
summary: A streamlined git-based tool for task tracking of a project
queue:
- read-back-whatdos
- delete-whatdo
whatdos:
  basic-functionality:
    summary: |
      Implement the absolute minimum stuff for the tool to get it to be useful
      for tracking the progress of this tool
    whatdos:
      read-back-whatdos: Ability to invoke `wd` to list the current whatdos
      finish-whatdo:
        summary: Ability to invoke `wd finish` to finish the current whatdo
        whatdos:
          delete-whatdo: Delete the whatdo
  polish:
    summary: Nice to have
    tags:
    - optional
    priority: 3
    whatdos:
      colors: Colored output
      docs:
        summary: Write the README
        priority: 1
"""


def git(repo: Path, *args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        ["git", *args], cwd=repo, capture_output=True, text=True, check=True
    )


def commit_file(repo: Path, name: str, content: str, msg: str) -> None:
    write_text(repo / name, content)
    git(repo, "add", name)
    git(repo, "commit", "-m", msg)


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Create a minimal git repo on branch ``main`` for testing."""
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init")
    git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    git(repo, "config", "user.name", "Test")
    git(repo, "config", "user.email", "test@test")
    git(repo, "config", "commit.gpgsign", "false")
    commit_file(repo, "README.md", "# Test\n", "Initial")
    return repo


@pytest.fixture
def git_remote(git_repo: Path, tmp_path: Path) -> Path:
    """Attach a bare repository as ``origin`` and publish ``main`` to it."""
    remote = tmp_path / "remote.git"
    subprocess.run(["git", "init", "--bare", str(remote)], capture_output=True, check=True)
    git(git_repo, "remote", "add", "origin", str(remote))
    git(git_repo, "push", "-u", "origin", "main")
    return remote


def remote_branches(remote: Path) -> set[str]:
    out = subprocess.run(
        ["git", "branch", "--format=%(refname:short)"],
        cwd=remote, capture_output=True, text=True, check=True,
    ).stdout
    return {line.strip() for line in out.splitlines() if line.strip()}


def _make_tree(*tasks: Task | tuple[Task, str], queue: list[str] | None = None) -> TaskTree:
    """Build a tree from tasks; ``(task, parent_id)`` pairs nest a task."""
    tree = TaskTree(summary="test project")
    for item in tasks:
        task, parent = item if isinstance(item, tuple) else (item, None)
        tree.insert(task, parent=parent)
    for task_id in queue or []:
        tree.queue_push(task_id)
    return tree


@pytest.fixture
def make_tree():
    """Factory fixture that creates TaskTree instances."""
    return _make_tree


@pytest.fixture
def sample_tree() -> TaskTree:
    return loads(SAMPLE_DOCUMENT)


@pytest.fixture
def gateway() -> MemoryGateway:
    return MemoryGateway()


@pytest.fixture
def store(tmp_path: Path) -> DocumentStore:
    return DocumentStore(tmp_path / "WHATDO.yaml")
