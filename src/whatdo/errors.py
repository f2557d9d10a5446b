"""Error taxonomy for the task tree, the selector and the branch workflow."""

from __future__ import annotations

EXIT_USER_ERROR = 1
EXIT_ENVIRONMENT_ERROR = 3

MERGE_CONFLICT_PATTERNS: tuple[str, ...] = (
    "automatic merge failed",
    "conflict (content)",
    "conflict (add/add)",
    "conflict (modify/delete)",
    "conflict in ",
    "merge conflict",
)


class WhatdoError(Exception):
    """Base class for every error reported to the user.

    Workflow failures are annotated with the step that failed, the branch that
    was checked out and the current-task pointer at the time, so the user can
    tell whether re-running the command will continue where it stopped.
    """

    user_error = True

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        self.step: str | None = None
        self.branch: str | None = None
        self.current: str | None = None
        self.recoverable = False

    @property
    def exit_code(self) -> int:
        return EXIT_USER_ERROR if self.user_error else EXIT_ENVIRONMENT_ERROR

    def at(
        self,
        step: str,
        *,
        branch: str | None = None,
        current: str | None = None,
        recoverable: bool = False,
    ) -> WhatdoError:
        """Attach workflow context and return self (for ``raise err.at(...)``)."""
        self.step = step
        self.branch = branch
        self.current = current
        self.recoverable = recoverable
        return self

    def describe(self) -> str:
        if self.step is None:
            return self.message
        parts = [f"step={self.step}"]
        if self.branch:
            parts.append(f"branch={self.branch}")
        parts.append(f"current={self.current or '-'}")
        text = f"{self.message} ({', '.join(parts)})"
        if self.recoverable:
            text += "\nResolve the problem and re-run the same command to continue."
        return text


class NotFound(WhatdoError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"No whatdo with id '{task_id}'")
        self.task_id = task_id


class NoActiveTask(WhatdoError):
    def __init__(self, message: str = "No active whatdo") -> None:
        super().__init__(message)


class DuplicateId(WhatdoError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"A whatdo with id '{task_id}' already exists")
        self.task_id = task_id


class MalformedDocument(WhatdoError):
    pass


class TaskAlreadyActive(WhatdoError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Whatdo '{task_id}' is active; finish it first")
        self.task_id = task_id


class DirtyWorkingTree(WhatdoError):
    def __init__(self, entries: list[str] | None = None) -> None:
        entries = entries or []
        message = "Working tree has uncommitted changes; commit or stash them first"
        if entries:
            message += ":\n  " + "\n  ".join(entries)
        super().__init__(message)
        self.entries = entries


class BranchAlreadyExists(WhatdoError):
    def __init__(self, branch: str) -> None:
        super().__init__(f"Branch '{branch}' already exists")
        self.branch_name = branch


class MergeConflict(WhatdoError):
    def __init__(self, source: str, into: str, files: list[str] | None = None) -> None:
        files = files or []
        message = f"Merging '{source}' into '{into}' produced conflicts"
        if files:
            message += ": " + ", ".join(files)
        super().__init__(message)
        self.source = source
        self.into = into
        self.files = files


class InconsistentState(WhatdoError):
    pass


class VCSFailure(WhatdoError):
    """A git command failed; ``diagnostic`` holds git's own output."""

    user_error = False

    def __init__(self, command: str, diagnostic: str = "") -> None:
        message = f"git {command} failed"
        if diagnostic:
            message += f": {diagnostic}"
        super().__init__(message)
        self.command = command
        self.diagnostic = diagnostic


class IOFailure(WhatdoError):
    user_error = False


def looks_like_merge_conflict(text: str) -> bool:
    """Return ``True`` for textual git merge conflict failures."""
    if not text:
        return False
    lower = text.lower()
    return any(pattern in lower for pattern in MERGE_CONFLICT_PATTERNS)
