"""Bind whatdos to git branches: start, resolve and finish.

Each command is a fixed sequence of steps. A failure at one step leaves the
repository and the document as they were before that step, and the raised
error names the step. Steps that already completed are detected on the next
run, so re-running the same command continues instead of starting over.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum

from whatdo import log
from whatdo.config import Config
from whatdo.errors import (
    DirtyWorkingTree,
    InconsistentState,
    NoActiveTask,
    NotFound,
    TaskAlreadyActive,
    WhatdoError,
)
from whatdo.tasks.document import DocumentStore
from whatdo.tasks.model import TaskTree
from whatdo.vcs import VCSGateway


class StateKind(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    FINISHING = "finishing"
    MISMATCH = "mismatch"


@dataclass
class WorkflowState:
    kind: StateKind
    task_id: str | None = None
    branch: str | None = None

    def describe(self) -> str:
        match self.kind:
            case StateKind.IDLE:
                return "No active whatdo"
            case StateKind.ACTIVE:
                return f"Active: {self.task_id}"
            case StateKind.FINISHING:
                return (
                    f"Branch '{self.branch}' has no whatdo in the document; if a finish "
                    f"was interrupted, run `wd finish {self.branch}` to complete it"
                )
            case _:
                return (
                    f"Whatdo '{self.task_id}' is active but branch '{self.branch}' "
                    f"is checked out; run `git checkout {self.task_id}`"
                )


@dataclass
class StartResult:
    task_id: str
    branch: str
    resumed: bool = False
    warnings: list[WhatdoError] = field(default_factory=list)


@dataclass
class FinishResult:
    task_id: str
    branch: str | None = None
    resumed: bool = False
    steps: list[str] = field(default_factory=list)


@dataclass
class ResolveResult:
    task_id: str
    merged: bool = False
    pushed: list[str] = field(default_factory=list)
    finished: FinishResult | None = None


class WorkflowEngine:
    """Runs lifecycle commands against an explicit tree, document and gateway."""

    def __init__(
        self,
        tree: TaskTree,
        store: DocumentStore,
        vcs: VCSGateway,
        cfg: Config | None = None,
    ) -> None:
        self.tree = tree
        self.store = store
        self.vcs = vcs
        self.cfg = cfg or Config()

    # ── helpers ──────────────────────────────────────────────────

    def _fail(self, err: WhatdoError, step: str, recoverable: bool = False) -> WhatdoError:
        try:
            branch: str | None = self.vcs.current_branch()
        except WhatdoError:
            branch = None
        return err.at(step, branch=branch, current=self.tree.current, recoverable=recoverable)

    def _pushing(self) -> bool:
        if not self.cfg.push:
            return False
        if not self.vcs.has_remote():
            log.debug(f"No remote '{self.cfg.remote}'; skipping push")
            return False
        return True

    def _require_clean(self, step: str) -> None:
        entries = self.vcs.dirty_entries()
        if entries:
            raise self._fail(DirtyWorkingTree(entries), step)

    def _persist(self, message: str) -> None:
        self.store.save(self.tree)
        self.vcs.commit(message, [self.store.path])

    def state(self) -> WorkflowState:
        branch = self.vcs.current_branch()
        current = self.tree.current
        if current is not None:
            if branch == current:
                return WorkflowState(StateKind.ACTIVE, current, branch)
            return WorkflowState(StateKind.MISMATCH, current, branch)
        if self._leftover_branch(self.vcs.default_branch(), branch):
            return WorkflowState(StateKind.FINISHING, None, branch)
        return WorkflowState(StateKind.IDLE, None, branch)

    # ── start ────────────────────────────────────────────────────

    def start(self, task_id: str) -> StartResult:
        if self.tree.current is not None:
            raise self._fail(TaskAlreadyActive(self.tree.current), "precondition")

        try:
            self.tree.get(task_id)
        except NotFound as e:
            raise self._fail(e, "resolve-task")

        result = StartResult(task_id=task_id, branch=task_id)
        if self.vcs.current_branch() == task_id and self.vcs.branch_exists(task_id):
            # An earlier run created the branch and stopped before recording it.
            log.info(f"Branch '{task_id}' already checked out; resuming start")
            result.resumed = True
        else:
            try:
                self.vcs.create_branch(task_id)
            except WhatdoError as e:
                raise self._fail(e, "create-branch")
            log.step("create-branch", task_id)

        self.tree.set_current(task_id)
        try:
            self._persist(f"Start whatdo {task_id}")
        except WhatdoError as e:
            self.tree.set_current(None)
            self._rollback_document()
            raise self._fail(e, "persist", recoverable=True)

        if self._pushing():
            try:
                self.vcs.push(task_id)
            except WhatdoError as e:
                warning = self._fail(e, "push-branch", recoverable=True)
                log.warn(f"Could not push '{task_id}'; continuing locally: {e.message}")
                result.warnings.append(warning)
        return result

    def _rollback_document(self) -> None:
        try:
            self.store.save(self.tree)
        except WhatdoError as e:
            log.warn(f"Could not restore {self.store.path}: {e.message}")

    # ── resolve ──────────────────────────────────────────────────

    def resolve(self, *, merge: bool = False, push: bool = False, finish: bool = False) -> ResolveResult:
        task_id = self.tree.current
        if task_id is None:
            raise self._fail(NoActiveTask(), "precondition")
        default = self.vcs.default_branch()
        branch = self.vcs.current_branch()
        # The default branch is checked out while a conflicted merge is being resolved.
        if branch not in (task_id, default):
            raise self._fail(
                InconsistentState(
                    f"Whatdo '{task_id}' is active but branch '{branch}' is checked out"
                ),
                "precondition",
            )
        self._require_clean("check-clean")

        result = ResolveResult(task_id=task_id)
        if merge:
            log.step("merge", f"{task_id} -> {default}")
            try:
                self.vcs.merge(task_id, into=default)
            except WhatdoError as e:
                raise self._fail(e, "merge", recoverable=True)
            result.merged = True

        if push:
            if self._pushing():
                targets = [default, task_id] if result.merged else [task_id]
                for target in targets:
                    log.step("push", target)
                    try:
                        self.vcs.push(target)
                    except WhatdoError as e:
                        raise self._fail(e, "push", recoverable=True)
                    result.pushed.append(target)
            else:
                log.warn("Nothing pushed: no remote configured or pushing disabled")

        if self.vcs.current_branch() != task_id:
            try:
                self.vcs.checkout(task_id)
            except WhatdoError as e:
                raise self._fail(e, "checkout", recoverable=True)

        if finish:
            result.finished = self.finish(task_id)
        return result

    # ── finish ───────────────────────────────────────────────────

    def _leftover_branch(self, default: str, branch: str) -> bool:
        # "HEAD" is what a detached checkout reports.
        return branch not in (default, "HEAD") and branch not in self.tree

    def _finish_target(self, default: str, branch: str) -> str:
        if self.tree.current is not None:
            return self.tree.current
        message = "No active whatdo; name the whatdo to finish"
        if self._leftover_branch(default, branch):
            message = (
                f"No active whatdo and branch '{branch}' has none; if it is left from "
                f"an interrupted finish, run `wd finish {branch}`"
            )
        raise self._fail(NoActiveTask(message), "precondition")

    def _remove_and_commit(self, task_id: str) -> None:
        log.step("remove", task_id)
        snapshot = copy.deepcopy(self.tree)
        try:
            self.tree.remove(task_id, allow_current=task_id == self.tree.current)
        except WhatdoError as e:
            raise self._fail(e, "remove")
        try:
            self._persist(f"Finish whatdo {task_id}")
        except WhatdoError as e:
            self.tree = snapshot
            self._rollback_document()
            raise self._fail(e, "commit-removal")

    def finish(self, task_id: str | None = None) -> FinishResult:
        default = self.vcs.default_branch()
        branch = self.vcs.current_branch()
        if task_id is None:
            task_id = self._finish_target(default, branch)
        result = FinishResult(task_id=task_id)

        if task_id in self.tree:
            started = task_id == self.tree.current or self.vcs.branch_exists(task_id)
            if not started:
                self._remove_and_commit(task_id)
                result.steps.append("remove")
                return result
            if branch != task_id:
                raise self._fail(
                    InconsistentState(f"Check out branch '{task_id}' before finishing it"),
                    "precondition",
                )
            self._require_clean("check-clean")
            self._remove_and_commit(task_id)
            result.steps.append("remove")
        elif self.vcs.branch_exists(task_id):
            log.info(f"'{task_id}' is already removed; continuing with its branch")
            result.resumed = True
            self._require_clean("check-clean")
        else:
            raise self._fail(NotFound(task_id), "resolve-task")
        result.branch = task_id

        pushing = self._pushing()
        if pushing:
            log.step("push-branch", task_id)
            try:
                self.vcs.push(task_id)
            except WhatdoError as e:
                raise self._fail(e, "push-branch", recoverable=True)
            result.steps.append("push-branch")

        log.step("merge", f"{task_id} -> {default}")
        try:
            self.vcs.merge(task_id, into=default)
        except WhatdoError as e:
            raise self._fail(e, "merge", recoverable=True)
        result.steps.append("merge")

        if pushing:
            log.step("push-default", default)
            try:
                self.vcs.push(default)
            except WhatdoError as e:
                raise self._fail(e, "push-default", recoverable=True)
            result.steps.append("push-default")

        log.step("delete-branch", task_id)
        try:
            self.vcs.delete_branch(task_id, remote=pushing)
        except WhatdoError as e:
            raise self._fail(e, "delete-branch", recoverable=True)
        result.steps.append("delete-branch")
        return result
