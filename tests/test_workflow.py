"""Tests for whatdo.workflow against the in-memory gateway.

These pin down step order, what each failure leaves behind, and that
re-running a command after a recoverable failure only redoes what is left.
"""

from __future__ import annotations

import pytest

from whatdo.config import Config
from whatdo.errors import (
    BranchAlreadyExists,
    DirtyWorkingTree,
    InconsistentState,
    MergeConflict,
    NoActiveTask,
    NotFound,
    TaskAlreadyActive,
    VCSFailure,
)
from whatdo.tasks.document import DocumentStore
from whatdo.tasks.model import Task, TaskTree
from whatdo.vcs import MemoryGateway
from whatdo.workflow import StateKind, WorkflowEngine


@pytest.fixture
def engine(sample_tree: TaskTree, store: DocumentStore, gateway: MemoryGateway) -> WorkflowEngine:
    store.save(sample_tree)
    return WorkflowEngine(sample_tree, store, gateway, Config(push=True))


@pytest.fixture
def started(engine: WorkflowEngine) -> WorkflowEngine:
    engine.start("docs")
    engine.vcs.calls.clear()
    return engine


# ── start ────────────────────────────────────────────────────────────


class TestStart:
    def test_start_creates_branch_and_records_pointer(
        self, engine: WorkflowEngine, gateway: MemoryGateway, store: DocumentStore
    ) -> None:
        result = engine.start("docs")
        assert result.branch == "docs"
        assert not result.resumed
        assert result.warnings == []
        assert gateway.head == "docs"
        assert engine.tree.current == "docs"
        assert store.load().current == "docs"
        assert gateway.commits == [("docs", "Start whatdo docs")]
        assert gateway.ops() == ["create_branch", "commit", "push"]
        assert "docs" in gateway.remote_branches

    def test_start_while_active_touches_nothing(
        self, started: WorkflowEngine, gateway: MemoryGateway, store: DocumentStore
    ) -> None:
        with pytest.raises(TaskAlreadyActive) as exc:
            started.start("colors")
        assert exc.value.step == "precondition"
        assert exc.value.current == "docs"
        assert gateway.calls == []
        assert gateway.head == "docs"
        assert "docs" in gateway.branches
        assert store.load().current == "docs"

    def test_start_unknown(self, engine: WorkflowEngine, gateway: MemoryGateway) -> None:
        with pytest.raises(NotFound) as exc:
            engine.start("nope")
        assert exc.value.step == "resolve-task"
        assert gateway.calls == []

    def test_branch_already_exists(self, engine: WorkflowEngine, gateway: MemoryGateway) -> None:
        gateway.branches.add("docs")
        with pytest.raises(BranchAlreadyExists) as exc:
            engine.start("docs")
        assert exc.value.step == "create-branch"
        assert not exc.value.recoverable
        assert engine.tree.current is None
        assert gateway.head == "main"

    def test_push_failure_is_a_warning(self, engine: WorkflowEngine, gateway: MemoryGateway) -> None:
        gateway.failures["push"] = VCSFailure("push -u origin docs", "Could not resolve host")
        result = engine.start("docs")
        assert len(result.warnings) == 1
        assert result.warnings[0].step == "push-branch"
        assert engine.tree.current == "docs"
        assert gateway.head == "docs"

    def test_no_remote_skips_push(self, sample_tree: TaskTree, store: DocumentStore) -> None:
        gateway = MemoryGateway(remote=False)
        engine = WorkflowEngine(sample_tree, store, gateway, Config(push=True))
        engine.start("docs")
        assert "push" not in gateway.ops()

    def test_push_disabled_in_config(self, sample_tree: TaskTree, store: DocumentStore) -> None:
        gateway = MemoryGateway()
        engine = WorkflowEngine(sample_tree, store, gateway, Config(push=False))
        engine.start("docs")
        assert "push" not in gateway.ops()

    def test_commit_failure_rolls_back_pointer_then_resumes(
        self, engine: WorkflowEngine, gateway: MemoryGateway, store: DocumentStore
    ) -> None:
        gateway.failures["commit"] = VCSFailure("commit", "unable to write index")
        with pytest.raises(VCSFailure) as exc:
            engine.start("docs")
        assert exc.value.step == "persist"
        assert exc.value.recoverable
        assert exc.value.branch == "docs"
        assert engine.tree.current is None
        assert store.load().current is None

        result = engine.start("docs")
        assert result.resumed
        assert engine.tree.current == "docs"
        assert gateway.ops().count("create_branch") == 1


# ── finish ───────────────────────────────────────────────────────────


class TestFinish:
    def test_start_then_finish_returns_to_idle(
        self, engine: WorkflowEngine, gateway: MemoryGateway, store: DocumentStore
    ) -> None:
        engine.start("docs")
        result = engine.finish()

        assert result.task_id == "docs"
        assert result.steps == ["remove", "push-branch", "merge", "push-default", "delete-branch"]
        assert "docs" not in engine.tree
        assert engine.tree.current is None
        reloaded = store.load()
        assert "docs" not in reloaded
        assert reloaded.current is None
        assert gateway.merged == [("docs", "main")]
        assert "docs" not in gateway.branches
        assert "docs" not in gateway.remote_branches
        assert gateway.head == "main"
        assert engine.state().kind is StateKind.IDLE

    def test_finish_step_order(self, started: WorkflowEngine, gateway: MemoryGateway) -> None:
        started.finish()
        assert gateway.calls == [
            ("commit", "Finish whatdo docs"),
            ("push", "docs"),
            ("merge", "docs", "main"),
            ("push", "main"),
            ("delete_branch", "docs"),
        ]

    def test_merge_conflict_then_retry_skips_removal(
        self, started: WorkflowEngine, gateway: MemoryGateway
    ) -> None:
        gateway.conflicts.add(("docs", "main"))
        with pytest.raises(MergeConflict) as exc:
            started.finish()
        err = exc.value
        assert err.step == "merge"
        assert err.recoverable
        assert err.branch == "main"
        assert err.current is None
        assert "docs" not in started.tree
        assert gateway.branch_exists("docs")
        assert started.state().kind is StateKind.IDLE

        # Conflict still unresolved: nothing else happens.
        with pytest.raises(DirtyWorkingTree):
            started.finish("docs")

        gateway.conflicts.clear()
        gateway.dirty.clear()
        result = started.finish("docs")
        assert result.resumed
        assert result.steps == ["push-branch", "merge", "push-default", "delete-branch"]
        finish_commits = [m for _, m in gateway.commits if m == "Finish whatdo docs"]
        assert len(finish_commits) == 1
        assert gateway.merged == [("docs", "main")]
        assert not gateway.branch_exists("docs")

    def test_finish_without_id_resumes_from_leftover_branch(
        self, started: WorkflowEngine, gateway: MemoryGateway
    ) -> None:
        gateway.failures["merge"] = VCSFailure("merge docs", "fatal: refusing to merge")
        with pytest.raises(VCSFailure):
            started.finish()
        gateway.head = "docs"
        assert started.state().kind is StateKind.FINISHING

        with pytest.raises(NoActiveTask, match="wd finish docs"):
            started.finish()
        result = started.finish("docs")
        assert result.resumed
        assert result.task_id == "docs"

    def test_finish_without_id_leaves_unrelated_branch_alone(
        self, engine: WorkflowEngine, gateway: MemoryGateway
    ) -> None:
        gateway.branches.add("feature/login")
        gateway.head = "feature/login"
        with pytest.raises(NoActiveTask, match="wd finish feature/login"):
            engine.finish()
        assert gateway.merged == []
        assert gateway.branches == {"main", "feature/login"}
        assert gateway.calls == []

    def test_finish_without_id_on_detached_head(
        self, engine: WorkflowEngine, gateway: MemoryGateway
    ) -> None:
        gateway.head = "HEAD"
        assert engine.state().kind is StateKind.IDLE
        with pytest.raises(NoActiveTask):
            engine.finish()
        assert gateway.calls == []

    def test_dirty_tree_blocks_before_any_change(
        self, started: WorkflowEngine, gateway: MemoryGateway, store: DocumentStore
    ) -> None:
        gateway.dirty.append(" M src/app.py")
        with pytest.raises(DirtyWorkingTree) as exc:
            started.finish()
        assert exc.value.entries == [" M src/app.py"]
        assert "docs" in started.tree
        assert store.load().current == "docs"
        assert gateway.calls == []

    def test_commit_failure_restores_document(
        self, started: WorkflowEngine, gateway: MemoryGateway, store: DocumentStore
    ) -> None:
        gateway.failures["commit"] = VCSFailure("commit", "hook rejected")
        with pytest.raises(VCSFailure) as exc:
            started.finish()
        assert exc.value.step == "commit-removal"
        assert "docs" in started.tree
        assert started.tree.current == "docs"
        reloaded = store.load()
        assert "docs" in reloaded
        assert reloaded.current == "docs"

    def test_push_failure_is_recoverable(self, started: WorkflowEngine, gateway: MemoryGateway) -> None:
        gateway.failures["push"] = VCSFailure("push -u origin docs", "rejected")
        with pytest.raises(VCSFailure) as exc:
            started.finish()
        assert exc.value.step == "push-branch"
        assert exc.value.recoverable
        assert "docs" not in started.tree

        result = started.finish("docs")
        assert result.resumed

    def test_finish_unstarted_task_only_removes(
        self, engine: WorkflowEngine, gateway: MemoryGateway, store: DocumentStore
    ) -> None:
        result = engine.finish("colors")
        assert result.steps == ["remove"]
        assert result.branch is None
        assert "colors" not in store.load()
        assert gateway.calls == [("commit", "Finish whatdo colors")]
        assert gateway.head == "main"

    def test_finish_other_task_while_active(
        self, started: WorkflowEngine, gateway: MemoryGateway
    ) -> None:
        started.finish("colors")
        assert started.tree.current == "docs"
        assert gateway.commits[-1] == ("docs", "Finish whatdo colors")
        assert gateway.merged == []

    def test_finish_unstarted_parent_of_active_task(
        self, make_tree, store: DocumentStore, gateway: MemoryGateway
    ) -> None:
        tree = make_tree(Task(id="x"), (Task(id="y"), "x"))
        store.save(tree)
        engine = WorkflowEngine(tree, store, gateway, Config(push=True))
        engine.start("y")
        gateway.calls.clear()

        with pytest.raises(TaskAlreadyActive) as exc:
            engine.finish("x")
        assert exc.value.step == "remove"
        assert engine.tree.current == "y"
        assert "y" in engine.tree
        assert store.load().current == "y"
        assert gateway.calls == []

    def test_finish_with_nothing_active(self, engine: WorkflowEngine) -> None:
        with pytest.raises(NoActiveTask):
            engine.finish()

    def test_finish_unknown(self, engine: WorkflowEngine) -> None:
        with pytest.raises(NotFound) as exc:
            engine.finish("ghost")
        assert exc.value.step == "resolve-task"

    def test_finish_from_wrong_branch(self, started: WorkflowEngine, gateway: MemoryGateway) -> None:
        gateway.head = "main"
        with pytest.raises(InconsistentState):
            started.finish()
        assert "docs" in started.tree


# ── resolve ──────────────────────────────────────────────────────────


class TestResolve:
    def test_requires_active_task(self, engine: WorkflowEngine) -> None:
        with pytest.raises(NoActiveTask):
            engine.resolve(merge=True)

    def test_dirty_tree_aborts_before_merge(self, started: WorkflowEngine, gateway: MemoryGateway) -> None:
        gateway.dirty.append("?? notes.txt")
        with pytest.raises(DirtyWorkingTree) as exc:
            started.resolve(merge=True)
        assert exc.value.step == "check-clean"
        assert gateway.calls == []

    def test_merge_and_push_keep_task_active(self, started: WorkflowEngine, gateway: MemoryGateway) -> None:
        result = started.resolve(merge=True, push=True)
        assert result.merged
        assert result.pushed == ["main", "docs"]
        assert result.finished is None
        assert gateway.merged == [("docs", "main")]
        assert gateway.head == "docs"
        assert started.tree.current == "docs"
        assert started.state().kind is StateKind.ACTIVE

    def test_push_only(self, started: WorkflowEngine, gateway: MemoryGateway) -> None:
        result = started.resolve(push=True)
        assert not result.merged
        assert result.pushed == ["docs"]
        assert gateway.ops() == ["push"]

    def test_merge_conflict_leaves_task_active(self, started: WorkflowEngine, gateway: MemoryGateway) -> None:
        gateway.conflicts.add(("docs", "main"))
        with pytest.raises(MergeConflict) as exc:
            started.resolve(merge=True)
        assert exc.value.recoverable
        assert exc.value.files == ["docs.txt"]
        assert started.tree.current == "docs"
        assert gateway.head == "main"
        assert started.state().kind is StateKind.MISMATCH

        gateway.conflicts.clear()
        gateway.dirty.clear()
        result = started.resolve(merge=True)
        assert result.merged
        assert gateway.head == "docs"

    def test_resolve_then_finish(self, started: WorkflowEngine, gateway: MemoryGateway) -> None:
        result = started.resolve(merge=True, finish=True)
        assert result.finished is not None
        assert started.tree.current is None
        assert not gateway.branch_exists("docs")

    def test_wrong_branch(self, started: WorkflowEngine, gateway: MemoryGateway) -> None:
        gateway.branches.add("other")
        gateway.head = "other"
        with pytest.raises(InconsistentState):
            started.resolve(push=True)


# ── state ────────────────────────────────────────────────────────────


class TestState:
    def test_idle(self, engine: WorkflowEngine) -> None:
        state = engine.state()
        assert state.kind is StateKind.IDLE
        assert state.describe() == "No active whatdo"

    def test_active(self, started: WorkflowEngine) -> None:
        state = started.state()
        assert (state.kind, state.task_id, state.branch) == (StateKind.ACTIVE, "docs", "docs")

    def test_mismatch(self, started: WorkflowEngine, gateway: MemoryGateway) -> None:
        gateway.head = "main"
        state = started.state()
        assert state.kind is StateKind.MISMATCH
        assert "git checkout docs" in state.describe()

    def test_finishing(self, engine: WorkflowEngine, gateway: MemoryGateway) -> None:
        gateway.branches.add("ghost")
        gateway.head = "ghost"
        state = engine.state()
        assert state.kind is StateKind.FINISHING
        assert "wd finish ghost" in state.describe()
