"""Task and TaskTree data models shared by the codec, selector and workflow.

The tree is stored arena-style: one flat ``id -> Task`` mapping, with parent
and children expressed as ids. Ids are unique across the whole tree, so the
queue and the current-task pointer always resolve to exactly one task.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from whatdo.errors import DuplicateId, InconsistentState, NotFound, TaskAlreadyActive

Priority = int | float

_UNSET = object()


@dataclass
class Task:
    id: str
    summary: str | None = None
    description: str | None = None
    tags: list[str] = field(default_factory=list)
    priority: Priority | None = None
    parent: str | None = None
    # None: no ``whatdos`` key at all. An empty list still round-trips as ``{}``.
    children: list[str] | None = None
    simple: bool = False

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def __str__(self) -> str:
        if self.summary:
            return f"{self.id}: {self.summary}"
        return self.id


def _dedupe(tags: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for tag in tags:
        if tag in seen:
            continue
        seen.add(tag)
        ordered.append(tag)
    return ordered


class TaskTree:
    """In-memory form of the whole document. Owns every Task node."""

    def __init__(
        self,
        summary: str | None = None,
        queue: Iterable[str] = (),
        current: str | None = None,
    ) -> None:
        self.summary = summary
        self._tasks: dict[str, Task] = {}
        self._roots: list[str] = []
        self._queue: list[str] = list(queue)
        self._current = current
        # Root keys the document spelled out empty (``queue: []``, ``whatdos: {}``).
        self.keep_empty: set[str] = set()

    # ── lookup ───────────────────────────────────────────────────

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def find(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def get(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFound(task_id)
        return task

    @property
    def roots(self) -> list[Task]:
        return [self._tasks[tid] for tid in self._roots]

    def children(self, task_id: str | None) -> list[Task]:
        """Children of *task_id*, or the root-level tasks for ``None``."""
        if task_id is None:
            return self.roots
        return [self._tasks[cid] for cid in self.get(task_id).children or []]

    def lineage(self, task_id: str) -> list[Task]:
        """The task followed by its ancestors, nearest first."""
        chain: list[Task] = []
        task: Task | None = self.get(task_id)
        while task is not None:
            chain.append(task)
            task = self._tasks.get(task.parent) if task.parent else None
        return chain

    def depth(self, task_id: str) -> int:
        return len(self.lineage(task_id)) - 1

    def walk(self, under: str | None = None) -> Iterator[Task]:
        """Depth-first, declaration-order traversal (root-level first)."""
        stack = list(reversed(self.children(under)))
        while stack:
            task = stack.pop()
            yield task
            stack.extend(self._tasks[cid] for cid in reversed(task.children or []))

    def leaves(self, under: str | None = None) -> Iterator[Task]:
        return (task for task in self.walk(under) if task.is_leaf)

    # ── mutation ─────────────────────────────────────────────────

    def insert(self, task: Task, parent: str | None = None) -> Task:
        if task.id in self._tasks:
            raise DuplicateId(task.id)
        if parent is not None:
            parent_task = self.get(parent)
            if parent_task.children is None:
                parent_task.children = []
            parent_task.children.append(task.id)
            # A container cannot stay in the bare ``id: summary`` form.
            parent_task.simple = False
        else:
            self._roots.append(task.id)
        task.parent = parent
        task.tags = _dedupe(task.tags)
        # Children are attached by inserting them; ids never arrive pre-linked.
        task.children = None if task.children is None else []
        self._tasks[task.id] = task
        return task

    def update(
        self,
        task_id: str,
        *,
        summary: object = _UNSET,
        description: object = _UNSET,
        tags: object = _UNSET,
        priority: object = _UNSET,
    ) -> Task:
        task = self.get(task_id)
        if summary is not _UNSET:
            task.summary = summary  # type: ignore[assignment]
        if description is not _UNSET:
            task.description = description  # type: ignore[assignment]
        if tags is not _UNSET:
            task.tags = _dedupe(tags or [])  # type: ignore[arg-type]
        if priority is not _UNSET:
            task.priority = priority  # type: ignore[assignment]
        if task.description or task.tags or task.priority is not None:
            task.simple = False
        return task

    def remove(self, task_id: str, *, allow_current: bool = False) -> Task:
        """Detach *task_id* and its whole subtree.

        Queue entries pointing into the subtree are dropped. A subtree holding
        the current task is only removed with ``allow_current``, which also
        clears the pointer.
        """
        task = self.get(task_id)
        subtree = [task, *self.walk(task_id)]
        ids = {t.id for t in subtree}
        if self._current in ids and not allow_current:
            raise TaskAlreadyActive(self._current)  # type: ignore[arg-type]
        siblings = self._roots if task.parent is None else self._tasks[task.parent].children
        if not siblings or task_id not in siblings:
            raise InconsistentState(f"'{task.parent or 'whatdos'}' does not list '{task_id}' as a child")

        if self._current in ids:
            self._current = None
        siblings.remove(task_id)
        for tid in ids:
            del self._tasks[tid]
        self._queue = [tid for tid in self._queue if tid not in ids]
        return task

    # ── current task ─────────────────────────────────────────────

    @property
    def current(self) -> str | None:
        return self._current

    def current_task(self) -> Task | None:
        return self._tasks[self._current] if self._current else None

    def set_current(self, task_id: str | None) -> None:
        if task_id is not None:
            self.get(task_id)
        self._current = task_id

    # ── queue ────────────────────────────────────────────────────

    @property
    def queue(self) -> tuple[str, ...]:
        return tuple(self._queue)

    def queue_push(self, task_id: str) -> bool:
        """Append *task_id* to the queue. Returns ``False`` if already queued."""
        self.get(task_id)
        if task_id in self._queue:
            return False
        self._queue.append(task_id)
        return True

    def queue_pop(self) -> str | None:
        return self._queue.pop(0) if self._queue else None

    def queue_remove(self, task_id: str) -> bool:
        if task_id not in self._queue:
            return False
        self._queue.remove(task_id)
        return True

    def queue_clear(self) -> None:
        self._queue.clear()
