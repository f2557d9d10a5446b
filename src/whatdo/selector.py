"""Pick what to do next.

Ordering contract, for a fixed document:

1. Only leaf whatdos are candidates; containers are organizational.
2. Tags are inherited downward, so a sub-whatdo of an ``optional`` whatdo is
   optional too.
3. Whatdos whose id (or an ancestor's id) is queued come first, in queue
   order.
4. Everything else follows by ascending priority, missing priority last.
5. Ties keep the depth-first declaration order of the document.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field

from whatdo.tasks.model import Task, TaskTree


@dataclass(frozen=True)
class Filter:
    tags: frozenset[str] = field(default_factory=frozenset)
    match_all: bool = False
    max_priority: int | float | None = None
    include_subtrees: bool = True  # inherit ancestors' tags
    under: str | None = None
    exclude: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def build(
        cls,
        tags: Iterable[str] = (),
        *,
        match_all: bool = False,
        max_priority: int | float | None = None,
        include_subtrees: bool = True,
        under: str | None = None,
        exclude: Iterable[str] = (),
    ) -> Filter:
        return cls(
            tags=frozenset(tags),
            match_all=match_all,
            max_priority=max_priority,
            include_subtrees=include_subtrees,
            under=under,
            exclude=frozenset(exclude),
        )


def resolved_tags(tree: TaskTree, task: Task, inherit: bool = True) -> set[str]:
    if not inherit:
        return set(task.tags)
    tags: set[str] = set()
    for node in tree.lineage(task.id):
        tags.update(node.tags)
    return tags


def _matches(tree: TaskTree, task: Task, flt: Filter) -> bool:
    if task.id in flt.exclude:
        return False
    if flt.max_priority is not None:
        if task.priority is None or task.priority > flt.max_priority:
            return False
    if not flt.tags:
        return True
    tags = resolved_tags(tree, task, flt.include_subtrees)
    if flt.match_all:
        return flt.tags <= tags
    return bool(flt.tags & tags)


def select(tree: TaskTree, flt: Filter | None = None) -> list[Task]:
    """All candidate whatdos, best first."""
    flt = flt or Filter()
    rank: dict[str, int] = {}
    for index, task_id in enumerate(tree.queue):
        rank.setdefault(task_id, index)

    queued: list[tuple[int, int, Task]] = []
    rest: list[tuple[float, int, Task]] = []
    for position, task in enumerate(tree.leaves(flt.under)):
        if not _matches(tree, task, flt):
            continue
        ranks = [rank[node.id] for node in tree.lineage(task.id) if node.id in rank]
        if ranks:
            queued.append((min(ranks), position, task))
        else:
            priority = math.inf if task.priority is None else task.priority
            rest.append((priority, position, task))

    queued.sort(key=lambda item: item[:2])
    rest.sort(key=lambda item: item[:2])
    return [task for *_, task in queued] + [task for *_, task in rest]


def next_task(tree: TaskTree, flt: Filter | None = None) -> Task | None:
    candidates = select(tree, flt)
    return candidates[0] if candidates else None
