"""Read and write ``WHATDO.yaml``.

Document shape::

    summary: <project description>
    current: <id of the started whatdo>      # only while a whatdo is active
    queue: [<id>, ...]
    whatdos:
      <id>: <summary>                         # short form
      <id>:
        summary: <text>
        description: <text>
        tags: [<tag>, ...]
        priority: <number>
        whatdos: {...}                        # same shape, recursively
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from yaml.constructor import ConstructorError

from whatdo.errors import DuplicateId, MalformedDocument
from whatdo.io_utils import read_text, write_text
from whatdo.tasks.model import Task, TaskTree

ROOT_KEYS = ("summary", "current", "queue", "whatdos")
TASK_KEYS = ("summary", "description", "tags", "priority", "whatdos")


class _StrictLoader(yaml.SafeLoader):
    """Safe loader that refuses duplicate mapping keys instead of overwriting."""

    def construct_mapping(self, node: yaml.MappingNode, deep: bool = False) -> dict[Any, Any]:
        seen: set[Any] = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            try:
                duplicate = key in seen
            except TypeError:
                continue
            if duplicate:
                raise ConstructorError(
                    "while constructing a mapping",
                    node.start_mark,
                    f"found duplicate key {key!r}",
                    key_node.start_mark,
                )
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


# ── parsing ──────────────────────────────────────────────────────────


def _check_keys(data: dict[Any, Any], allowed: tuple[str, ...], where: str) -> None:
    unknown = [str(k) for k in data if k not in allowed]
    if unknown:
        raise MalformedDocument(f"Unknown key(s) in {where}: {', '.join(unknown)}")


def _optional_str(data: dict[str, Any], key: str, where: str) -> str | None:
    value = data.get(key)
    if value is None or isinstance(value, str):
        return value
    raise MalformedDocument(f"Expected '{key}' of {where} to be a string")


def _parse_tags(value: Any, where: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(t, str) for t in value):
        raise MalformedDocument(f"Expected 'tags' of {where} to be a list of strings")
    return list(value)


def _parse_priority(value: Any, where: str) -> int | float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedDocument(f"Expected 'priority' of {where} to be a number")
    return value


def _parse_task(task_id: Any, value: Any, where: str) -> tuple[Task, dict[Any, Any] | None]:
    if not isinstance(task_id, str):
        raise MalformedDocument(f"Expected whatdo ids in {where} to be strings, got {task_id!r}")
    label = f"whatdo '{task_id}'"
    if value is None or isinstance(value, str):
        return Task(id=task_id, summary=value, simple=True), None
    if not isinstance(value, dict):
        raise MalformedDocument(f"Expected {label} to be a string or a mapping")

    _check_keys(value, TASK_KEYS, label)
    whatdos = value.get("whatdos")
    if whatdos is not None and not isinstance(whatdos, dict):
        raise MalformedDocument(f"Expected 'whatdos' of {label} to be a mapping")
    task = Task(
        id=task_id,
        summary=_optional_str(value, "summary", label),
        description=_optional_str(value, "description", label),
        tags=_parse_tags(value.get("tags"), label),
        priority=_parse_priority(value.get("priority"), label),
        children=[] if "whatdos" in value else None,
    )
    return task, whatdos


def _insert_children(
    tree: TaskTree, mapping: dict[Any, Any], parent: str | None, where: str
) -> None:
    for task_id, value in mapping.items():
        task, nested = _parse_task(task_id, value, where)
        try:
            tree.insert(task, parent=parent)
        except DuplicateId as e:
            raise MalformedDocument(f"Whatdo id '{e.task_id}' appears more than once") from e
        if nested:
            _insert_children(tree, nested, task.id, f"whatdo '{task.id}'")


def parse(data: Any) -> TaskTree:
    """Build a TaskTree from an already-decoded document."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedDocument("Document must be a mapping")
    _check_keys(data, ROOT_KEYS, "document")

    tree = TaskTree(summary=_optional_str(data, "summary", "document"))
    if data.get("queue") == []:
        tree.keep_empty.add("queue")
    if data.get("whatdos") == {}:
        tree.keep_empty.add("whatdos")

    whatdos = data.get("whatdos")
    if whatdos is not None:
        if not isinstance(whatdos, dict):
            raise MalformedDocument("Expected 'whatdos' to be a mapping")
        _insert_children(tree, whatdos, None, "whatdos")

    queue = data.get("queue") or []
    if not isinstance(queue, list) or not all(isinstance(q, str) for q in queue):
        raise MalformedDocument("Expected 'queue' to be a list of whatdo ids")
    for task_id in queue:
        if task_id not in tree:
            raise MalformedDocument(f"Queue entry '{task_id}' does not match any whatdo")
        if not tree.queue_push(task_id):
            raise MalformedDocument(f"Queue lists '{task_id}' more than once")

    current = data.get("current")
    if current is not None:
        if not isinstance(current, str):
            raise MalformedDocument("Expected 'current' to be a whatdo id")
        if current not in tree:
            raise MalformedDocument(
                f"Current whatdo '{current}' does not exist; "
                "the document was edited while it was active"
            )
        tree.set_current(current)
    return tree


def loads(text: str) -> TaskTree:
    try:
        data = yaml.load(text, Loader=_StrictLoader)
    except yaml.YAMLError as e:
        raise MalformedDocument(f"Invalid YAML: {e}") from e
    return parse(data)


def load(path: Path) -> TaskTree:
    try:
        return loads(read_text(path))
    except MalformedDocument as e:
        e.message = f"{path}: {e.message}"
        e.args = (e.message,)
        raise


# ── serialization ────────────────────────────────────────────────────


def _dump_task(tree: TaskTree, task: Task) -> Any:
    bare = not (task.description or task.tags or task.priority is not None)
    if task.simple and bare and task.children is None:
        return task.summary

    out: dict[str, Any] = {}
    if task.summary is not None:
        out["summary"] = task.summary
    if task.description is not None:
        out["description"] = task.description
    if task.tags:
        out["tags"] = list(task.tags)
    if task.priority is not None:
        out["priority"] = task.priority
    if task.children is not None:
        out["whatdos"] = {c.id: _dump_task(tree, c) for c in tree.children(task.id)}
    return out


def dump(tree: TaskTree) -> dict[str, Any]:
    """Inverse of :func:`parse`."""
    doc: dict[str, Any] = {}
    if tree.summary is not None:
        doc["summary"] = tree.summary
    if tree.current is not None:
        doc["current"] = tree.current
    if tree.queue or "queue" in tree.keep_empty:
        doc["queue"] = list(tree.queue)
    if tree.roots or "whatdos" in tree.keep_empty:
        doc["whatdos"] = {t.id: _dump_task(tree, t) for t in tree.roots}
    return doc


def dumps(tree: TaskTree) -> str:
    return yaml.safe_dump(
        dump(tree),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )


def save(tree: TaskTree, path: Path) -> None:
    write_text(path, dumps(tree))


class DocumentStore:
    """The document at a fixed path; what the workflow engine persists through."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> TaskTree:
        return load(self.path)

    def save(self, tree: TaskTree) -> None:
        save(tree, self.path)

    def read_raw(self) -> str:
        return read_text(self.path)

    def write_raw(self, text: str) -> None:
        write_text(self.path, text)
