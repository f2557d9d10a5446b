"""wd CLI: track whatdos in WHATDO.yaml and bind them to git branches.

Installed as ``wd`` console_script via pipx / pip.
"""

from __future__ import annotations

import functools
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click
from rich.markup import escape
from rich.tree import Tree

from whatdo import __version__, log
from whatdo.config import Config, resolve_repo_root
from whatdo.errors import WhatdoError
from whatdo.selector import Filter, select
from whatdo.tasks.document import DocumentStore
from whatdo.tasks.model import Task, TaskTree
from whatdo.tasks.sample import initial_tree
from whatdo.vcs import GitGateway
from whatdo.workflow import StateKind, WorkflowEngine

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])

STATUS_PREVIEW = 3


@dataclass
class Session:
    """Everything a command needs, resolved once per invocation."""

    cfg: Config
    root: Path

    @property
    def store(self) -> DocumentStore:
        return DocumentStore(self.cfg.document_path(self.root))

    def load(self) -> TaskTree:
        store = self.store
        if not store.exists():
            raise click.ClickException(f"No {store.path.name} found at {store.path}; run `wd init`")
        return store.load()

    def engine(self) -> WorkflowEngine:
        vcs = GitGateway(cwd=self.root, remote=self.cfg.remote, default=self.cfg.default_branch)
        return WorkflowEngine(self.load(), self.store, vcs, self.cfg)


def _reports_errors(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Print WhatdoError with its workflow context and exit with its code."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except WhatdoError as e:
            log.failure(e)
            sys.exit(e.exit_code)

    return wrapper


def _split_tags(values: tuple[str, ...]) -> list[str]:
    tags: list[str] = []
    for value in values:
        tags.extend(t.strip() for t in value.split(",") if t.strip())
    return tags


def _active(tree: TaskTree) -> list[str]:
    return [tree.current] if tree.current else []


def _label(tree: TaskTree, task: Task) -> str:
    text = f"[bold]{escape(task.id)}[/bold]"
    if task.summary:
        text += f": {escape(task.summary.strip())}"
    extras: list[str] = []
    if task.tags:
        extras.append(", ".join(task.tags))
    if task.priority is not None:
        extras.append(f"p{task.priority}")
    if task.id in tree.queue:
        extras.append(f"queued #{tree.queue.index(task.id) + 1}")
    if extras:
        text += f" [dim]({escape('; '.join(extras))})[/dim]"
    if task.id == tree.current:
        text = f"[green]▶[/green] {text}"
    return text


# ── Main group ───────────────────────────────────────────────────────


@click.group(invoke_without_command=True, context_settings=CONTEXT_SETTINGS)
@click.option("-f", "--file", "document", default="", help="Task document (default: WHATDO.yaml at the repo root)")
@click.option("--no-push", is_flag=True, help="Never push branches")
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
@click.version_option(__version__, prog_name="wd")
@click.pass_context
def main(ctx: click.Context, document: str, no_push: bool, verbose: bool) -> None:
    """wd: a git-based tracker for what to do next.

    \b
    EXAMPLES:
      wd init                          # Create WHATDO.yaml
      wd add fix-login -m "Fix login" -p 1
      wd next --start                  # Branch off for the next whatdo
      wd resolve --merge --push        # Share progress, keep working
      wd finish                        # Remove it, merge and delete the branch
    """
    log.set_verbose(verbose)
    cfg = Config(document=document, verbose=verbose)
    if no_push:
        cfg.push = False
    ctx.obj = Session(cfg=cfg, root=resolve_repo_root())

    if ctx.invoked_subcommand is None:
        ctx.invoke(status)


pass_session = click.make_pass_decorator(Session)


# ── Queries ──────────────────────────────────────────────────────────


@main.command()
@pass_session
@_reports_errors
def status(session: Session) -> None:
    """Display the active whatdo and the next few to do."""
    engine = session.engine()
    state = engine.state()
    if state.kind is StateKind.ACTIVE:
        task = engine.tree.get(state.task_id)  # type: ignore[arg-type]
        log.console.print(f"Active: {_label(engine.tree, task)}")
    elif state.kind is StateKind.IDLE:
        log.console.print("No active whatdo")
    else:
        log.warn(state.describe())

    upcoming = select(engine.tree, Filter.build(exclude=_active(engine.tree)))
    if upcoming:
        log.console.print("Next up:")
        for task in upcoming[:STATUS_PREVIEW]:
            log.console.print(f"  {_label(engine.tree, task)}")


@main.command(name="next")
@click.option("--start", "start_it", is_flag=True, help="Automatically start the whatdo")
@click.option("-t", "--tags", multiple=True, help="Only whatdos with these tags (comma-separated)")
@click.pass_context
@_reports_errors
def next_(ctx: click.Context, start_it: bool, tags: tuple[str, ...]) -> None:
    """Show the next whatdo."""
    session: Session = ctx.obj
    tree = session.load()
    candidates = select(tree, Filter.build(_split_tags(tags), exclude=_active(tree)))
    if not candidates:
        log.console.print("Nothing to do")
        return
    task = candidates[0]
    if start_it:
        ctx.invoke(start, task_id=task.id)
    else:
        log.console.print(_label(tree, task))


@main.command()
@click.argument("task_id")
@pass_session
@_reports_errors
def show(session: Session, task_id: str) -> None:
    """Show a whatdo in detail."""
    tree = session.load()
    task = tree.get(task_id)
    out = log.console
    out.print(f"[bold]{escape(task.id)}[/bold]")
    if task.summary:
        out.print(escape(task.summary.strip()))
    if task.description:
        out.print()
        out.print(escape(task.description.rstrip()))
    out.print()
    if task.parent:
        out.print(f"Parent:   {escape(task.parent)}")
    if task.tags:
        out.print(f"Tags:     {escape(', '.join(task.tags))}")
    if task.priority is not None:
        out.print(f"Priority: {task.priority}")
    if task.id in tree.queue:
        out.print(f"Queue:    #{tree.queue.index(task.id) + 1}")
    if task.children:
        out.print(f"Whatdos:  {escape(', '.join(task.children))}")
    if task.id == tree.current:
        out.print("[green]Active[/green]")


def _render_tree(tree: TaskTree) -> Tree:
    root = Tree(escape(tree.summary or "whatdos"))

    def _attach(node: Tree, parent: str | None) -> None:
        for task in tree.children(parent):
            _attach(node.add(_label(tree, task)), task.id)

    _attach(root, None)
    return root


@main.command(name="ls")
@click.option("-t", "--tags", multiple=True, help="Filter by tags (comma-separated)")
@click.option("--all-tags", is_flag=True, help="Require every tag instead of any")
@click.option("-p", "--priority", "max_priority", type=int, default=None, help="Only priority <= N")
@click.option("--no-inherit", is_flag=True, help="Ignore tags of parent whatdos")
@click.option("--under", default=None, help="Only whatdos beneath this id")
@click.option("--tree", "as_tree", is_flag=True, help="Show the whole hierarchy")
@pass_session
@_reports_errors
def ls(
    session: Session,
    tags: tuple[str, ...],
    all_tags: bool,
    max_priority: int | None,
    no_inherit: bool,
    under: str | None,
    as_tree: bool,
) -> None:
    """List whatdos in the order they should be done."""
    tree = session.load()
    if as_tree:
        log.console.print(_render_tree(tree))
        return
    flt = Filter.build(
        _split_tags(tags),
        match_all=all_tags,
        max_priority=max_priority,
        include_subtrees=not no_inherit,
        under=under,
    )
    candidates = select(tree, flt)
    if not candidates:
        log.console.print("Nothing to do")
        return
    for index, task in enumerate(candidates, start=1):
        log.console.print(f"{index:>3}. {_label(tree, task)}")


# ── Editing ──────────────────────────────────────────────────────────


@main.command()
@click.option("--force", is_flag=True, help="Overwrite an existing document")
@pass_session
@_reports_errors
def init(session: Session, force: bool) -> None:
    """Create a starter WHATDO.yaml at the repository root."""
    store = session.store
    if store.exists() and not force:
        raise click.ClickException(f"{store.path} already exists (use --force to overwrite)")
    store.save(initial_tree())
    log.success(f"Created {store.path}")


@main.command()
@click.argument("task_id")
@click.option("-m", "--summary", default=None, help="Short summary")
@click.option("-d", "--description", default=None, help="Longer description")
@click.option("-t", "--tags", multiple=True, help="Tags (comma-separated or repeated)")
@click.option("-p", "--priority", type=int, default=None, help="Priority (lower is more urgent)")
@click.option("--parent", default=None, help="Nest under this whatdo")
@click.option("--queue", "enqueue", is_flag=True, help="Append to the queue")
@pass_session
@_reports_errors
def add(
    session: Session,
    task_id: str,
    summary: str | None,
    description: str | None,
    tags: tuple[str, ...],
    priority: int | None,
    parent: str | None,
    enqueue: bool,
) -> None:
    """Add a new whatdo."""
    tree = session.load()
    task = Task(
        id=task_id,
        summary=summary,
        description=description,
        tags=_split_tags(tags),
        priority=priority,
        simple=not (description or tags or priority is not None),
    )
    tree.insert(task, parent=parent)
    if enqueue:
        tree.queue_push(task_id)
    session.store.save(tree)
    log.success(f"Added {task}")


@main.command()
@click.argument("task_id")
@pass_session
@_reports_errors
def rm(session: Session, task_id: str) -> None:
    """Delete a whatdo (and its sub-whatdos) without touching git."""
    tree = session.load()
    task = tree.remove(task_id)
    session.store.save(tree)
    log.success(f"Deleted {task}")


main.add_command(rm, name="delete")


@main.group(invoke_without_command=True)
@click.pass_context
def queue(ctx: click.Context) -> None:
    """Show or edit the queue."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(queue_ls)


@queue.command(name="ls")
@pass_session
@_reports_errors
def queue_ls(session: Session) -> None:
    """List queued whatdos."""
    tree = session.load()
    if not tree.queue:
        log.console.print("Queue is empty")
        return
    for index, task_id in enumerate(tree.queue, start=1):
        log.console.print(f"{index:>3}. {_label(tree, tree.get(task_id))}")


@queue.command(name="push")
@click.argument("task_id")
@pass_session
@_reports_errors
def queue_push(session: Session, task_id: str) -> None:
    """Append a whatdo to the queue."""
    tree = session.load()
    if tree.queue_push(task_id):
        session.store.save(tree)
        log.success(f"Queued {task_id}")
    else:
        log.info(f"{task_id} is already queued")


@queue.command(name="pop")
@pass_session
@_reports_errors
def queue_pop(session: Session) -> None:
    """Drop the head of the queue."""
    tree = session.load()
    task_id = tree.queue_pop()
    if task_id is None:
        log.info("Queue is empty")
        return
    session.store.save(tree)
    log.success(f"Unqueued {task_id}")


@queue.command(name="clear")
@pass_session
@_reports_errors
def queue_clear(session: Session) -> None:
    """Empty the queue."""
    tree = session.load()
    tree.queue_clear()
    session.store.save(tree)
    log.success("Queue cleared")


# ── Workflow ─────────────────────────────────────────────────────────


@main.command()
@click.argument("task_id")
@pass_session
@_reports_errors
def start(session: Session, task_id: str) -> None:
    """Start a whatdo by checking out a git branch named after it."""
    engine = session.engine()
    result = engine.start(task_id)
    task = engine.tree.get(task_id)
    log.success(f"Started {task} on branch {result.branch}")
    for warning in result.warnings:
        log.warn(warning.describe())


@main.command()
@click.option("--merge", is_flag=True, help="Merge the whatdo branch into the default branch")
@click.option("--push", is_flag=True, help="Push the updated branches")
@click.option("--finish", "then_finish", is_flag=True, help="Finish the whatdo afterwards")
@pass_session
@_reports_errors
def resolve(session: Session, merge: bool, push: bool, then_finish: bool) -> None:
    """Merge and/or push the active whatdo without ending it."""
    engine = session.engine()
    result = engine.resolve(merge=merge, push=push, finish=then_finish)
    if result.merged:
        log.success(f"Merged {result.task_id}")
    if result.pushed:
        log.success(f"Pushed {', '.join(result.pushed)}")
    if result.finished is not None:
        log.success(f"Finished {result.task_id}")
        log.console.print("Congratulations!")


@main.command()
@click.argument("task_id", required=False)
@pass_session
@_reports_errors
def finish(session: Session, task_id: str | None) -> None:
    """Finish a whatdo: remove it, merge its branch and delete the branch."""
    engine = session.engine()
    result = engine.finish(task_id)
    if result.resumed:
        log.info(f"Completed the interrupted finish of {result.task_id}")
    log.success(f"Finished {result.task_id}")
    log.console.print("Congratulations!")
