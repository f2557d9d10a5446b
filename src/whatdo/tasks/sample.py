"""Starter document written by ``wd init``: a short tutorial made of whatdos."""

from __future__ import annotations

from whatdo.tasks.model import Task, TaskTree


def initial_tree() -> TaskTree:
    tree = TaskTree(summary="<description of your project>")
    tree.insert(
        Task(
            id="setting-up-new-project",
            summary="Things to do to set up your WHATDO.yaml for a project",
            priority=1,
        )
    )
    steps = [
        Task(
            id="run-start-command",
            summary="Start this interactive tutorial with `wd start setting-up-new-project`",
        ),
        Task(
            id="use-next-command",
            summary="View what to do next with `wd next`, or view the whole whatdo tree with `wd ls`",
        ),
        Task(
            id="add-with-cli",
            summary=(
                "Add some real whatdos: "
                '`wd add example-whatdo-id -m "Long form description of what to do"`'
            ),
        ),
        Task(
            id="add-manually",
            summary="Add abbreviated whatdos like this by manually editing this file",
            simple=True,
        ),
        Task(
            id="use-tags",
            summary=(
                "Classify whatdos with tags and priorities: "
                "`wd add test-tags --tags important,cool -p 1`"
            ),
            tags=["optional"],
            priority=2,
        ),
        Task(
            id="nest",
            summary="Nest whatdos: `wd add sub-whatdo --parent example-whatdo-id`",
            tags=["optional"],
        ),
        Task(
            id="run-finish-command",
            summary="Finish this tutorial and merge changes to the default branch: `wd finish`",
        ),
    ]
    for task in steps:
        tree.insert(task, parent="setting-up-new-project")
    tree.queue_push("setting-up-new-project")
    return tree
