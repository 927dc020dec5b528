"""
Task graph — an explicit DAG of named build steps.

Edges come from two declarations on each task:

    depends_on     X runs only after every listed task completed
    finalized_by   listed tasks are pulled into any plan containing X
                   and run after X

Plans are resolved by closure over both edge kinds, then ordered with
Kahn's algorithm. Ties break on registration order so plans (and logs)
are reproducible. No I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from buildplane.core import errors
from buildplane.core.models.task import Task

logger = logging.getLogger(__name__)


class TaskGraph:
    """Registry of tasks plus plan resolution."""

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}

    # ── Registration ─────────────────────────────────────────────

    def add(self, task: Task) -> Task:
        """Register a task.

        Raises:
            TaskGraphError: If a task with the same name exists.
        """
        if task.name in self._tasks:
            raise errors.TaskGraphError(f"Duplicate task: {task.name}")
        self._tasks[task.name] = task
        logger.debug("Registered task %s (%s)", task.name, task.kind)
        return task

    def get(self, name: str) -> Task | None:
        return self._tasks.get(name)

    def require(self, name: str) -> Task:
        task = self._tasks.get(name)
        if task is None:
            raise errors.TaskGraphError(
                f"Unknown task '{name}'. Available: {', '.join(self._tasks)}"
            )
        return task

    def __contains__(self, name: str) -> bool:
        return name in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks.values())

    def names(self) -> list[str]:
        return list(self._tasks)

    # ── Validation ───────────────────────────────────────────────

    def _successors(self, names: Iterable[str]) -> dict[str, list[str]]:
        """Adjacency within ``names``: predecessor → tasks that wait on it."""
        members = set(names)
        adj: dict[str, list[str]] = {n: [] for n in members}
        for name in members:
            task = self._tasks[name]
            for dep in task.depends_on:
                if dep in members:
                    adj[dep].append(name)
            for fin in task.finalized_by:
                if fin in members:
                    adj[name].append(fin)
        return adj

    def validate(self) -> None:
        """Check references and acyclicity.

        Raises:
            TaskGraphError: On a reference to an unknown task or a cycle.
        """
        problems: list[str] = []
        for task in self._tasks.values():
            for ref in (*task.depends_on, *task.finalized_by):
                if ref not in self._tasks:
                    problems.append(f"Task '{task.name}' references unknown task '{ref}'")
        if problems:
            raise errors.TaskGraphError("; ".join(problems))

        ordered = self._kahn(self._tasks.keys())
        if len(ordered) < len(self._tasks):
            stuck = sorted(set(self._tasks) - set(ordered))
            raise errors.TaskGraphError(
                f"Dependency cycle detected among tasks: {', '.join(stuck)}"
            )

    # ── Planning ─────────────────────────────────────────────────

    def closure(self, targets: Iterable[str]) -> set[str]:
        """All tasks a run of ``targets`` involves.

        Dependencies are followed transitively; finalizers of every
        included task are added along with their own dependencies.
        """
        included: set[str] = set()
        stack = [self.require(t).name for t in targets]
        while stack:
            name = stack.pop()
            if name in included:
                continue
            included.add(name)
            task = self.require(name)
            stack.extend(task.depends_on)
            stack.extend(task.finalized_by)
        return included

    def predecessors(self, name: str, within: set[str]) -> set[str]:
        """Tasks in ``within`` that must finish before ``name`` starts."""
        task = self.require(name)
        preds = {d for d in task.depends_on if d in within}
        for other in within:
            if name in self._tasks[other].finalized_by:
                preds.add(other)
        return preds

    def resolve(self, targets: Iterable[str]) -> list[Task]:
        """Topologically ordered plan for running ``targets``.

        Raises:
            TaskGraphError: On unknown targets or a cycle in the closure.
        """
        members = self.closure(targets)
        ordered = self._kahn(members)
        if len(ordered) < len(members):
            stuck = sorted(members - set(ordered))
            raise errors.TaskGraphError(
                f"Dependency cycle detected among tasks: {', '.join(stuck)}"
            )
        return [self._tasks[n] for n in ordered]

    def _kahn(self, names: Iterable[str]) -> list[str]:
        """Kahn's algorithm; ties broken by registration order."""
        members = set(names)
        index = {n: i for i, n in enumerate(self._tasks)}
        adj = self._successors(members)

        in_degree = {n: 0 for n in members}
        for succs in adj.values():
            for s in succs:
                in_degree[s] += 1

        ready = sorted((n for n, d in in_degree.items() if d == 0), key=index.__getitem__)
        ordered: list[str] = []
        while ready:
            node = ready.pop(0)
            ordered.append(node)
            for successor in adj[node]:
                in_degree[successor] -= 1
                if in_degree[successor] == 0:
                    ready.append(successor)
            ready.sort(key=index.__getitem__)
        return ordered
