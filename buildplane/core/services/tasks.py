"""
Task graph construction for a loaded project.

Every selected module gets a test step (when it declares one) and a
coverage report step; the ``check`` gate waits on all test steps; the
coverage aggregator then wires the unified report in.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from buildplane.core.engine.graph import TaskGraph
from buildplane.core.models.module import Module
from buildplane.core.models.project import ProjectGraph
from buildplane.core.models.task import Task
from buildplane.core.services.conventions import ModuleConventions
from buildplane.core.services.coverage import (
    CHECK_TASK,
    UNIFIED_REPORT_TASK,
    module_report_task,
    module_test_task,
    register_coverage_tasks,
)

logger = logging.getLogger(__name__)


def build_task_graph(
    graph: ProjectGraph,
    selected: list[Module],
    conventions: dict[str, ModuleConventions],
    project_root: Path,
    contributors: list[str] | None = None,
) -> TaskGraph:
    """Build and validate the task graph for the selected modules.

    Raises:
        TaskGraphError: If the resulting graph is inconsistent.
    """
    tasks = TaskGraph()
    test_tasks: list[str] = []

    for module in selected:
        conv = conventions.get(module.name)
        if module.has_tests:
            name = module_test_task(module.name)
            tasks.add(Task(
                name=name,
                kind="test",
                module=module.name,
                description=f"Run {module.name} tests",
                params={
                    "command": module.test_command,
                    "cwd": str(project_root / module.directory),
                    "env": conv.process_environment() if conv else {},
                    "timeout": conv.test_timeout_seconds if conv else None,
                    "clean_paths": [str(project_root / module.directory / module.coverage_report)],
                },
            ))
            test_tasks.append(name)

        tasks.add(Task(
            name=module_report_task(module.name),
            kind="coverage_report",
            module=module.name,
            description=f"Coverage report for {module.name}",
            depends_on=[module_test_task(module.name)] if module.has_tests else [],
            enabled=conv.coverage_report_enabled if conv else True,
        ))

    tasks.add(Task(
        name=CHECK_TASK,
        kind="gate",
        description="Full verification",
        depends_on=list(test_tasks),
    ))

    register_coverage_tasks(tasks, graph, selected, project_root, contributors)
    tasks.validate()

    logger.debug("Task graph: %d tasks", len(tasks))
    return tasks


def coverage_report_targets(tasks: TaskGraph, contributors: Iterable[str]) -> list[str]:
    """Targets for ``coverage-report``: the contributors' report tasks.

    Each is finalized by the unified merge, so requesting them runs the
    contributor tests and then the merge.
    """
    targets = [
        module_report_task(name)
        for name in contributors
        if module_report_task(name) in tasks
    ]
    return targets or [UNIFIED_REPORT_TASK]
