"""
Engine executor — runs a resolved task plan.

Flow:
    targets → resolve plan (graph.py) → dispatch ready tasks → collect receipts

A task is ready when every predecessor in the plan has a receipt.
Independent ready tasks may run in parallel (``workers > 1``); a join
point like the unified coverage merge simply waits until all of its
predecessors are done. When a predecessor fails, downstream tasks are
skipped, except those marked ``runs_after_failure`` which still run
with whatever inputs exist.
"""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import UTC, datetime

from buildplane.adapters.registry import AdapterRegistry
from buildplane.core import errors
from buildplane.core.engine.graph import TaskGraph
from buildplane.core.models.action import Action, Receipt
from buildplane.core.models.task import Task

logger = logging.getLogger(__name__)

# Task kinds dispatched to an adapter; everything else completes inline
_ADAPTER_BY_KIND = {
    "test": "shell",
    "unified_coverage": "coverage",
}


@dataclass
class ExecutionPlan:
    """A resolved, ordered set of tasks to run."""

    operation_id: str = ""
    targets: list[str] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    predecessors: dict[str, set[str]] = field(default_factory=dict)

    @property
    def total_tasks(self) -> int:
        return len(self.tasks)

    @property
    def order(self) -> list[str]:
        return [t.name for t in self.tasks]


@dataclass
class ExecutionReport:
    """Result of executing a plan."""

    operation_id: str = ""
    targets: list[str] = field(default_factory=list)
    receipts: list[Receipt] = field(default_factory=list)
    task_receipts: dict[str, Receipt] = field(default_factory=dict)
    completion_order: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.receipts)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.receipts if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.receipts if r.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.receipts if r.status == "skipped")

    @property
    def all_ok(self) -> bool:
        return self.failed == 0

    @property
    def status(self) -> str:
        if self.failed == 0:
            return "ok"
        if self.succeeded > 0:
            return "partial"
        return "failed"

    def first_failure(self) -> tuple[str, Receipt] | None:
        """The earliest failed task, in completion order."""
        for name in self.completion_order:
            receipt = self.task_receipts[name]
            if receipt.failed:
                return name, receipt
        return None

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "targets": self.targets,
            "status": self.status,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "order": self.completion_order,
            "receipts": {
                name: r.model_dump(mode="json") for name, r in self.task_receipts.items()
            },
        }


def build_plan(tasks: TaskGraph, targets: list[str], operation_id: str) -> ExecutionPlan:
    """Resolve ``targets`` into an ordered plan.

    Raises:
        TaskGraphError: On unknown targets or cycles.
    """
    ordered = tasks.resolve(targets)
    members = {t.name for t in ordered}
    return ExecutionPlan(
        operation_id=operation_id,
        targets=list(targets),
        tasks=ordered,
        predecessors={t.name: tasks.predecessors(t.name, members) for t in ordered},
    )


def _action_for(task: Task, operation_id: str) -> Action:
    return Action(
        id=f"{operation_id}:{task.name}",
        name=task.name,
        adapter=_ADAPTER_BY_KIND[task.kind],
        params=dict(task.params),
        module=task.module,
    )


def _precheck(
    task: Task,
    plan: ExecutionPlan,
    blocked: set[str],
    dry_run: bool,
) -> Receipt | None:
    """Settle a task without dispatching it, if possible."""
    action_id = f"{plan.operation_id}:{task.name}"

    if not task.enabled:
        return Receipt.skip(adapter="engine", action_id=action_id, reason="disabled")

    upstream = sorted(plan.predecessors[task.name] & blocked)
    if upstream and not task.runs_after_failure:
        return Receipt.skip(
            adapter="engine",
            action_id=action_id,
            reason=f"upstream failed: {', '.join(upstream)}",
            metadata={"upstream_failed": upstream},
        )

    if task.kind not in _ADAPTER_BY_KIND:
        if dry_run:
            return Receipt.skip(
                adapter="engine", action_id=action_id, reason=f"[dry-run] {task.name}"
            )
        return Receipt.success(adapter="engine", action_id=action_id, output=task.description)

    return None


def execute_plan(
    plan: ExecutionPlan,
    registry: AdapterRegistry,
    project_root: str = ".",
    dry_run: bool = False,
    workers: int = 1,
) -> ExecutionReport:
    """Execute all tasks in a plan through the adapter registry.

    Args:
        plan: The resolved plan.
        registry: Adapter registry for dispatch.
        project_root: Project root directory.
        dry_run: If True, validate but don't execute.
        workers: Maximum tasks running at once.

    Returns:
        ExecutionReport with one receipt per task.
    """
    report = ExecutionReport(operation_id=plan.operation_id, targets=list(plan.targets))
    blocked: set[str] = set()
    pending = list(plan.tasks)
    running: dict[Future[Receipt], Task] = {}
    workers = max(1, workers)

    def record(task: Task, receipt: Receipt) -> None:
        report.receipts.append(receipt)
        report.task_receipts[task.name] = receipt
        report.completion_order.append(task.name)
        if receipt.failed or receipt.metadata.get("upstream_failed"):
            blocked.add(task.name)

        status_marker = "✓" if receipt.ok else "✗" if receipt.failed else "⊘"
        logger.info("%s %s → %s", status_marker, task.name, receipt.status)

    def is_ready(task: Task) -> bool:
        return all(p in report.task_receipts for p in plan.predecessors[task.name])

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="buildplane") as pool:
        while pending or running:
            # Settle disabled, blocked and inline tasks until nothing changes
            settled_any = True
            while settled_any:
                settled_any = False
                for task in list(pending):
                    if not is_ready(task):
                        continue
                    settled = _precheck(task, plan, blocked, dry_run)
                    if settled is not None:
                        pending.remove(task)
                        record(task, settled)
                        settled_any = True

            for task in list(pending):
                if len(running) >= workers:
                    break
                if not is_ready(task):
                    continue
                pending.remove(task)
                future = pool.submit(
                    registry.execute_action,
                    action=_action_for(task, plan.operation_id),
                    project_root=project_root,
                    dry_run=dry_run,
                )
                running[future] = task

            if not running:
                if pending:
                    stuck = ", ".join(t.name for t in pending)
                    raise errors.TaskGraphError(f"No runnable tasks left; stuck on: {stuck}")
                break

            done, _ = wait(running, return_when=FIRST_COMPLETED)
            for future in done:
                task = running.pop(future)
                record(task, future.result())

    return report


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"
