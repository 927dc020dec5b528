"""
Verify use cases — ``check`` and ``coverage-report``.

Loads the project, applies conventions, builds the task graph, runs
the requested targets through the executor, and persists the outcome
to the state file and the audit ledger.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from buildplane.adapters.registry import AdapterRegistry
from buildplane.core import errors
from buildplane.core.engine.executor import (
    ExecutionPlan,
    ExecutionReport,
    build_plan,
    execute_plan,
    generate_operation_id,
)
from buildplane.core.engine.graph import TaskGraph
from buildplane.core.models.project import ProjectGraph
from buildplane.core.persistence.audit import AuditEntry
from buildplane.core.persistence.state_file import default_state_path, locked_state
from buildplane.core.services.conventions import apply_conventions
from buildplane.core.services.coverage import CHECK_TASK, UNIFIED_REPORT_TASK
from buildplane.core.services.tasks import build_task_graph, coverage_report_targets
from buildplane.core.use_cases.workspace import (
    Workspace,
    default_registry,
    open_workspace,
    write_audit,
)

logger = logging.getLogger(__name__)


@dataclass
class VerifyResult:
    """Result of running a set of build targets."""

    operation: str = ""
    targets: list[str] = field(default_factory=list)
    plan: ExecutionPlan | None = None
    report: ExecutionReport | None = None
    project: ProjectGraph | None = None
    project_root: Path | None = None
    error: str | None = None
    error_kind: str | None = None

    @property
    def coverage(self) -> dict[str, Any] | None:
        """Summary of the unified coverage report, if the merge ran."""
        if self.report is None:
            return None
        receipt = self.report.task_receipts.get(UNIFIED_REPORT_TASK)
        if receipt is None or not receipt.ok or "lines_total" not in receipt.metadata:
            return None
        return receipt.metadata

    @property
    def ok(self) -> bool:
        return self.error is None and self.report is not None and self.report.all_ok

    def failure_message(self) -> str | None:
        """The first fatal error, for the CLI to print."""
        if self.error:
            return self.error
        if self.report is None:
            return None
        first = self.report.first_failure()
        if first is None:
            return None
        name, receipt = first
        return f"Task '{name}' failed: {receipt.error or 'no details'}"

    def to_dict(self) -> dict:
        result: dict = {"operation": self.operation, "targets": self.targets}
        if self.error:
            result["error"] = self.error
            result["error_kind"] = self.error_kind
            return result

        result["project_name"] = self.project.name if self.project else ""
        result["project_root"] = str(self.project_root)
        if self.plan:
            result["plan"] = self.plan.order
        if self.report:
            result["report"] = self.report.to_dict()
        if self.coverage:
            result["coverage"] = self.coverage
        return result


def _prepare(
    config_path: Path | None,
    overrides: Mapping[str, str] | None,
    system_properties: Mapping[str, str] | None,
    environ: Mapping[str, str] | None,
) -> tuple[Workspace, TaskGraph]:
    ws = open_workspace(config_path, overrides, environ)
    conventions = apply_conventions(
        ws.selected,
        ws.properties,
        system_properties=system_properties,
        project_root=ws.project_root,
    )
    tasks = build_task_graph(ws.graph, ws.selected, conventions, ws.project_root)
    return ws, tasks


def _run(
    operation: str,
    pick_targets,
    config_path: Path | None,
    overrides: Mapping[str, str] | None,
    system_properties: Mapping[str, str] | None,
    environ: Mapping[str, str] | None,
    dry_run: bool,
    mock_mode: bool,
    workers: int,
    registry: AdapterRegistry | None,
) -> VerifyResult:
    result = VerifyResult(operation=operation)
    start = time.monotonic()

    # ── Load, select, apply, wire ───────────────────────────────
    try:
        ws, tasks = _prepare(config_path, overrides, system_properties, environ)
        result.project = ws.graph
        result.project_root = ws.project_root
        result.targets = pick_targets(ws, tasks)
        operation_id = generate_operation_id()
        plan = build_plan(tasks, result.targets, operation_id)
        result.plan = plan
    except errors.BuildPlaneError as e:
        result.error = str(e)
        result.error_kind = e.kind
        return result

    logger.info("%s: %d tasks planned (%s)", operation, plan.total_tasks, operation_id)

    # ── Execute ─────────────────────────────────────────────────
    if registry is None:
        registry = default_registry(mock_mode=mock_mode)
    try:
        report = execute_plan(
            plan,
            registry,
            project_root=str(ws.project_root),
            dry_run=dry_run,
            workers=workers,
        )
    except errors.TaskGraphError as e:
        result.error = str(e)
        result.error_kind = e.kind
        return result
    result.report = report

    if dry_run:
        return result

    # ── Persist state + audit ───────────────────────────────────
    failure = result.failure_message()
    coverage = None
    if result.coverage:
        coverage = {
            k: result.coverage[k]
            for k in ("output_path", "contributors", "missing", "lines_covered", "lines_total", "percentage")
        }
    try:
        with locked_state(default_state_path(ws.project_root)) as state:
            state.project_name = ws.graph.name
            op = state.last_operation
            op.operation_id = operation_id
            op.operation = operation
            op.started_at = report.receipts[0].started_at if report.receipts else ""
            op.ended_at = report.receipts[-1].ended_at if report.receipts else ""
            op.status = report.status
            op.error = failure
            if coverage:
                state.metadata["coverage"] = coverage
    except OSError as e:
        logger.warning("State not saved: %s", e)

    write_audit(ws.project_root, AuditEntry(
        operation_id=operation_id,
        operation_type=operation,
        targets=result.targets,
        modules_affected=sorted({t.module for t in plan.tasks if t.module}),
        status=report.status,
        tasks_total=report.total,
        tasks_succeeded=report.succeeded,
        tasks_failed=report.failed,
        tasks_skipped=report.skipped,
        duration_ms=int((time.monotonic() - start) * 1000),
        errors=[failure] if failure else [],
        context={"coverage": coverage} if coverage else {},
    ))

    return result


def run_check(
    config_path: Path | None = None,
    overrides: Mapping[str, str] | None = None,
    system_properties: Mapping[str, str] | None = None,
    environ: Mapping[str, str] | None = None,
    dry_run: bool = False,
    mock_mode: bool = False,
    workers: int = 1,
    registry: AdapterRegistry | None = None,
) -> VerifyResult:
    """Full verification: every test step plus the unified coverage merge."""
    return _run(
        "check",
        lambda ws, tasks: [CHECK_TASK],
        config_path, overrides, system_properties, environ,
        dry_run, mock_mode, workers, registry,
    )


def run_coverage_report(
    config_path: Path | None = None,
    overrides: Mapping[str, str] | None = None,
    system_properties: Mapping[str, str] | None = None,
    environ: Mapping[str, str] | None = None,
    dry_run: bool = False,
    mock_mode: bool = False,
    workers: int = 1,
    registry: AdapterRegistry | None = None,
) -> VerifyResult:
    """Run the contributors' report tasks, finalized by the merge."""
    return _run(
        "coverage-report",
        lambda ws, tasks: coverage_report_targets(tasks, ws.graph.coverage.contributors),
        config_path, overrides, system_properties, environ,
        dry_run, mock_mode, workers, registry,
    )


def describe_plan(
    targets: list[str] | None = None,
    config_path: Path | None = None,
    overrides: Mapping[str, str] | None = None,
    system_properties: Mapping[str, str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> VerifyResult:
    """Resolve ``targets`` (default: check) without running anything."""
    result = VerifyResult(operation="tasks")
    try:
        ws, tasks = _prepare(config_path, overrides, system_properties, environ)
        result.project = ws.graph
        result.project_root = ws.project_root
        result.targets = list(targets) if targets else [CHECK_TASK]
        result.plan = build_plan(tasks, result.targets, operation_id="plan")
    except errors.BuildPlaneError as e:
        result.error = str(e)
        result.error_kind = e.kind
    return result
