"""
Coverage adapter — runs the unified coverage merge as an engine step.
"""

from __future__ import annotations

import logging
from pathlib import Path

from buildplane.adapters.base import Adapter, ExecutionContext
from buildplane.core.models.action import Receipt
from buildplane.core.models.coverage import CoverageArtifact
from buildplane.core.services.coverage import merge_coverage, write_unified_report

logger = logging.getLogger(__name__)


class CoverageMergeAdapter(Adapter):
    """Merge contributor reports and write the unified one.

    Action params:
        artifacts (list[dict]): ``{"module": ..., "path": ...}`` inputs.
        missing (list[str]): Contributors already known to be absent.
        output_path (str): Where the unified XML goes.
    """

    @property
    def name(self) -> str:
        return "coverage"

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        if not context.params.get("output_path"):
            return False, "Missing required param: 'output_path'"
        for entry in context.params.get("artifacts", []):
            if "module" not in entry or "path" not in entry:
                return False, f"Malformed coverage artifact: {entry!r}"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        root = Path(context.project_root)
        output = Path(context.params["output_path"])
        if not output.is_absolute():
            output = root / output

        artifacts = []
        for entry in context.params.get("artifacts", []):
            path = Path(entry["path"])
            artifacts.append(CoverageArtifact(
                source_module=entry["module"],
                report_path=path if path.is_absolute() else root / path,
            ))

        report = merge_coverage(artifacts, output, context.params.get("missing", []))
        try:
            write_unified_report(report)
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Could not write unified coverage report: {e}",
                metadata={"output_path": str(output)},
            )

        return Receipt.success(
            adapter=self.name,
            action_id=context.action.id,
            output=(
                f"{report.covered}/{report.total} lines covered "
                f"({report.percentage:.2f}%) from {len(report.inputs)} module(s)"
            ),
            metadata=report.to_dict(),
        )
