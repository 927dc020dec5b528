"""
BuildState — the root state document.

Serialized to .state/current.json. It carries the typed build results
that the image build step records for each module, and a summary of
the last operation. Delete it and the next build repopulates it.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from buildplane.core import errors


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class BuildResult(BaseModel):
    """Post-build metadata for one module.

    Produced by the external image build, consumed by the deployment
    configurator. Write-once: see ``BuildState.record_build``.
    """

    module: str
    image_name: str | None = None
    image_tag: str | None = None
    recorded_at: str = Field(default_factory=_now_iso)

    def same_output(self, other: BuildResult) -> bool:
        """Whether two results describe the same image."""
        return (
            self.module == other.module
            and self.image_name == other.image_name
            and self.image_tag == other.image_tag
        )


class OperationRecord(BaseModel):
    """Summary of the last operation."""

    operation_id: str = ""
    operation: str = ""          # check, coverage-report, configure-deployment
    started_at: str = ""
    ended_at: str = ""
    status: str = ""             # ok, partial, failed
    error: str | None = None


class BuildState(BaseModel):
    """Root state model — serialized to .state/current.json."""

    # ── Schema ───────────────────────────────────────────────────
    schema_version: int = 1

    # ── Identity ─────────────────────────────────────────────────
    project_name: str = ""

    # ── Timestamps ───────────────────────────────────────────────
    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)

    # ── Build outputs ────────────────────────────────────────────
    build_results: dict[str, BuildResult] = Field(default_factory=dict)

    # ── Last operation ───────────────────────────────────────────
    last_operation: OperationRecord = Field(default_factory=OperationRecord)

    metadata: dict[str, Any] = Field(default_factory=dict)

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()

    def record_build(self, result: BuildResult) -> bool:
        """Record a module's build output.

        Recording the same image twice is a no-op.

        Returns:
            True if the result was newly stored.

        Raises:
            ConfigurationError: If a different result is already recorded.
        """
        existing = self.build_results.get(result.module)
        if existing is not None:
            if existing.same_output(result):
                return False
            raise errors.ConfigurationError(
                f"Build result for '{result.module}' is already recorded "
                f"({existing.image_name}:{existing.image_tag}); clear the build state first"
            )
        self.build_results[result.module] = result
        return True

    def get_build(self, module: str) -> BuildResult | None:
        """Look up the recorded build result for a module."""
        return self.build_results.get(module)

    def clear_builds(self) -> None:
        """Forget all recorded build results (a new build is starting)."""
        self.build_results.clear()
