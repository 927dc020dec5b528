"""
Task model — one named step in the build's task graph.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

TaskKind = Literal["test", "coverage_report", "unified_coverage", "gate"]


class Task(BaseModel):
    """A node in the task graph.

    ``depends_on`` are hard predecessors: the task never starts before
    they complete. ``finalized_by`` names tasks that are pulled into the
    plan and scheduled after this one whenever this one is planned.
    """

    name: str
    kind: TaskKind = "gate"
    module: str | None = None
    description: str = ""

    depends_on: list[str] = Field(default_factory=list)
    finalized_by: list[str] = Field(default_factory=list)

    enabled: bool = True
    # Join points run even if a predecessor failed (partial input is fine)
    runs_after_failure: bool = False

    params: dict[str, Any] = Field(default_factory=dict)
