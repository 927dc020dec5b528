"""
Action and Receipt models — what the engine asks for, what comes back.

The executor turns task-graph nodes into Actions; the deployment
configurator builds its own for the build dir and the script. Adapters
answer every Action with a Receipt and never raise.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class Action(BaseModel):
    """One unit of side-effecting work, routed by ``adapter``."""

    id: str                         # operation-scoped, e.g. "op-…:common:test"
    name: str = ""                  # task or step name; mock responses key on it
    adapter: str                    # shell, filesystem, coverage
    params: dict[str, Any] = Field(default_factory=dict)
    module: str | None = None       # owning module, None for project-wide steps


class Receipt(BaseModel):
    """Outcome of one Action.

    Process details live in ``metadata``: ``return_code`` always for
    the shell adapter, plus ``cancelled`` or ``timed_out`` when the
    child was stopped early.
    """

    adapter: str
    action_id: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def return_code(self) -> int | None:
        return self.metadata.get("return_code")

    @property
    def cancelled(self) -> bool:
        return bool(self.metadata.get("cancelled"))

    @property
    def timed_out(self) -> bool:
        return bool(self.metadata.get("timed_out"))

    @classmethod
    def success(cls, adapter: str, action_id: str, output: str = "", **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, status="ok", output=output, **kwargs)

    @classmethod
    def failure(cls, adapter: str, action_id: str, error: str, **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, adapter: str, action_id: str, reason: str = "", **kwargs: Any) -> Receipt:
        """A settled-without-running receipt; ``reason`` lands in ``output``."""
        return cls(adapter=adapter, action_id=action_id, status="skipped", output=reason, **kwargs)
