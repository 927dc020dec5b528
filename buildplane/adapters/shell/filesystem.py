"""
Filesystem adapter — directory preparation.

Gives the deployment flow a receipt-returning way to touch the disk,
so those steps can be mocked and dry-run like any other.
"""

from __future__ import annotations

import logging
from pathlib import Path

from buildplane.adapters.base import Adapter, ExecutionContext
from buildplane.core.models.action import Receipt

logger = logging.getLogger(__name__)


class FilesystemAdapter(Adapter):
    """Directory preparation with receipts.

    Action params:
        operation (str): Only 'mkdir' (create with parents; existing is fine).
        path (str): Target path (relative to working_dir or absolute).
    """

    @property
    def name(self) -> str:
        return "filesystem"

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.params.get("operation", "")
        if not operation:
            return False, "Missing required param: 'operation'"

        valid_ops = {"mkdir"}
        if operation not in valid_ops:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(valid_ops))}"

        if not context.params.get("path"):
            return False, "Missing required param: 'path'"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.params["operation"]
        target = Path(context.params["path"])
        if not target.is_absolute():
            target = Path(context.working_dir) / target

        try:
            return self._mkdir(context, target)
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Filesystem error ({operation}): {e}",
                metadata={"path": str(target)},
            )

    def _mkdir(self, context: ExecutionContext, target: Path) -> Receipt:
        already = target.is_dir()
        target.mkdir(parents=True, exist_ok=True)
        logger.debug("mkdir -p %s (existed=%s)", target, already)
        return Receipt.success(
            adapter=self.name,
            action_id=context.action.id,
            output=f"Directory ready: {target}",
            metadata={"path": str(target), "created": not already},
        )
