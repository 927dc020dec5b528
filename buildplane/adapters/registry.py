"""
Adapter registry — routes Actions to the adapter named in them.

Test steps, the coverage merge, the build-dir preparation and the
deployment script all pass through ``execute_action``. It owns the
checks every dispatch shares (mock mode, availability, cancellation,
validation, dry-run) and stamps the receipt's duration.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

from buildplane.adapters.base import Adapter, ExecutionContext
from buildplane.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Name → adapter table plus the shared dispatch path.

    In mock mode nothing is looked up: every action succeeds with
    ``return_code`` 0 and no side effects.
    """

    def __init__(self, mock_mode: bool = False):
        self._adapters: dict[str, Adapter] = {}
        self._mock_mode = mock_mode

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    def register(self, adapter: Adapter) -> None:
        if adapter.name in self._adapters:
            logger.warning("Replacing adapter %s", adapter.name)
        self._adapters[adapter.name] = adapter

    def get(self, name: str) -> Adapter | None:
        return self._adapters.get(name)

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Availability per adapter, for ``config check``."""
        return {
            name: {
                "name": name,
                "available": self._available(adapter),
                "type": type(adapter).__name__,
            }
            for name, adapter in self._adapters.items()
        }

    @staticmethod
    def _available(adapter: Adapter) -> bool:
        try:
            return adapter.is_available()
        except Exception as e:
            logger.debug("Availability check for %s raised: %s", adapter.name, e)
            return False

    def execute_action(
        self,
        action: Action,
        project_root: str = ".",
        dry_run: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> Receipt:
        """Dispatch ``action`` and return its receipt. Never raises."""
        start = time.monotonic()
        receipt = self._dispatch(action, project_root, dry_run, cancel_event)
        receipt.duration_ms = int((time.monotonic() - start) * 1000)
        return receipt

    def _dispatch(
        self,
        action: Action,
        project_root: str,
        dry_run: bool,
        cancel_event: threading.Event | None,
    ) -> Receipt:
        label = f"{action.adapter}:{action.name or action.id}"

        if self._mock_mode:
            return Receipt.success(
                adapter=action.adapter,
                action_id=action.id,
                output=f"[mock] {label} executed",
                metadata={"mock": True, "dry_run": dry_run, "return_code": 0},
            )

        adapter = self._adapters.get(action.adapter)
        if adapter is None:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"No adapter registered for '{action.adapter}'",
            )
        if not self._available(adapter):
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Adapter '{action.adapter}' is not available on this host",
                metadata={"unavailable": True},
            )

        # Cancelled before it started: nothing to stop
        if cancel_event is not None and cancel_event.is_set():
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"{label} cancelled before start",
                metadata={"cancelled": True},
            )

        context = ExecutionContext(
            action=action,
            project_root=project_root,
            dry_run=dry_run,
            cancel_event=cancel_event,
        )
        try:
            is_valid, error_msg = adapter.validate(context)
        except Exception as e:
            is_valid, error_msg = False, f"validator raised {e}"
        if not is_valid:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation failed: {error_msg}",
            )

        if dry_run:
            return Receipt.skip(
                adapter=action.adapter,
                action_id=action.id,
                reason=f"[dry-run] Would execute {label}",
                metadata={"dry_run": True},
            )

        logger.debug("Dispatching %s", label)
        try:
            return adapter.execute(context)
        except Exception as e:
            logger.error("Adapter %s raised on %s: %s", action.adapter, label, e)
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Unexpected error: {e}",
            )
