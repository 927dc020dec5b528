"""
Mock adapter — test double standing in for any named adapter.

Records every context it receives, so tests can assert how often (and
with what environment) a process would have been launched.
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from buildplane.adapters.base import Adapter, ExecutionContext
from buildplane.core.models.action import Receipt


class MockAdapter(Adapter):
    """Universal mock adapter for testing.

    By default, returns success for everything. Responses can be set
    per action name (task name) or computed by a handler.
    """

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_output: str = "[mock] executed",
        handler: Callable[[ExecutionContext], Receipt] | None = None,
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._handler = handler
        self._responses: dict[str, Receipt] = {}
        self._call_log: list[ExecutionContext] = []
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        """Number of times execute has been called."""
        return len(self._call_log)

    def is_available(self) -> bool:
        return self._available

    def set_response(self, action_name: str, receipt: Receipt) -> None:
        """Set a custom response for a specific action name."""
        self._responses[action_name] = receipt

    def set_failure(self, action_name: str, error: str = "Mock failure", return_code: int = 1) -> None:
        """Configure a specific action to fail."""
        self._responses[action_name] = Receipt.failure(
            adapter=self._name,
            action_id=action_name,
            error=error,
            metadata={"return_code": return_code},
        )

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        with self._lock:
            self._call_log.append(context)

        if self._handler is not None:
            return self._handler(context)

        action = context.action
        key = action.name or action.id
        if key in self._responses:
            return self._responses[key].model_copy(update={"action_id": action.id})

        return Receipt.success(
            adapter=self._name,
            action_id=action.id,
            output=self._default_output,
            metadata={"mock": True, "return_code": 0},
        )

    def reset(self) -> None:
        """Clear call log and custom responses."""
        self._call_log.clear()
        self._responses.clear()
