"""
Deploy use cases — ``configure-deployment`` and ``record-build``.

``record-build`` is the hook the image build calls to store a module's
image name and tag; ``configure-deployment`` reads those results back
and hands them to the release script.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from buildplane.adapters.registry import AdapterRegistry
from buildplane.core import errors
from buildplane.core.config.secrets import EnvironmentSecretProvider, SecretProvider
from buildplane.core.engine.executor import generate_operation_id
from buildplane.core.models.deployment import DeploymentOutcome
from buildplane.core.models.state import BuildResult
from buildplane.core.persistence.audit import AuditEntry
from buildplane.core.persistence.state_file import default_state_path, load_state, locked_state
from buildplane.core.services.deployment import DeploymentConfigurator
from buildplane.core.use_cases.workspace import default_registry, open_workspace, write_audit

logger = logging.getLogger(__name__)


@dataclass
class DeployResult:
    """Result of a configure-deployment invocation."""

    outcome: DeploymentOutcome | None = None
    project_root: Path | None = None
    error: str | None = None
    error_kind: str | None = None

    @property
    def exit_code(self) -> int | None:
        return self.outcome.exit_code if self.outcome else None

    def to_dict(self) -> dict:
        result: dict = {}
        if self.error:
            result["error"] = self.error
            result["error_kind"] = self.error_kind
        if self.project_root:
            result["project_root"] = str(self.project_root)
        if self.outcome:
            result["outcome"] = self.outcome.to_dict()
        return result


def configure_deployment(
    config_path: Path | None = None,
    overrides: Mapping[str, str] | None = None,
    environ: Mapping[str, str] | None = None,
    secrets: SecretProvider | None = None,
    registry: AdapterRegistry | None = None,
    mock_mode: bool = False,
    timeout: float | None = None,
    cancel_event: threading.Event | None = None,
) -> DeployResult:
    """Configure deployment from the recorded build results.

    Args:
        config_path: Optional explicit path to buildplane.yml.
        overrides: -P values.
        environ: Environment for properties and (by default) secrets.
        secrets: Credential source; defaults to the environment.
        registry: Optional pre-configured adapter registry.
        mock_mode: If True, nothing is created or spawned.
        timeout: Seconds before the script is stopped.
        cancel_event: Set to stop the script early.
    """
    result = DeployResult()
    start = time.monotonic()
    started_at = datetime.now(UTC).isoformat()
    operation_id = generate_operation_id()

    try:
        ws = open_workspace(config_path, overrides, environ)
    except errors.BuildPlaneError as e:
        result.error = str(e)
        result.error_kind = e.kind
        return result
    result.project_root = ws.project_root

    # Read-only snapshot; the state is reloaded under the lock to persist
    state_path = default_state_path(ws.project_root)
    state = load_state(state_path)

    configurator = DeploymentConfigurator(
        graph=ws.graph,
        state=state,
        properties=ws.properties,
        secrets=secrets or EnvironmentSecretProvider(environ),
        registry=registry or default_registry(mock_mode=mock_mode),
        project_root=ws.project_root,
        timeout=timeout,
    )

    try:
        configurator.configure(cancel_event=cancel_event)
    except errors.DeploymentInProgressError as e:
        # The running invocation owns the state file and ledger
        result.error = str(e)
        result.error_kind = e.kind
        return result
    except errors.BuildPlaneError as e:
        result.error = str(e)
        result.error_kind = e.kind
    result.outcome = configurator.outcome

    # ── Persist state + audit ───────────────────────────────────
    status = "ok" if result.error is None else "failed"
    try:
        with locked_state(state_path) as current:
            op = current.last_operation
            op.operation_id = operation_id
            op.operation = "configure-deployment"
            op.started_at = started_at
            op.ended_at = datetime.now(UTC).isoformat()
            op.status = status
            op.error = result.error
            current.project_name = ws.graph.name
    except OSError as e:
        logger.warning("State not saved: %s", e)

    write_audit(ws.project_root, AuditEntry(
        operation_id=operation_id,
        operation_type="configure-deployment",
        modules_affected=sorted(state.build_results),
        status=status,
        duration_ms=int((time.monotonic() - start) * 1000),
        errors=[result.error] if result.error else [],
        context={
            "phase": result.outcome.phase.value,
            "exit_code": result.outcome.exit_code,
            "environment_keys": result.outcome.environment_keys,
        },
    ))
    return result


@dataclass
class RecordBuildResult:
    """Result of recording a module's build output."""

    build: BuildResult | None = None
    stored: bool = False
    error: str | None = None
    error_kind: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error, "error_kind": self.error_kind}
        return {
            "stored": self.stored,
            "build": self.build.model_dump(mode="json") if self.build else None,
        }


def record_build(
    module: str,
    image_name: str,
    image_tag: str | None = None,
    config_path: Path | None = None,
    reset: bool = False,
) -> RecordBuildResult:
    """Store the image a module's build produced.

    Args:
        module: Module name; must be declared.
        image_name: Produced image name.
        image_tag: Produced image tag.
        config_path: Optional explicit path to buildplane.yml.
        reset: Forget all previous results first (a new build).
    """
    result = RecordBuildResult()
    try:
        ws = open_workspace(config_path)
        ws.graph.require_module(module)

        build = BuildResult(module=module, image_name=image_name, image_tag=image_tag)
        with locked_state(default_state_path(ws.project_root)) as state:
            if reset:
                state.clear_builds()
            result.stored = state.record_build(build)
            result.build = state.get_build(module)
            state.project_name = ws.graph.name
    except errors.BuildPlaneError as e:
        result.error = str(e)
        result.error_kind = e.kind
        return result
    except OSError as e:
        result.error = f"Cannot save build state: {e}"
        result.error_kind = "io"
        return result

    write_audit(ws.project_root, AuditEntry(
        operation_id=generate_operation_id(),
        operation_type="record-build",
        modules_affected=[module],
        status="ok",
        context={"image_name": image_name, "image_tag": image_tag, "stored": result.stored},
    ))
    logger.info(
        "Build result for %s: %s:%s (%s)",
        module,
        image_name,
        image_tag,
        "stored" if result.stored else "unchanged",
    )
    return result
