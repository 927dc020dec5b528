"""
Deployment configurator — hand build outputs to the release script.

One invocation walks a fixed sequence of phases:

    Idle → ResolvingModules → ReadingMetadata → ReadingExternalConfig
         → PreparingOutputDir → InvokingScript → Succeeded | Failed

Every value the script needs is gathered before anything touches the
disk or spawns a process, so a missing value leaves no side effects.
A failure jumps straight to Failed with the originating error; later
phases never run. There is no retry and no rollback.

Only one invocation may be in flight at a time: a thread lock guards
the process and a file lock under .state/ guards against other
buildplane processes.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

from buildplane.adapters.registry import AdapterRegistry
from buildplane.core import errors
from buildplane.core.config.properties import CICD_ICR_PUBLISH_REPO, PropertyStore
from buildplane.core.config.secrets import GIT_PASSWORD, GIT_USERNAME, SecretProvider
from buildplane.core.models.action import Action, Receipt
from buildplane.core.models.deployment import (
    PHASE_SEQUENCE,
    DeploymentContext,
    DeploymentOutcome,
    DeploymentPhase,
)
from buildplane.core.models.project import DATA_ACCESS, PRIMARY_SERVICE, ProjectGraph
from buildplane.core.models.state import BuildResult, BuildState
from buildplane.core.persistence.locking import LockBusyError, file_lock
from buildplane.core.persistence.state_file import DEFAULT_STATE_DIR

logger = logging.getLogger(__name__)

DEPLOYMENT_SCRIPT = ".ci/configure_deployment.sh"
BUILD_DIR_NAME = "build"
LOCK_FILE = f"{DEFAULT_STATE_DIR}/configure-deployment.lock"

# Passed through from the parent so the script can locate its tools
_INHERITED_ENV_KEYS = ("PATH", "HOME")

_in_flight = threading.Lock()


class DeploymentConfigurator:
    """Builds the deployment context and runs the release script.

    Args:
        graph: The loaded project graph.
        state: Build state carrying the recorded build results.
        properties: Source of CICD_ICR_PUBLISH_REPO.
        secrets: Source of the git credentials.
        registry: Dispatch for the filesystem and shell steps.
        project_root: Root the script path and build dir hang off.
        script: Script path relative to the project root.
        timeout: Optional seconds before the script is stopped.
        parent_environ: Where PATH/HOME are inherited from.
    """

    def __init__(
        self,
        graph: ProjectGraph,
        state: BuildState,
        properties: PropertyStore,
        secrets: SecretProvider,
        registry: AdapterRegistry,
        project_root: Path,
        script: str = DEPLOYMENT_SCRIPT,
        timeout: float | None = None,
        parent_environ: Mapping[str, str] | None = None,
    ):
        self.graph = graph
        self.state = state
        self.properties = properties
        self.secrets = secrets
        self.registry = registry
        self.project_root = project_root
        self.script = script
        self.timeout = timeout
        self._parent_environ = os.environ if parent_environ is None else parent_environ
        self.outcome = DeploymentOutcome()

    @property
    def script_path(self) -> Path:
        return self.project_root / self.script

    @property
    def build_dir(self) -> Path:
        return self.project_root / BUILD_DIR_NAME

    def configure(self, cancel_event: threading.Event | None = None) -> DeploymentOutcome:
        """Run one configure-deployment invocation.

        The outcome is also kept on ``self.outcome``, including when an
        error is raised.

        Raises:
            DeploymentInProgressError: Another invocation holds the lock.
            ModuleNotFoundError: A required module is not declared.
            MissingBuildArtifactError: A module has no recorded image.
            MissingConfigurationError: A value or credential is absent.
            DeploymentScriptError: The script failed, was cancelled, or timed out.
        """
        if not _in_flight.acquire(blocking=False):
            logger.warning("Rejected configure-deployment: one is already running")
            raise errors.DeploymentInProgressError()

        try:
            with file_lock(self.lock_path, blocking=False):
                return self._configure_locked(cancel_event)
        except LockBusyError:
            logger.warning(
                "Rejected configure-deployment: %s is held by another process",
                self.lock_path,
            )
            raise errors.DeploymentInProgressError() from None
        finally:
            _in_flight.release()

    @property
    def lock_path(self) -> Path:
        return self.project_root / LOCK_FILE

    def _configure_locked(self, cancel_event: threading.Event | None) -> DeploymentOutcome:
        outcome = DeploymentOutcome(transitions=[DeploymentPhase.IDLE])
        self.outcome = outcome
        try:
            self._run(outcome, cancel_event)
        except errors.BuildPlaneError as e:
            outcome.phase = DeploymentPhase.FAILED
            outcome.transitions.append(DeploymentPhase.FAILED)
            outcome.reason = getattr(e, "reason", None) or str(e)
            logger.error("configure-deployment failed: %s", e)
            raise
        return outcome

    # ── Phases ──────────────────────────────────────────────────

    def _run(self, outcome: DeploymentOutcome, cancel_event: threading.Event | None) -> None:
        # Each _advance takes the next phase from PHASE_SEQUENCE
        phases = iter(PHASE_SEQUENCE[1:])

        self._advance(outcome, phases, cancel_event)
        service = self.graph.require_module(PRIMARY_SERVICE)
        db_update = self.graph.require_module(DATA_ACCESS)

        self._advance(outcome, phases, cancel_event)
        service_build = self._require_build(service.name, need_tag=True)
        db_build = self._require_build(db_update.name, need_tag=False)

        self._advance(outcome, phases, cancel_event)
        publish_repo = self.properties.require(CICD_ICR_PUBLISH_REPO)
        username = self.secrets.require(GIT_USERNAME)
        password = self.secrets.require(GIT_PASSWORD)

        self._advance(outcome, phases, cancel_event)
        build_dir = self.build_dir
        receipt = self._dispatch(
            "filesystem",
            "prepare-build-dir",
            {"operation": "mkdir", "path": str(build_dir)},
        )
        if receipt.failed:
            raise errors.DeploymentScriptError(f"cannot prepare {build_dir}: {receipt.error}")
        outcome.build_dir = str(build_dir)

        context = DeploymentContext(
            app_image_name=service_build.image_name,
            db_update_image_name=db_build.image_name,
            publish_repo=publish_repo,
            build_dir=str(build_dir),
            build_version=service_build.image_tag,
            git_username=username,
            git_password=password,
        )
        environment = context.to_environment()
        outcome.environment_keys = sorted(environment)

        self._advance(outcome, phases, cancel_event)
        logger.info(
            "Invoking %s with environment keys: %s",
            self.script,
            ", ".join(outcome.environment_keys),
        )
        logger.debug("Script environment: %s", context.to_dict())
        receipt = self._dispatch(
            "shell",
            "configure-deployment",
            {
                "command": [str(self.script_path)],
                "args": [str(build_dir)],
                "env": self._script_environment(environment),
                "inherit_env": False,
                "timeout": self.timeout,
            },
            cancel_event,
        )
        outcome.exit_code = receipt.return_code

        if receipt.cancelled:
            raise errors.DeploymentScriptError("cancelled", outcome.exit_code)
        if receipt.timed_out:
            raise errors.DeploymentScriptError("timed out", outcome.exit_code)
        if receipt.failed:
            raise errors.DeploymentScriptError(
                receipt.error or "script failed", outcome.exit_code
            )

        # Finished; a late cancel no longer applies
        self._advance(outcome, phases, None)
        logger.info("Deployment configured in %s", build_dir)

    def _advance(
        self,
        outcome: DeploymentOutcome,
        phases: Iterator[DeploymentPhase],
        cancel_event: threading.Event | None,
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise errors.DeploymentScriptError("cancelled")
        phase = next(phases)
        outcome.phase = phase
        outcome.transitions.append(phase)
        logger.debug("configure-deployment → %s", phase.value)

    def _require_build(self, module: str, need_tag: bool) -> BuildResult:
        result = self.state.get_build(module)
        if result is None or not result.image_name:
            raise errors.MissingBuildArtifactError(module, "image name")
        if need_tag and not result.image_tag:
            raise errors.MissingBuildArtifactError(module, "image tag")
        return result

    def _script_environment(self, environment: dict[str, str]) -> dict[str, str]:
        env = {
            key: self._parent_environ[key]
            for key in _INHERITED_ENV_KEYS
            if key in self._parent_environ
        }
        env.update(environment)
        return env

    def _dispatch(
        self,
        adapter: str,
        name: str,
        params: dict[str, Any],
        cancel_event: threading.Event | None = None,
    ) -> Receipt:
        action = Action(
            id=f"configure-deployment:{name}",
            name=name,
            adapter=adapter,
            params=params,
        )
        return self.registry.execute_action(
            action,
            project_root=str(self.project_root),
            cancel_event=cancel_event,
        )
