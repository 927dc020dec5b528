"""
Error taxonomy — every fatal condition the core can report.

Core services raise these; use cases catch ``BuildPlaneError`` and turn
it into a result object; the CLI prints the message and exits non-zero.
None of them are retried.

Import the module rather than the names:

    from buildplane.core import errors
    raise errors.ModuleNotFoundError("data-access")

``ModuleNotFoundError`` deliberately shares its name with the builtin,
so a bare ``from ... import ModuleNotFoundError`` would shadow it.
"""

from __future__ import annotations


class BuildPlaneError(Exception):
    """Base class for all buildplane errors."""

    kind: str = "error"


class ConfigurationError(BuildPlaneError):
    """Project configuration is malformed (duplicate modules, bad YAML, ...)."""

    kind = "configuration"


class TaskGraphError(ConfigurationError):
    """The task graph references an unknown task or contains a cycle."""

    kind = "task_graph"


class MissingConfigurationError(BuildPlaneError):
    """A required external value or credential is absent."""

    kind = "missing_configuration"

    def __init__(self, key: str, source: str = "configuration"):
        self.key = key
        self.source = source
        super().__init__(f"Missing required {source} value: {key}")


class ModuleNotFoundError(BuildPlaneError):  # noqa: A001
    """An expected module is not declared in the project graph."""

    kind = "module_not_found"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Module '{name}' not found in project graph")


class MissingBuildArtifactError(BuildPlaneError):
    """Build metadata was requested before the producing build step ran."""

    kind = "missing_build_artifact"

    def __init__(self, module: str, field: str):
        self.module = module
        self.field = field
        super().__init__(
            f"Module '{module}' has no recorded {field}; run the build before configuring deployment"
        )


class DeploymentScriptError(BuildPlaneError):
    """The deployment script exited non-zero or terminated abnormally."""

    kind = "deployment_script"

    def __init__(self, reason: str, exit_code: int | None = None):
        self.reason = reason
        self.exit_code = exit_code
        if exit_code is not None:
            message = f"Deployment script failed (exit code {exit_code}): {reason}"
        else:
            message = f"Deployment script failed: {reason}"
        super().__init__(message)


class DeploymentInProgressError(DeploymentScriptError):
    """A second configure-deployment was attempted while one is running."""

    kind = "deployment_in_progress"

    def __init__(self) -> None:
        super().__init__("another configure-deployment invocation is already in progress")
