"""
Deployment models — the context handed to the release script and the
phases the configurator walks through.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class DeploymentPhase(StrEnum):
    """Configure-deployment state machine.

    Idle → ResolvingModules → ReadingMetadata → ReadingExternalConfig
         → PreparingOutputDir → InvokingScript → Succeeded | Failed
    """

    IDLE = "idle"
    RESOLVING_MODULES = "resolving_modules"
    READING_METADATA = "reading_metadata"
    READING_EXTERNAL_CONFIG = "reading_external_config"
    PREPARING_OUTPUT_DIR = "preparing_output_dir"
    INVOKING_SCRIPT = "invoking_script"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# Forward order; DeploymentConfigurator takes each phase from here in turn
PHASE_SEQUENCE: tuple[DeploymentPhase, ...] = (
    DeploymentPhase.IDLE,
    DeploymentPhase.RESOLVING_MODULES,
    DeploymentPhase.READING_METADATA,
    DeploymentPhase.READING_EXTERNAL_CONFIG,
    DeploymentPhase.PREPARING_OUTPUT_DIR,
    DeploymentPhase.INVOKING_SCRIPT,
    DeploymentPhase.SUCCEEDED,
)


class DeploymentContext(BaseModel):
    """Environment for the deployment script. Immutable once built.

    Credentials are SecretStr so they never show up in reprs or logs.
    """

    model_config = ConfigDict(frozen=True)

    app_image_name: str
    db_update_image_name: str
    publish_repo: str
    build_dir: str
    build_version: str
    git_username: SecretStr
    git_password: SecretStr

    def to_environment(self) -> dict[str, str]:
        """Render as the script's environment mapping."""
        return {
            "APP_DOCKER_IMAGE_NAME": self.app_image_name,
            "DB_UPDATE_DOCKER_IMAGE_NAME": self.db_update_image_name,
            "CICD_ICR_PUBLISH_REPO": self.publish_repo,
            "BUILD_DIR": self.build_dir,
            "BUILD_VERSION": self.build_version,
            "GIT_USERNAME": self.git_username.get_secret_value(),
            "GIT_PASSWORD": self.git_password.get_secret_value(),
        }

    def to_dict(self) -> dict[str, str]:
        """Environment mapping with the credentials masked, for logging."""
        env = self.to_environment()
        for key in ("GIT_USERNAME", "GIT_PASSWORD"):
            env[key] = "********"
        return env


class DeploymentOutcome(BaseModel):
    """What happened during one configure-deployment invocation."""

    phase: DeploymentPhase = DeploymentPhase.IDLE
    transitions: list[DeploymentPhase] = Field(default_factory=list)
    build_dir: str | None = None
    exit_code: int | None = None
    reason: str | None = None
    environment_keys: list[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.phase == DeploymentPhase.SUCCEEDED

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "transitions": [p.value for p in self.transitions],
            "build_dir": self.build_dir,
            "exit_code": self.exit_code,
            "reason": self.reason,
            "environment_keys": self.environment_keys,
        }
