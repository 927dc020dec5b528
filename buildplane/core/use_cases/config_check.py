"""
Config check use case — validate buildplane.yml and report issues.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from buildplane.core import errors
from buildplane.core.config.loader import PROJECT_CONFIG_FILE, find_project_file, load_project
from buildplane.core.config.properties import (
    CICD_ICR_PUBLISH_REPO,
    PROJECT_GROUP_ID,
    PROJECT_VERSION,
    PropertyStore,
)
from buildplane.core.models.project import DATA_ACCESS, PRIMARY_SERVICE, ProjectGraph
from buildplane.core.services.selection import JVM_MODULES
from buildplane.core.use_cases.workspace import default_registry


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    project: ProjectGraph | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    adapters: dict[str, dict] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "project_name": self.project.name if self.project else None,
            "module_count": len(self.project.modules) if self.project else 0,
            "contributors": list(self.project.coverage.contributors) if self.project else [],
            "adapters": self.adapters,
        }


def check_config(
    config_path: Path | None = None,
    overrides: Mapping[str, str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ConfigCheckResult:
    """Validate project configuration and report issues.

    Structural problems (bad YAML, duplicate names, unknown parents)
    are errors. Anything that only breaks a later command is a warning.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_project_file()
    if config_path is None:
        result.errors.append(f"No {PROJECT_CONFIG_FILE} found.")
        return result
    result.config_path = config_path

    try:
        project = load_project(config_path)
    except errors.ConfigurationError as e:
        result.errors.append(str(e))
        return result
    result.project = project

    if not project.modules:
        result.warnings.append("No modules defined. The project has nothing to build.")

    declared = {m.name for m in project.modules}
    for name in sorted(JVM_MODULES - declared):
        result.warnings.append(f"JVM module '{name}' is not declared; it will not be built.")

    for name in project.coverage.contributors:
        module = project.get_module(name)
        if module is None:
            result.warnings.append(f"Coverage contributor '{name}' is not declared.")
        elif not module.has_tests:
            result.warnings.append(
                f"Coverage contributor '{name}' has no test_command; it adds nothing."
            )

    for name in (PRIMARY_SERVICE, DATA_ACCESS):
        if name not in declared:
            result.warnings.append(f"configure-deployment needs module '{name}'.")

    root = config_path.parent
    for mod in project.modules:
        if not (root / mod.directory).exists():
            result.warnings.append(
                f"Module '{mod.name}' path does not exist: {mod.directory}"
            )

    props = PropertyStore(overrides=overrides, environ=environ, defaults=project.properties)
    for key in (PROJECT_GROUP_ID, PROJECT_VERSION, CICD_ICR_PUBLISH_REPO):
        if key not in props:
            result.warnings.append(f"Property {key} is not set (-P, environment, or properties:).")

    result.adapters = default_registry().adapter_status()
    for name, status in result.adapters.items():
        if not status["available"]:
            result.warnings.append(f"Adapter '{name}' is not available on this host.")

    result.valid = not result.errors
    return result
