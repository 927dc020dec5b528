"""
Modules use case — show the selected set and the conventions applied.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from buildplane.core import errors
from buildplane.core.models.module import Module
from buildplane.core.models.project import ProjectGraph
from buildplane.core.services.conventions import ModuleConventions, apply_conventions
from buildplane.core.use_cases.workspace import open_workspace


@dataclass
class ModulesResult:
    """Selected modules and their applied conventions."""

    project: ProjectGraph | None = None
    project_root: Path | None = None
    selected: list[Module] = field(default_factory=list)
    excluded: list[str] = field(default_factory=list)
    conventions: dict[str, ModuleConventions] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    error: str | None = None
    error_kind: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error, "error_kind": self.error_kind}
        return {
            "project_name": self.project.name if self.project else "",
            "selected": [
                {
                    "name": m.name,
                    "path": m.directory,
                    "has_tests": m.has_tests,
                    "conventions": (
                        self.conventions[m.name].model_dump(mode="json")
                        if m.name in self.conventions else None
                    ),
                }
                for m in self.selected
            ],
            "excluded": self.excluded,
            "warnings": self.warnings,
        }


def list_modules(
    config_path: Path | None = None,
    overrides: Mapping[str, str] | None = None,
    system_properties: Mapping[str, str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ModulesResult:
    """Select the JVM modules and apply conventions to them.

    Missing group id or version is reported as a warning here, since
    the listing is still useful without them.
    """
    result = ModulesResult()
    try:
        ws = open_workspace(config_path, overrides, environ)
    except errors.BuildPlaneError as e:
        result.error = str(e)
        result.error_kind = e.kind
        return result

    result.project = ws.graph
    result.project_root = ws.project_root
    result.selected = ws.selected
    chosen = {m.name for m in ws.selected}
    result.excluded = sorted(m.name for m in ws.graph.modules if m.name not in chosen)

    try:
        result.conventions = apply_conventions(
            ws.selected,
            ws.properties,
            system_properties=system_properties,
            project_root=ws.project_root,
        )
    except errors.MissingConfigurationError as e:
        result.warnings.append(f"{e}; conventions not applied")

    return result
