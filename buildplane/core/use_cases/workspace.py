"""
Workspace loading shared by every use case.

Finds and loads buildplane.yml, layers the property store over it,
and selects the JVM modules. Also builds the default adapter registry.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from buildplane.adapters.registry import AdapterRegistry
from buildplane.core import errors
from buildplane.core.config.loader import PROJECT_CONFIG_FILE, find_project_file, load_project
from buildplane.core.config.properties import PropertyStore
from buildplane.core.models.module import Module
from buildplane.core.models.project import ProjectGraph
from buildplane.core.persistence.audit import AuditEntry, AuditWriter
from buildplane.core.services.selection import select_modules

logger = logging.getLogger(__name__)


@dataclass
class Workspace:
    """A loaded project, ready for the core services."""

    graph: ProjectGraph
    config_path: Path
    project_root: Path
    properties: PropertyStore
    selected: list[Module]


def open_workspace(
    config_path: Path | None = None,
    overrides: Mapping[str, str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Workspace:
    """Load the project and select its JVM modules.

    Raises:
        ConfigurationError: If no project file is found or it is invalid.
    """
    if config_path is None:
        config_path = find_project_file()
    if config_path is None:
        raise errors.ConfigurationError(f"No {PROJECT_CONFIG_FILE} found.")

    graph = load_project(config_path)
    properties = PropertyStore(
        overrides=overrides,
        environ=environ,
        defaults=graph.properties,
    )
    return Workspace(
        graph=graph,
        config_path=config_path,
        project_root=config_path.parent.resolve(),
        properties=properties,
        selected=select_modules(graph),
    )


def default_registry(mock_mode: bool = False) -> AdapterRegistry:
    """Registry with the process, filesystem and coverage adapters."""
    from buildplane.adapters.coverage import CoverageMergeAdapter
    from buildplane.adapters.shell.command import ProcessAdapter
    from buildplane.adapters.shell.filesystem import FilesystemAdapter

    registry = AdapterRegistry(mock_mode=mock_mode)
    registry.register(ProcessAdapter())
    registry.register(FilesystemAdapter())
    registry.register(CoverageMergeAdapter())
    return registry


def write_audit(project_root: Path, entry: AuditEntry) -> None:
    """Append ``entry`` to the project's audit ledger."""
    AuditWriter(project_root=project_root).write(entry)
