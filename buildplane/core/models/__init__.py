"""
Domain models — Pydantic types for buildplane.

All models are re-exported here for convenient access:

    from buildplane.core.models import ProjectGraph, Module, Task, BuildState
"""

from buildplane.core.models.action import Action, Receipt
from buildplane.core.models.coverage import (
    CoverageArtifact,
    FileCoverage,
    UnifiedCoverageReport,
)
from buildplane.core.models.deployment import (
    DeploymentContext,
    DeploymentOutcome,
    DeploymentPhase,
)
from buildplane.core.models.module import Module
from buildplane.core.models.project import CoverageSettings, ProjectGraph
from buildplane.core.models.state import BuildResult, BuildState, OperationRecord
from buildplane.core.models.task import Task

__all__ = [
    # action.py
    "Action",
    # state.py
    "BuildResult",
    "BuildState",
    # coverage.py
    "CoverageArtifact",
    # project.py
    "CoverageSettings",
    # deployment.py
    "DeploymentContext",
    "DeploymentOutcome",
    "DeploymentPhase",
    "FileCoverage",
    # module.py
    "Module",
    "OperationRecord",
    "ProjectGraph",
    "Receipt",
    # task.py
    "Task",
    "UnifiedCoverageReport",
]
