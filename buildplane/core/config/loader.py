"""
Configuration loader — reads buildplane.yml into a ProjectGraph.

This is the primary entry point for loading project configuration.
It reads YAML, validates against Pydantic schemas, checks graph
integrity, and returns typed domain objects.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from buildplane.core import errors
from buildplane.core.models.project import ProjectGraph

logger = logging.getLogger(__name__)

# Default config filename
PROJECT_CONFIG_FILE = "buildplane.yml"


def find_project_file(start_dir: Path | None = None) -> Path | None:
    """Search for buildplane.yml starting from the given directory, walking up.

    This allows running commands from a module directory and still
    finding the project root.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to buildplane.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / PROJECT_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_project(path: Path | None = None) -> ProjectGraph:
    """Load and validate the project graph.

    Args:
        path: Explicit path to buildplane.yml. If None, searches upward.

    Returns:
        Validated ProjectGraph.

    Raises:
        ConfigurationError: If the file is missing, invalid, or declares
            a malformed graph (duplicate names, unknown parents).
    """
    if path is None:
        path = find_project_file()

    if path is None:
        raise errors.ConfigurationError(
            f"No {PROJECT_CONFIG_FILE} found. Specify one with --config."
        )

    if not path.is_file():
        raise errors.ConfigurationError(f"Config file not found: {path}")

    logger.debug("Loading project config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise errors.ConfigurationError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise errors.ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise errors.ConfigurationError(
            f"Expected a YAML mapping in {path}, got {type(data).__name__}"
        )

    # The YAML may wrap identity under a "project" key or be flat
    project_data = dict(data.get("project", data)) if "project" in data else data

    # Merge top-level keys that sit alongside "project"
    for key in ("version", "modules", "coverage", "properties"):
        if key in data and key not in project_data:
            project_data[key] = data[key]

    # Property values are strings on the wire; YAML happily types them
    props = project_data.get("properties")
    if isinstance(props, dict):
        project_data["properties"] = {
            str(k): "" if v is None else str(v) for k, v in props.items()
        }

    try:
        graph = ProjectGraph.model_validate(project_data)
    except ValidationError as e:
        raise errors.ConfigurationError(f"Invalid project configuration: {e}") from e

    graph.validate_graph()

    logger.info("Loaded project '%s' with %d modules", graph.name, len(graph.modules))
    return graph


def project_root(config_path: Path) -> Path:
    """Get the project root directory from a config file path."""
    return config_path.parent.resolve()
