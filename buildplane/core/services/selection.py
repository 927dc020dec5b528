"""
Module selection — which declared modules are JVM-buildable.

Pure: reads the graph, never mutates it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from buildplane.core import errors
from buildplane.core.models.module import Module
from buildplane.core.models.project import DATA_ACCESS, PRIMARY_SERVICE, ProjectGraph

logger = logging.getLogger(__name__)

JVM_MODULES: frozenset[str] = frozenset({
    PRIMARY_SERVICE,
    "rate-time-api",
    "config-api",
    "common",
    DATA_ACCESS,
})


def select_modules(
    graph: ProjectGraph,
    allow_list: Iterable[str] = JVM_MODULES,
) -> list[Module]:
    """Return the modules whose name is in ``allow_list``.

    Matching is exact on the full name. The result is sorted by name
    so logs are reproducible regardless of declaration order.

    Raises:
        ConfigurationError: If the graph declares a name more than once.
    """
    dupes = graph.duplicate_names()
    if dupes:
        raise errors.ConfigurationError(
            f"Duplicate module names: {', '.join(dupes)}"
        )

    allowed = frozenset(allow_list)
    selected = sorted(
        (m for m in graph.modules if m.name in allowed),
        key=lambda m: m.name,
    )
    logger.debug(
        "Selected %d/%d modules: %s",
        len(selected),
        len(graph.modules),
        ", ".join(m.name for m in selected),
    )
    return selected
