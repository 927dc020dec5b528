"""
ProjectGraph — the full set of declared modules.

Loaded from buildplane.yml, this is the canonical truth about which
modules exist and how they nest. The core only ever reads it.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from buildplane.core import errors
from buildplane.core.models.module import Module

PRIMARY_SERVICE = "primary-service"
DATA_ACCESS = "data-access"


class CoverageSettings(BaseModel):
    """Which modules feed the unified coverage report."""

    contributors: list[str] = Field(
        default_factory=lambda: [PRIMARY_SERVICE, DATA_ACCESS]
    )


class ProjectGraph(BaseModel):
    """Root project identity plus its modules.

    Parent/child relations are expressed through ``Module.parent``.
    """

    version: int = 1

    name: str
    description: str = ""

    modules: list[Module] = Field(default_factory=list)
    coverage: CoverageSettings = Field(default_factory=CoverageSettings)

    # Lowest-precedence layer of the property store
    properties: dict[str, str] = Field(default_factory=dict)

    def get_module(self, name: str) -> Module | None:
        """Look up a module by name."""
        for mod in self.modules:
            if mod.name == name:
                return mod
        return None

    def require_module(self, name: str) -> Module:
        """Look up a module by name, raising if it is not declared."""
        mod = self.get_module(name)
        if mod is None:
            raise errors.ModuleNotFoundError(name)
        return mod

    def duplicate_names(self) -> list[str]:
        """Module names declared more than once, sorted."""
        names = [m.name for m in self.modules]
        return sorted({n for n in names if names.count(n) > 1})

    def validate_graph(self) -> None:
        """Check structural integrity.

        Raises:
            ConfigurationError: On duplicate names, unknown parents, or
                a parent cycle.
        """
        dupes = self.duplicate_names()
        if dupes:
            raise errors.ConfigurationError(
                f"Duplicate module names: {', '.join(dupes)}"
            )

        by_name = {m.name: m for m in self.modules}
        for mod in self.modules:
            if mod.parent is not None and mod.parent not in by_name:
                raise errors.ConfigurationError(
                    f"Module '{mod.name}' declares unknown parent '{mod.parent}'"
                )

        for mod in self.modules:
            seen = {mod.name}
            current = mod.parent
            while current is not None:
                if current in seen:
                    raise errors.ConfigurationError(
                        f"Parent cycle involving module '{mod.name}'"
                    )
                seen.add(current)
                current = by_name[current].parent
