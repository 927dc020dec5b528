"""
Module model — one independently buildable/testable unit.

Modules are declared in buildplane.yml. Identity is the name; the
graph guarantees uniqueness. Build outputs (image name/tag) are NOT
stored here: they live in BuildResult, recorded by the build step.
"""

from __future__ import annotations

from pydantic import BaseModel

# Where a module's test run leaves its JaCoCo XML, relative to the module dir
DEFAULT_COVERAGE_REPORT = "build/reports/jacoco/test/jacocoTestReport.xml"


class Module(BaseModel):
    """A declared build unit.

    ``group`` and ``version`` default to empty and are filled in by
    the convention applier from PROJECT_GROUP_ID / PROJECT_VERSION.
    """

    name: str
    path: str = ""
    group: str = ""
    version: str = ""
    parent: str | None = None        # parent module name (None = root project)
    description: str = ""

    # ── Build steps ──────────────────────────────────────────────
    test_command: str | None = None  # None = no test-execution step
    coverage_report: str = DEFAULT_COVERAGE_REPORT

    @property
    def directory(self) -> str:
        """Module directory relative to the project root."""
        return self.path or self.name

    @property
    def has_tests(self) -> bool:
        """Whether a test-execution step is declared."""
        return bool(self.test_command)
