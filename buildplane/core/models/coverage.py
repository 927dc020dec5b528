"""
Coverage models — per-module artifacts and the merged report.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field


class CoverageArtifact(BaseModel):
    """One module's coverage output from a single test run."""

    source_module: str
    report_path: Path


class FileCoverage(BaseModel):
    """Line coverage for one source file.

    ``lines`` maps line number to whether any execution covered it.
    """

    package: str = ""
    name: str
    lines: dict[int, bool] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        """Package-qualified path, the merge key for this file."""
        return f"{self.package}/{self.name}" if self.package else self.name

    @property
    def covered(self) -> int:
        return sum(1 for hit in self.lines.values() if hit)

    @property
    def total(self) -> int:
        return len(self.lines)


class UnifiedCoverageReport(BaseModel):
    """Merged coverage across all contributing modules.

    ``files`` is keyed by ``FileCoverage.key`` and kept sorted so the
    written report never depends on input order.
    """

    inputs: list[CoverageArtifact] = Field(default_factory=list)
    output_path: Path | None = None
    files: dict[str, FileCoverage] = Field(default_factory=dict)
    missing: list[str] = Field(default_factory=list)   # modules with no artifact

    @property
    def covered(self) -> int:
        return sum(f.covered for f in self.files.values())

    @property
    def total(self) -> int:
        return sum(f.total for f in self.files.values())

    @property
    def percentage(self) -> float:
        if not self.total:
            return 0.0
        return round(100.0 * self.covered / self.total, 2)

    @property
    def contributors(self) -> list[str]:
        return [a.source_module for a in self.inputs]

    def to_dict(self) -> dict:
        return {
            "output_path": str(self.output_path) if self.output_path else None,
            "contributors": self.contributors,
            "missing": self.missing,
            "lines_covered": self.covered,
            "lines_total": self.total,
            "percentage": self.percentage,
            "files": {
                key: {"covered": f.covered, "total": f.total}
                for key, f in self.files.items()
            },
        }
