"""
Coverage aggregation — merge per-module JaCoCo reports into one.

Two halves:

    wiring   register_coverage_tasks() adds the unified report task to
             the task graph, disables per-module reports, and hooks the
             merge into the verification gate
    merging  merge_coverage() / write_unified_report() do the actual
             union of line records

A line is covered in the unified report if any contributing run
covered it. Inputs that never materialized are reported as missing and
the merge proceeds with what exists.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterable
from pathlib import Path

from buildplane.core.engine.graph import TaskGraph
from buildplane.core.models.coverage import (
    CoverageArtifact,
    FileCoverage,
    UnifiedCoverageReport,
)
from buildplane.core.models.module import Module
from buildplane.core.models.project import ProjectGraph
from buildplane.core.models.task import Task

logger = logging.getLogger(__name__)

UNIFIED_REPORT_TASK = "unifiedCoverageReport"
UNIFIED_REPORT_PATH = f"build/reports/jacoco/{UNIFIED_REPORT_TASK}/{UNIFIED_REPORT_TASK}.xml"
CHECK_TASK = "check"


def module_test_task(module: str) -> str:
    return f"{module}:test"


def module_report_task(module: str) -> str:
    return f"{module}:coverageReport"


# ═══════════════════════════════════════════════════════════════════
#  Wiring
# ═══════════════════════════════════════════════════════════════════


def contributor_artifacts(
    graph: ProjectGraph,
    project_root: Path,
    contributors: Iterable[str],
) -> tuple[list[CoverageArtifact], list[str]]:
    """Locate where each contributor's test run leaves its report.

    Returns:
        (artifacts, unknown) — ``unknown`` lists contributors that are
        not declared or declare no test step.
    """
    artifacts: list[CoverageArtifact] = []
    unknown: list[str] = []
    for name in contributors:
        module = graph.get_module(name)
        if module is None or not module.has_tests:
            unknown.append(name)
            continue
        artifacts.append(CoverageArtifact(
            source_module=name,
            report_path=project_root / module.directory / module.coverage_report,
        ))
    return artifacts, unknown


def register_coverage_tasks(
    tasks: TaskGraph,
    graph: ProjectGraph,
    selected: list[Module],
    project_root: Path,
    contributors: list[str] | None = None,
) -> Task:
    """Wire the unified coverage report into the task graph.

    - the unified task depends on the test step of each contributor
      (and only those, not the whole selected set)
    - every selected module's own report task is disabled and
      finalized by the unified task, so running one module's report
      still refreshes the unified view
    - the ``check`` gate depends on the unified task

    Expects test/report/check tasks to be registered already.
    """
    if contributors is None:
        contributors = list(graph.coverage.contributors)

    artifacts, unknown = contributor_artifacts(graph, project_root, contributors)
    for name in unknown:
        logger.warning(
            "Coverage contributor '%s' has no test step; unified report will omit it",
            name,
        )

    unified = tasks.add(Task(
        name=UNIFIED_REPORT_TASK,
        kind="unified_coverage",
        description="Merge contributor coverage into one report",
        depends_on=[
            module_test_task(a.source_module)
            for a in artifacts
            if module_test_task(a.source_module) in tasks
        ],
        runs_after_failure=True,
        params={
            "artifacts": [
                {"module": a.source_module, "path": str(a.report_path)}
                for a in artifacts
            ],
            "missing": list(unknown),
            "output_path": str(project_root / UNIFIED_REPORT_PATH),
        },
    ))

    for module in selected:
        report = tasks.get(module_report_task(module.name))
        if report is None:
            continue
        report.enabled = False
        if UNIFIED_REPORT_TASK not in report.finalized_by:
            report.finalized_by.append(UNIFIED_REPORT_TASK)

    check = tasks.require(CHECK_TASK)
    if UNIFIED_REPORT_TASK not in check.depends_on:
        check.depends_on.append(UNIFIED_REPORT_TASK)

    return unified


# ═══════════════════════════════════════════════════════════════════
#  Merging
# ═══════════════════════════════════════════════════════════════════


def parse_jacoco_report(path: Path) -> list[FileCoverage]:
    """Read line records from a JaCoCo XML report.

    A line counts as covered when it has covered instructions (ci > 0).

    Raises:
        ET.ParseError: If the file is not well-formed XML.
    """
    root = ET.parse(path).getroot()
    files: list[FileCoverage] = []
    for package in root.iter("package"):
        pkg_name = package.get("name", "")
        for source in package.iter("sourcefile"):
            lines: dict[int, bool] = {}
            for line in source.iter("line"):
                nr = line.get("nr")
                if nr is None:
                    continue
                lines[int(nr)] = int(line.get("ci", "0")) > 0
            files.append(FileCoverage(
                package=pkg_name,
                name=source.get("name", ""),
                lines=lines,
            ))
    return files


def _merge_into(target: dict[str, FileCoverage], incoming: Iterable[FileCoverage]) -> None:
    """OR ``incoming`` line records into ``target``."""
    for fc in incoming:
        existing = target.get(fc.key)
        if existing is None:
            target[fc.key] = FileCoverage(
                package=fc.package, name=fc.name, lines=dict(fc.lines)
            )
            continue
        for nr, hit in fc.lines.items():
            existing.lines[nr] = existing.lines.get(nr, False) or hit


def merge_coverage(
    artifacts: Iterable[CoverageArtifact],
    output_path: Path | None = None,
    missing: Iterable[str] = (),
) -> UnifiedCoverageReport:
    """Union the line records of every available artifact.

    Artifacts are de-duplicated by source module (first one wins), so
    feeding the same set twice merges each input once. Absent or
    unreadable reports are logged and listed in ``missing``.
    """
    report = UnifiedCoverageReport(output_path=output_path, missing=list(missing))
    merged: dict[str, FileCoverage] = {}
    seen: set[str] = set()

    for artifact in artifacts:
        if artifact.source_module in seen:
            logger.debug("Skipping duplicate coverage input for %s", artifact.source_module)
            continue
        seen.add(artifact.source_module)

        if not artifact.report_path.is_file():
            logger.warning(
                "No coverage report for %s at %s; merging without it",
                artifact.source_module,
                artifact.report_path,
            )
            report.missing.append(artifact.source_module)
            continue

        try:
            files = parse_jacoco_report(artifact.report_path)
        except (ET.ParseError, ValueError) as e:
            logger.warning(
                "Unreadable coverage report for %s (%s): %s",
                artifact.source_module,
                artifact.report_path,
                e,
            )
            report.missing.append(artifact.source_module)
            continue

        _merge_into(merged, files)
        report.inputs.append(artifact)
        logger.info("Merged coverage from %s (%d files)", artifact.source_module, len(files))

    for key in sorted(merged):
        fc = merged[key]
        report.files[key] = FileCoverage(
            package=fc.package,
            name=fc.name,
            lines=dict(sorted(fc.lines.items())),
        )
    report.inputs.sort(key=lambda a: a.source_module)
    report.missing = sorted(set(report.missing))
    return report


def _line_counter(covered: int, total: int) -> ET.Element:
    return ET.Element(
        "counter", type="LINE", missed=str(total - covered), covered=str(covered)
    )


def write_unified_report(report: UnifiedCoverageReport, path: Path | None = None) -> Path:
    """Write the merged report as JaCoCo-style XML.

    Content depends only on the merged records, so writing the same
    report twice produces identical bytes.
    """
    target = path or report.output_path
    if target is None:
        raise ValueError("No output path for unified coverage report")

    root = ET.Element("report", name=UNIFIED_REPORT_TASK)
    packages: dict[str, ET.Element] = {}
    package_totals: dict[str, list[int]] = {}

    for fc in report.files.values():
        pkg = packages.get(fc.package)
        if pkg is None:
            pkg = ET.SubElement(root, "package", name=fc.package)
            packages[fc.package] = pkg
            package_totals[fc.package] = [0, 0]
        source = ET.SubElement(pkg, "sourcefile", name=fc.name)
        for nr, hit in fc.lines.items():
            ET.SubElement(
                source,
                "line",
                nr=str(nr),
                mi="0" if hit else "1",
                ci="1" if hit else "0",
            )
        source.append(_line_counter(fc.covered, fc.total))
        package_totals[fc.package][0] += fc.covered
        package_totals[fc.package][1] += fc.total

    for name, pkg in packages.items():
        covered, total = package_totals[name]
        pkg.append(_line_counter(covered, total))
    root.append(_line_counter(report.covered, report.total))

    ET.indent(root)
    target.parent.mkdir(parents=True, exist_ok=True)
    ET.ElementTree(root).write(target, encoding="UTF-8", xml_declaration=True)
    logger.info(
        "Unified coverage report: %s (%d/%d lines, %.2f%%)",
        target,
        report.covered,
        report.total,
        report.percentage,
    )
    return target
