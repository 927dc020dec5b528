"""
Shared test fixtures and configuration.
"""

import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

from buildplane.core.models.module import DEFAULT_COVERAGE_REPORT

PROJECT_YAML = textwrap.dedent("""\
    name: rates
    description: "Rate services"
    properties:
      PROJECT_GROUP_ID: com.example.rates
      PROJECT_VERSION: 1.4.0
    modules:
      - name: primary-service
        path: app
        test_command: "true"
      - name: data-access
        path: db
        test_command: "true"
      - name: common
        test_command: "true"
      - name: config-api
      - name: rate-time-api
      - name: ui
        path: web
        test_command: "npm test"
""")

_MODULE_DIRS = ("app", "db", "common", "config-api", "rate-time-api", "web")


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    """Keep host build variables out of property and secret lookups."""
    for key in (
        "PROJECT_GROUP_ID",
        "PROJECT_VERSION",
        "CICD_ICR_PUBLISH_REPO",
        "GIT_USERNAME",
        "GIT_PASSWORD",
        "BP_LOG_LEVEL",
        "BP_LOG_FILE",
        "BP_LOG_FILE_LEVEL",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def make_project(tmp_path: Path) -> Callable[..., Path]:
    """Write a buildplane.yml (plus module dirs) and return its path."""

    def _make(content: str = PROJECT_YAML) -> Path:
        for name in _MODULE_DIRS:
            (tmp_path / name).mkdir(exist_ok=True)
        config = tmp_path / "buildplane.yml"
        config.write_text(content)
        return config

    return _make


@pytest.fixture
def write_jacoco() -> Callable[..., Path]:
    """Write a minimal JaCoCo XML report.

    ``files`` maps ``(package, sourcefile)`` to ``{line: covered}``.
    """

    def _write(path: Path, files: dict[tuple[str, str], dict[int, bool]]) -> Path:
        packages: dict[str, list[str]] = {}
        for (package, source), lines in files.items():
            rows = "".join(
                f'<line nr="{nr}" mi="{0 if hit else 3}" ci="{3 if hit else 0}" mb="0" cb="0"/>'
                for nr, hit in lines.items()
            )
            packages.setdefault(package, []).append(
                f'<sourcefile name="{source}">{rows}</sourcefile>'
            )
        body = "".join(
            f'<package name="{pkg}">{"".join(sources)}</package>'
            for pkg, sources in packages.items()
        )
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
            f'<report name="test">{body}</report>'
        )
        return path

    return _write


@pytest.fixture
def module_report() -> Callable[[Path, str], Path]:
    """Where a module's test run leaves its JaCoCo report."""

    def _path(root: Path, module_dir: str) -> Path:
        return root / module_dir / DEFAULT_COVERAGE_REPORT

    return _path


@pytest.fixture
def project_yaml() -> str:
    """The default project file content, for tests that tweak it."""
    return PROJECT_YAML
