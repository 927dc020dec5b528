"""
Tests for domain models — modules, project graph, build state, deployment.
"""

import pytest
from pydantic import SecretStr, ValidationError

from buildplane.core import errors
from buildplane.core.models import (
    BuildResult,
    BuildState,
    CoverageArtifact,
    DeploymentContext,
    DeploymentOutcome,
    DeploymentPhase,
    FileCoverage,
    Module,
    ProjectGraph,
    UnifiedCoverageReport,
)
from buildplane.core.models.deployment import PHASE_SEQUENCE

# ── Module ───────────────────────────────────────────────────────────


class TestModule:
    def test_directory_defaults_to_name(self):
        assert Module(name="common").directory == "common"
        assert Module(name="primary-service", path="app").directory == "app"

    def test_has_tests(self):
        assert not Module(name="config-api").has_tests
        assert not Module(name="config-api", test_command="").has_tests
        assert Module(name="common", test_command="./gradlew test").has_tests


# ── ProjectGraph ─────────────────────────────────────────────────────


class TestProjectGraph:
    def test_get_and_require(self):
        graph = ProjectGraph(name="p", modules=[Module(name="common")])
        assert graph.get_module("common") is not None
        assert graph.get_module("nope") is None
        with pytest.raises(errors.ModuleNotFoundError) as exc:
            graph.require_module("data-access")
        assert exc.value.name == "data-access"
        assert "data-access" in str(exc.value)

    def test_default_contributors(self):
        graph = ProjectGraph(name="p")
        assert graph.coverage.contributors == ["primary-service", "data-access"]

    def test_duplicates_rejected(self):
        graph = ProjectGraph(name="p", modules=[Module(name="common"), Module(name="common")])
        assert graph.duplicate_names() == ["common"]
        with pytest.raises(errors.ConfigurationError, match="Duplicate"):
            graph.validate_graph()

    def test_unknown_parent_rejected(self):
        graph = ProjectGraph(name="p", modules=[Module(name="a", parent="ghost")])
        with pytest.raises(errors.ConfigurationError, match="unknown parent"):
            graph.validate_graph()

    def test_parent_cycle_rejected(self):
        graph = ProjectGraph(
            name="p",
            modules=[Module(name="a", parent="b"), Module(name="b", parent="a")],
        )
        with pytest.raises(errors.ConfigurationError, match="cycle"):
            graph.validate_graph()


# ── BuildState ───────────────────────────────────────────────────────


class TestBuildState:
    def test_record_and_get(self):
        state = BuildState()
        assert state.record_build(BuildResult(module="db", image_name="db-update"))
        assert state.get_build("db").image_name == "db-update"
        assert state.get_build("other") is None

    def test_identical_rerecord_is_noop(self):
        state = BuildState()
        state.record_build(BuildResult(module="app", image_name="svc", image_tag="1.0"))
        assert not state.record_build(BuildResult(module="app", image_name="svc", image_tag="1.0"))

    def test_differing_rerecord_rejected(self):
        state = BuildState()
        state.record_build(BuildResult(module="app", image_name="svc", image_tag="1.0"))
        with pytest.raises(errors.ConfigurationError, match="already recorded"):
            state.record_build(BuildResult(module="app", image_name="svc", image_tag="1.1"))
        assert state.get_build("app").image_tag == "1.0"

    def test_clear_builds(self):
        state = BuildState()
        state.record_build(BuildResult(module="app", image_name="svc", image_tag="1.0"))
        state.clear_builds()
        assert state.record_build(BuildResult(module="app", image_name="svc", image_tag="2.0"))


# ── Coverage ─────────────────────────────────────────────────────────


class TestCoverageModels:
    def test_file_counts(self):
        fc = FileCoverage(package="com/x", name="A.java", lines={1: True, 2: False, 3: True})
        assert fc.key == "com/x/A.java"
        assert fc.covered == 2
        assert fc.total == 3

    def test_report_percentage(self, tmp_path):
        report = UnifiedCoverageReport(
            inputs=[CoverageArtifact(source_module="app", report_path=tmp_path / "a.xml")],
            files={"A.java": FileCoverage(name="A.java", lines={1: True, 2: False, 3: False})},
        )
        assert report.percentage == 33.33
        assert report.contributors == ["app"]
        assert report.to_dict()["lines_total"] == 3

    def test_empty_report_is_zero_percent(self):
        assert UnifiedCoverageReport().percentage == 0.0


# ── Deployment ───────────────────────────────────────────────────────


class TestDeploymentModels:
    def _context(self) -> DeploymentContext:
        return DeploymentContext(
            app_image_name="svc",
            db_update_image_name="db-update",
            publish_repo="icr.io/rates",
            build_dir="/work/build",
            build_version="1.4.0-42",
            git_username=SecretStr("bot"),
            git_password=SecretStr("hunter2"),
        )

    def test_environment_has_seven_keys(self):
        env = self._context().to_environment()
        assert set(env) == {
            "APP_DOCKER_IMAGE_NAME",
            "DB_UPDATE_DOCKER_IMAGE_NAME",
            "CICD_ICR_PUBLISH_REPO",
            "BUILD_DIR",
            "BUILD_VERSION",
            "GIT_USERNAME",
            "GIT_PASSWORD",
        }
        assert env["GIT_PASSWORD"] == "hunter2"
        assert env["BUILD_VERSION"] == "1.4.0-42"

    def test_credentials_masked(self):
        ctx = self._context()
        assert "hunter2" not in repr(ctx)
        masked = ctx.to_dict()
        assert masked["GIT_PASSWORD"] == "********"
        assert masked["GIT_USERNAME"] == "********"
        assert masked["BUILD_VERSION"] == "1.4.0-42"

    def test_context_is_frozen(self):
        ctx = self._context()
        with pytest.raises(ValidationError):
            ctx.publish_repo = "elsewhere"

    def test_phase_sequence(self):
        assert PHASE_SEQUENCE[0] is DeploymentPhase.IDLE
        assert PHASE_SEQUENCE[-1] is DeploymentPhase.SUCCEEDED
        assert DeploymentPhase.FAILED not in PHASE_SEQUENCE

    def test_outcome_to_dict(self):
        outcome = DeploymentOutcome(
            phase=DeploymentPhase.FAILED,
            transitions=[DeploymentPhase.IDLE, DeploymentPhase.FAILED],
            reason="cancelled",
        )
        assert not outcome.succeeded
        assert outcome.to_dict()["transitions"] == ["idle", "failed"]
