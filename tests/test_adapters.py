"""
Tests for adapter protocol, registry, mock, process, filesystem, and
coverage adapters.
"""

import threading
import time
from pathlib import Path

from buildplane.adapters.base import ExecutionContext
from buildplane.adapters.coverage import CoverageMergeAdapter
from buildplane.adapters.mock import MockAdapter
from buildplane.adapters.registry import AdapterRegistry
from buildplane.adapters.shell.command import ProcessAdapter
from buildplane.adapters.shell.filesystem import FilesystemAdapter
from buildplane.core.models.action import Action, Receipt


def _ctx(adapter: str = "shell", root: Path | str = ".", cancel_event=None, **params) -> ExecutionContext:
    return ExecutionContext(
        action=Action(id="a-1", name="step", adapter=adapter, params=params),
        project_root=str(root),
        cancel_event=cancel_event,
    )


# ── Protocol Tests ───────────────────────────────────────────────────


class TestExecutionContext:
    def test_working_dir_relative_cwd(self):
        ctx = _ctx(root="/project", cwd="app")
        assert ctx.working_dir == "/project/app"

    def test_working_dir_absolute_cwd(self):
        assert _ctx(root="/project", cwd="/elsewhere").working_dir == "/elsewhere"

    def test_working_dir_default(self):
        assert _ctx(root="/project").working_dir == "/project"

    def test_cancelled(self):
        event = threading.Event()
        ctx = _ctx(cancel_event=event)
        assert not ctx.cancelled
        event.set()
        assert ctx.cancelled
        assert not _ctx().cancelled


# ── Mock Adapter Tests ───────────────────────────────────────────────


class TestMockAdapter:
    def test_default_success(self):
        mock = MockAdapter(adapter_name="test-mock")
        receipt = mock.execute(_ctx("test-mock"))
        assert receipt.ok
        assert receipt.metadata["return_code"] == 0
        assert mock.call_count == 1

    def test_custom_response(self):
        mock = MockAdapter()
        mock.set_response("step", Receipt.success(adapter="mock", action_id="x", output="custom"))
        receipt = mock.execute(_ctx("mock"))
        assert receipt.output == "custom"
        assert receipt.action_id == "a-1"

    def test_set_failure(self):
        mock = MockAdapter()
        mock.set_failure("step", error="Intentional failure", return_code=4)
        receipt = mock.execute(_ctx("mock"))
        assert receipt.failed
        assert "Intentional failure" in receipt.error
        assert receipt.metadata["return_code"] == 4

    def test_handler(self):
        mock = MockAdapter(handler=lambda ctx: Receipt.skip(adapter="mock", action_id=ctx.action.id))
        assert mock.execute(_ctx("mock")).status == "skipped"

    def test_reset(self):
        mock = MockAdapter()
        mock.set_failure("step")
        mock.execute(_ctx("mock"))
        mock.reset()
        assert mock.call_count == 0
        assert mock.execute(_ctx("mock")).ok

    def test_is_available(self):
        assert MockAdapter(available=True).is_available()
        assert not MockAdapter(available=False).is_available()


# ── Registry Tests ───────────────────────────────────────────────────


class TestAdapterRegistry:
    def test_register_and_get(self):
        registry = AdapterRegistry()
        mock = MockAdapter("shell")
        registry.register(mock)
        assert registry.get("shell") is mock
        assert set(registry.adapter_status()) == {"shell"}
        assert registry.get("docker") is None

    def test_register_replaces(self):
        registry = AdapterRegistry()
        registry.register(MockAdapter("shell"))
        second = MockAdapter("shell")
        registry.register(second)
        assert registry.get("shell") is second

    def test_unavailable_adapter_fails(self):
        registry = AdapterRegistry()
        mock = MockAdapter("shell", available=False)
        registry.register(mock)
        receipt = registry.execute_action(Action(id="x", adapter="shell"))
        assert receipt.failed
        assert receipt.metadata["unavailable"] is True
        assert mock.call_count == 0

    def test_cancelled_before_start(self):
        registry = AdapterRegistry()
        mock = MockAdapter("shell")
        registry.register(mock)
        event = threading.Event()
        event.set()
        receipt = registry.execute_action(Action(id="x", name="step", adapter="shell"), cancel_event=event)
        assert receipt.cancelled
        assert mock.call_count == 0

    def test_adapter_status(self):
        registry = AdapterRegistry()
        registry.register(MockAdapter("shell", available=False))
        status = registry.adapter_status()
        assert status["shell"] == {"name": "shell", "available": False, "type": "MockAdapter"}

    def test_unknown_adapter_fails(self):
        receipt = AdapterRegistry().execute_action(Action(id="x", adapter="docker"))
        assert receipt.failed
        assert "docker" in receipt.error

    def test_mock_mode(self):
        registry = AdapterRegistry(mock_mode=True)
        receipt = registry.execute_action(Action(id="x", adapter="anything"))
        assert receipt.ok
        assert receipt.metadata["mock"] is True

    def test_validation_failure(self):
        registry = AdapterRegistry()
        registry.register(ProcessAdapter())
        receipt = registry.execute_action(Action(id="x", adapter="shell"))
        assert receipt.failed
        assert "command" in receipt.error

    def test_dry_run_validates_only(self):
        registry = AdapterRegistry()
        mock = MockAdapter("shell")
        registry.register(mock)
        receipt = registry.execute_action(Action(id="x", adapter="shell"), dry_run=True)
        assert receipt.status == "skipped"
        assert receipt.metadata["dry_run"] is True
        assert mock.call_count == 0

    def test_raising_adapter_becomes_failure(self):
        def boom(ctx):
            raise RuntimeError("kaput")

        registry = AdapterRegistry()
        registry.register(MockAdapter("shell", handler=boom))
        receipt = registry.execute_action(Action(id="x", adapter="shell"))
        assert receipt.failed
        assert "kaput" in receipt.error

    def test_cancel_event_forwarded(self):
        registry = AdapterRegistry()
        mock = MockAdapter("shell")
        registry.register(mock)
        event = threading.Event()
        registry.execute_action(Action(id="x", adapter="shell"), cancel_event=event)
        assert mock.call_log[0].cancel_event is event


# ── Process Adapter Tests ────────────────────────────────────────────


class TestProcessAdapter:
    def test_echo(self, tmp_path: Path):
        receipt = ProcessAdapter().execute(_ctx(root=tmp_path, command="echo hello"))
        assert receipt.ok
        assert receipt.output == "hello"
        assert receipt.metadata["return_code"] == 0

    def test_nonzero_exit(self, tmp_path: Path):
        receipt = ProcessAdapter().execute(_ctx(root=tmp_path, command="exit 5"))
        assert receipt.failed
        assert receipt.metadata["return_code"] == 5
        assert "5" in receipt.error

    def test_stderr_is_error(self, tmp_path: Path):
        receipt = ProcessAdapter().execute(_ctx(root=tmp_path, command="echo broken >&2; exit 1"))
        assert receipt.error == "broken"

    def test_runs_in_cwd(self, tmp_path: Path):
        (tmp_path / "app").mkdir()
        receipt = ProcessAdapter().execute(_ctx(root=tmp_path, command="pwd", cwd="app"))
        assert receipt.output == str(tmp_path / "app")

    def test_env_layered(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("BP_PARENT_VALUE", "inherited")
        receipt = ProcessAdapter().execute(_ctx(
            root=tmp_path,
            command='echo "$BP_PARENT_VALUE/$BP_CHILD_VALUE"',
            env={"BP_CHILD_VALUE": "added"},
        ))
        assert receipt.output == "inherited/added"

    def test_env_not_inherited(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("BP_PARENT_VALUE", "inherited")
        receipt = ProcessAdapter().execute(_ctx(
            root=tmp_path,
            command=["/bin/sh", "-c", 'echo "${BP_PARENT_VALUE:-none}"'],
            inherit_env=False,
        ))
        assert receipt.output == "none"

    def test_clean_paths_removed_before_run(self, tmp_path: Path):
        stale = tmp_path / "out" / "report.xml"
        stale.parent.mkdir()
        stale.write_text("old")
        receipt = ProcessAdapter().execute(_ctx(
            root=tmp_path,
            command="test -e out/report.xml && echo present || echo gone",
            clean_paths=[str(stale), str(tmp_path / "never-there.xml")],
        ))
        assert receipt.output == "gone"
        assert not stale.exists()

    def test_clean_paths_kept_on_dry_run(self, tmp_path: Path):
        stale = tmp_path / "report.xml"
        stale.write_text("old")
        registry = AdapterRegistry()
        registry.register(ProcessAdapter())
        action = Action(id="t", adapter="shell", params={"command": "true", "clean_paths": [str(stale)]})
        receipt = registry.execute_action(action, project_root=str(tmp_path), dry_run=True)
        assert receipt.status == "skipped"
        assert stale.exists()

    def test_list_command_with_args(self, tmp_path: Path):
        receipt = ProcessAdapter().execute(_ctx(
            root=tmp_path,
            command=["/bin/sh", "-c", 'echo "$0 $1"'],
            args=["first", "second"],
        ))
        assert receipt.output == "first second"

    def test_missing_executable(self, tmp_path: Path):
        receipt = ProcessAdapter().execute(_ctx(root=tmp_path, command=[str(tmp_path / "nope.sh")]))
        assert receipt.failed
        assert "execution error" in receipt.error

    def test_cancellation(self, tmp_path: Path):
        event = threading.Event()
        timer = threading.Timer(0.3, event.set)
        timer.start()
        start = time.monotonic()
        try:
            receipt = ProcessAdapter().execute(_ctx(root=tmp_path, cancel_event=event, command="exec sleep 30"))
        finally:
            timer.cancel()
        assert receipt.failed
        assert receipt.metadata["cancelled"] is True
        assert time.monotonic() - start < 10

    def test_timeout(self, tmp_path: Path):
        receipt = ProcessAdapter().execute(_ctx(root=tmp_path, command="exec sleep 30", timeout=0.3))
        assert receipt.failed
        assert receipt.metadata["timed_out"] is True
        assert "timed out" in receipt.error

    def test_validate(self, tmp_path: Path):
        adapter = ProcessAdapter()
        assert adapter.validate(_ctx(root=tmp_path, command="true")) == (True, "")
        ok, msg = adapter.validate(_ctx(root=tmp_path, command="true", cwd="missing"))
        assert not ok
        assert "does not exist" in msg
        ok, msg = adapter.validate(_ctx(root=tmp_path, command=42))
        assert not ok


# ── Filesystem Adapter Tests ─────────────────────────────────────────


class TestFilesystemAdapter:
    def test_mkdir(self, tmp_path: Path):
        adapter = FilesystemAdapter()
        receipt = adapter.execute(_ctx("filesystem", tmp_path, operation="mkdir", path="build/out"))
        assert receipt.ok
        assert receipt.metadata["created"] is True
        assert (tmp_path / "build" / "out").is_dir()

        again = adapter.execute(_ctx("filesystem", tmp_path, operation="mkdir", path="build/out"))
        assert again.metadata["created"] is False

    def test_mkdir_over_file(self, tmp_path: Path):
        (tmp_path / "build").write_text("in the way")
        receipt = FilesystemAdapter().execute(_ctx("filesystem", tmp_path, operation="mkdir", path="build"))
        assert receipt.failed
        assert "mkdir" in receipt.error

    def test_validate(self):
        adapter = FilesystemAdapter()
        assert not adapter.validate(_ctx("filesystem", operation="exists", path="x"))[0]
        assert not adapter.validate(_ctx("filesystem", operation="mkdir"))[0]
        assert adapter.validate(_ctx("filesystem", operation="mkdir", path="x"))[0]


# ── Coverage Adapter Tests ───────────────────────────────────────────


class TestCoverageMergeAdapter:
    def test_merge_and_write(self, tmp_path: Path, write_jacoco):
        write_jacoco(tmp_path / "app" / "r.xml", {("p", "A.java"): {1: True, 2: False}})
        write_jacoco(tmp_path / "db" / "r.xml", {("p", "A.java"): {2: True}})
        receipt = CoverageMergeAdapter().execute(_ctx(
            "coverage",
            tmp_path,
            artifacts=[
                {"module": "primary-service", "path": "app/r.xml"},
                {"module": "data-access", "path": "db/r.xml"},
            ],
            output_path="build/unified.xml",
        ))
        assert receipt.ok
        assert (tmp_path / "build" / "unified.xml").is_file()
        assert receipt.metadata["lines_covered"] == 2
        assert receipt.metadata["lines_total"] == 2
        assert receipt.metadata["percentage"] == 100.0

    def test_missing_inputs_still_writes(self, tmp_path: Path):
        receipt = CoverageMergeAdapter().execute(_ctx(
            "coverage",
            tmp_path,
            artifacts=[{"module": "primary-service", "path": "app/r.xml"}],
            missing=["data-access"],
            output_path="unified.xml",
        ))
        assert receipt.ok
        assert sorted(receipt.metadata["missing"]) == ["data-access", "primary-service"]
        assert (tmp_path / "unified.xml").is_file()

    def test_validate(self):
        adapter = CoverageMergeAdapter()
        assert not adapter.validate(_ctx("coverage"))[0]
        assert not adapter.validate(_ctx("coverage", output_path="u.xml", artifacts=[{"module": "x"}]))[0]
