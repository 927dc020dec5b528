"""
Process adapter — launch an external process and wait for it.

Test steps and the deployment script both run through here. The wait
loop polls so that a cancellation request or a deadline can stop the
child between polls; output is captured in full either way.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from pathlib import Path

from buildplane.adapters.base import Adapter, ExecutionContext
from buildplane.core.models.action import Receipt

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.2
_TERMINATE_GRACE = 5.0


def _stop(proc: subprocess.Popen) -> tuple[str, str]:
    """Terminate, then kill if the child ignores SIGTERM."""
    proc.terminate()
    try:
        return proc.communicate(timeout=_TERMINATE_GRACE)
    except subprocess.TimeoutExpired:
        proc.kill()
        return proc.communicate()


def _remove_stale(paths) -> None:
    for raw in paths:
        path = Path(raw)
        if path.is_file():
            path.unlink()
            logger.debug("Removed stale output %s", path)


class ProcessAdapter(Adapter):
    """Run a command and capture its output.

    Action params:
        command (str | list[str]): What to run. A string goes through
            the shell; a list is executed directly.
        args (list[str]): Extra arguments appended to a list command.
        cwd (str): Working directory (default: project root).
        env (dict): Variables layered over the inherited environment.
        inherit_env (bool): Start from os.environ (default: True).
        timeout (float): Seconds before the child is stopped (default: none).
        clean_paths (list[str]): Files removed before the child starts, so
            an output the run fails to produce is not left over from an
            earlier run.
    """

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        command = context.params.get("command")
        if not command:
            return False, "Missing required param: 'command'"
        if not isinstance(command, (str, list)):
            return False, "Param 'command' must be a string or a list"

        cwd = context.working_dir
        if not Path(cwd).is_dir():
            return False, f"Working directory does not exist: {cwd}"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        params = context.params
        command = params["command"]
        use_shell = isinstance(command, str)
        argv = command if use_shell else [*command, *params.get("args", [])]
        timeout = params.get("timeout")
        cwd = context.working_dir

        env = dict(os.environ) if params.get("inherit_env", True) else {}
        env.update({k: str(v) for k, v in (params.get("env") or {}).items()})

        # Never log env values; they may carry credentials
        logger.debug("Executing: %s (cwd=%s, %d env vars)", argv, cwd, len(env))
        start = time.monotonic()
        deadline = start + float(timeout) if timeout else None
        describe = command if use_shell else " ".join(argv)

        try:
            _remove_stale(params.get("clean_paths") or ())
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Cannot remove stale output: {e}",
                metadata={"command": describe},
            )

        try:
            with subprocess.Popen(
                argv,
                shell=use_shell,
                cwd=cwd,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            ) as proc:
                while True:
                    try:
                        stdout, stderr = proc.communicate(timeout=_POLL_INTERVAL)
                        break
                    except subprocess.TimeoutExpired:
                        if context.cancelled:
                            stdout, stderr = _stop(proc)
                            return Receipt.failure(
                                adapter=self.name,
                                action_id=context.action.id,
                                error="Command cancelled",
                                duration_ms=int((time.monotonic() - start) * 1000),
                                metadata={
                                    "command": describe,
                                    "cancelled": True,
                                    "return_code": proc.returncode,
                                    "stdout": stdout.strip(),
                                },
                            )
                        if deadline is not None and time.monotonic() >= deadline:
                            stdout, stderr = _stop(proc)
                            return Receipt.failure(
                                adapter=self.name,
                                action_id=context.action.id,
                                error=f"Command timed out after {timeout}s",
                                duration_ms=int((time.monotonic() - start) * 1000),
                                metadata={
                                    "command": describe,
                                    "timed_out": True,
                                    "timeout": timeout,
                                    "return_code": proc.returncode,
                                    "stdout": stdout.strip(),
                                },
                            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command execution error: {e}",
                metadata={"command": describe},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = stdout.strip()
        err = stderr.strip()

        if proc.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                action_id=context.action.id,
                output=output,
                duration_ms=elapsed_ms,
                metadata={"command": describe, "return_code": 0, "stderr": err},
            )
        return Receipt.failure(
            adapter=self.name,
            action_id=context.action.id,
            error=err or f"Command exited with code {proc.returncode}",
            duration_ms=elapsed_ms,
            metadata={"command": describe, "return_code": proc.returncode, "stdout": output},
        )
