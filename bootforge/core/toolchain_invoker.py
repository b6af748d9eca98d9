"""Run a stage's toolchain as a subprocess and classify what happened.

The previous stage's ``bin/toolchain`` is started in its own session (a new
process group) with an environment built from scratch, so it cannot pick up
compilers, flags or caches from the surrounding system. The invocation is a
plain request -> result exchange: the invoker writes the artifact to the
request's output directory and reports; committing it is the orchestrator's
job.

Argument contract::

    toolchain --stage N --host TRIPLE --target TRIPLE --source DIR
              --out DIR --mode build|test [--flag=F]...

Exit 0 is success, exit 1 a compile (or test) failure with diagnostics on
stdout/stderr, anything else a process failure.
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import time
from pathlib import Path

from bootforge.core.context import BuildContext
from bootforge.core.hasher import tree_digest
from bootforge.models.artifacts import TOOLCHAIN_ENTRYPOINT, Artifact
from bootforge.models.results import (
    BuildResult,
    BuildSuccess,
    CompileFailure,
    InvocationRequest,
    ProcessFailure,
)

logger = logging.getLogger(__name__)

COMPILE_ERROR_EXIT = 1
SYSTEM_PATH = "/usr/bin:/bin"
_POLL_SECONDS = 0.1
_TERM_GRACE_SECONDS = 5.0
_MAX_DIAGNOSTICS = 64 * 1024


def _truncate(text: str) -> str:
    if len(text) <= _MAX_DIAGNOSTICS:
        return text
    return "...[truncated]...\n" + text[-_MAX_DIAGNOSTICS:]


class ToolchainInvoker:
    """Spawns toolchains for build and test steps.

    Parameters
    ----------
    ctx:
        Build context; its cancel flag aborts running invocations.
    term_grace:
        Seconds between SIGTERM and SIGKILL when tearing a group down.
    """

    def __init__(self, ctx: BuildContext, *, term_grace: float = _TERM_GRACE_SECONDS) -> None:
        self._ctx = ctx
        self._term_grace = term_grace

    # ------------------------------------------------------------------
    # Request -> command line / environment
    # ------------------------------------------------------------------

    @staticmethod
    def command(request: InvocationRequest) -> list[str]:
        cmd = [
            str(request.previous_artifact.path / TOOLCHAIN_ENTRYPOINT),
            "--stage", str(request.stage),
            "--host", request.host.triple,
            "--target", request.target.triple,
            "--source", str(request.source.root),
            "--out", str(request.output_dir),
            "--mode", request.mode,
        ]
        # One argv entry per flag, also for values starting with "-".
        cmd.extend(f"--flag={flag}" for flag in request.build_flags)
        return cmd

    @staticmethod
    def environment(request: InvocationRequest, home: Path) -> dict[str, str]:
        """A closed environment: nothing is inherited from the caller."""
        tool_bin = request.previous_artifact.path / "bin"
        return {
            "PATH": f"{tool_bin}:{SYSTEM_PATH}",
            "HOME": str(home),
            "TMPDIR": str(home),
            "LC_ALL": "C",
            "LANG": "C",
            "TZ": "UTC",
            "SOURCE_DATE_EPOCH": "0",
            "BOOTFORGE_STAGE": str(request.stage),
            "BOOTFORGE_HOST": request.host.triple,
            "BOOTFORGE_TARGET": request.target.triple,
        }

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, request: InvocationRequest) -> BuildResult:
        """Run the toolchain to completion (or cancellation) and classify it."""
        out = Path(request.output_dir)
        if out.exists():
            shutil.rmtree(out)
        out.mkdir(parents=True)
        home = out.parent / f"{out.name}.home"
        home.mkdir(parents=True, exist_ok=True)

        try:
            result = self._run(request, out, home)
        finally:
            shutil.rmtree(home, ignore_errors=True)

        if not isinstance(result, BuildSuccess):
            shutil.rmtree(out, ignore_errors=True)
        return result

    def _run(self, request: InvocationRequest, out: Path, home: Path) -> BuildResult:
        entrypoint = request.previous_artifact.path / TOOLCHAIN_ENTRYPOINT
        if not os.access(entrypoint, os.X_OK):
            return ProcessFailure(reason=f"toolchain entrypoint {entrypoint} is not executable")
        if self._ctx.cancelled:
            return ProcessFailure(reason="cancelled before start", cancelled=True)

        cmd = self.command(request)
        logger.info(
            "Running stage %d toolchain (%s) %s -> %s",
            request.previous_artifact.stage, request.mode, request.host, request.target,
        )
        logger.debug("Command: %s", " ".join(cmd))

        try:
            proc = subprocess.Popen(
                cmd,
                cwd=str(request.source.root),
                env=self.environment(request, home),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                start_new_session=True,
            )
        except OSError as exc:
            return ProcessFailure(reason=f"could not start toolchain: {exc}")

        self._ctx.record(
            "process_spawned",
            stage=request.stage,
            fingerprint=request.fingerprint or None,
            detail=f"pid={proc.pid} mode={request.mode} {request.host}->{request.target}",
        )

        deadline = time.monotonic() + request.timeout if request.timeout else None
        stdout, stderr, stop_reason = self._wait(proc, deadline)
        diagnostics = _truncate((stdout or "") + (stderr or ""))

        if stop_reason is not None:
            return ProcessFailure(
                exit_code=proc.returncode,
                reason=stop_reason,
                diagnostics=diagnostics,
                cancelled=stop_reason == "cancelled",
            )
        return self._classify(request, out, proc.returncode, diagnostics)

    def _wait(
        self, proc: subprocess.Popen, deadline: float | None
    ) -> tuple[str, str, str | None]:
        """Collect output until exit; kill the group on cancel or timeout."""
        while True:
            # communicate() keeps buffered output across timeouts.
            try:
                out, err = proc.communicate(timeout=_POLL_SECONDS)
                return (out or ""), (err or ""), None
            except subprocess.TimeoutExpired:
                pass
            reason = None
            if self._ctx.cancelled:
                reason = "cancelled"
            elif deadline is not None and time.monotonic() >= deadline:
                reason = "timed out"
            if reason is not None:
                self._kill_group(proc)
                out, err = proc.communicate()
                return (out or ""), (err or ""), reason

    def _kill_group(self, proc: subprocess.Popen) -> None:
        """SIGTERM the whole process group, then SIGKILL stragglers."""
        # start_new_session makes the child its own group leader.
        pgid = proc.pid
        logger.warning("Terminating toolchain process group %d", pgid)
        try:
            os.killpg(pgid, signal.SIGTERM)
        except ProcessLookupError:
            return
        try:
            proc.wait(timeout=self._term_grace)
        except subprocess.TimeoutExpired:
            pass
        # Workers the toolchain forked may outlive the leader.
        try:
            os.killpg(pgid, signal.SIGKILL)
        except ProcessLookupError:
            pass

    def _classify(
        self, request: InvocationRequest, out: Path, returncode: int, diagnostics: str
    ) -> BuildResult:
        if returncode == 0:
            if (
                request.mode == "build"
                and request.target == request.host
                and not (out / TOOLCHAIN_ENTRYPOINT).is_file()
            ):
                return ProcessFailure(
                    exit_code=0,
                    reason=f"toolchain reported success but produced no {TOOLCHAIN_ENTRYPOINT}",
                    diagnostics=diagnostics,
                )
            digest, _ = tree_digest(out)
            artifact = Artifact(
                stage=request.stage,
                host=request.host,
                target=request.target,
                fingerprint=request.fingerprint,
                path=out,
                tree_digest=digest,
            )
            return BuildSuccess(artifact=artifact, diagnostics=diagnostics)
        if returncode == COMPILE_ERROR_EXIT:
            return CompileFailure(diagnostics=diagnostics, exit_code=returncode)
        if returncode < 0:
            try:
                name = signal.Signals(-returncode).name
            except ValueError:
                name = str(-returncode)
            return ProcessFailure(
                signal=-returncode,
                reason=f"killed by signal {name}",
                diagnostics=diagnostics,
            )
        return ProcessFailure(
            exit_code=returncode,
            reason=f"exited with status {returncode}",
            diagnostics=diagnostics,
        )
