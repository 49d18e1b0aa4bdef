"""Run the build command against a checkout and capture its output."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from pathlib import Path

from crane.errors import BuildExecError
from crane.models import BuildOutcome

logger = logging.getLogger(__name__)


def run_build(
    command: str,
    cwd: Path,
    sha: str,
    *,
    timeout: float | None = None,
) -> BuildOutcome:
    """Run ``command`` through ``sh -c`` rooted at ``cwd``.

    Both streams are captured in memory. Exit code zero is the only success
    signal. A command that exceeds ``timeout`` is killed and reported as a
    failed build. Raises ``BuildExecError`` only if the shell cannot be spawned.

    The build runs in its own session, so a Ctrl-C aimed at the agent does
    not reach it; shutdown waits for the build to finish.
    """
    cmd = ["sh", "-c", command]
    logger.info("building %s: %s", sha[:7], command)
    start = time.monotonic()
    try:
        proc = subprocess.Popen(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as exc:
        raise BuildExecError(f"could not start build command {command!r}: {exc}") from exc

    timed_out = False
    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        timed_out = True
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            # group already gone
            pass
        stdout, stderr = proc.communicate()

    duration_ms = int((time.monotonic() - start) * 1000)

    if timed_out:
        logger.warning("build of %s timed out after %ss", sha[:7], timeout)
        return BuildOutcome(
            sha=sha,
            success=False,
            exit_code=None,
            stdout=stdout,
            stderr=stderr + f"\ncrane: build timed out after {timeout}s\n".encode(),
            duration_ms=duration_ms,
        )

    logger.info("build of %s exited %d in %dms", sha[:7], proc.returncode, duration_ms)
    return BuildOutcome(
        sha=sha,
        success=proc.returncode == 0,
        exit_code=proc.returncode,
        stdout=stdout,
        stderr=stderr,
        duration_ms=duration_ms,
    )
