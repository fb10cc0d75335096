"""
Toolchain — run external tools (size, objcopy, uploader) as child processes.

Tools run with inherited stderr so their diagnostics reach the user
unmodified.  stdout is inherited too unless the caller asks to capture it.
A non-zero exit is reported, not raised; deciding what it means is the
caller's job.  A child killed by signal N reports 128 + N, as a POSIX
shell would.  A tool that cannot be started at all raises
ToolInvocationError.
"""
import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from v5_deploy.errors import ToolInvocationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolResult:
    """Outcome of a single tool invocation."""

    command: List[str]
    exit_code: int
    stdout: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def run_tool(
    cmd: Sequence[str],
    cwd: Optional[Path] = None,
    capture_stdout: bool = False,
    timeout: Optional[float] = None,
) -> ToolResult:
    """
    Run *cmd* and wait for it to exit.

    Raises
    ------
    ToolInvocationError
        If *cmd* is empty, the executable cannot be found or started, or
        *timeout* expires.
    """
    cmd = [str(c) for c in cmd]
    if not cmd:
        raise ToolInvocationError("(none)", ToolInvocationError.NOT_FOUND, "empty command")
    tool = cmd[0]
    logger.debug("Running: %s", " ".join(cmd))

    t0 = time.monotonic()
    try:
        result = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd is not None else None,
            stdout=subprocess.PIPE if capture_stdout else None,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        raise ToolInvocationError(tool, ToolInvocationError.NOT_FOUND, "not found on PATH")
    except PermissionError as e:
        raise ToolInvocationError(tool, 126, str(e))
    except subprocess.TimeoutExpired:
        raise ToolInvocationError(tool, 124, f"timed out after {timeout}s")
    duration = int((time.monotonic() - t0) * 1000)

    exit_code = result.returncode
    if exit_code < 0:
        logger.debug("%s killed by signal %d", tool, -exit_code)
        exit_code = 128 - exit_code

    logger.debug("%s exited with %d after %d ms", tool, exit_code, duration)
    return ToolResult(
        command=cmd,
        exit_code=exit_code,
        stdout=result.stdout or "",
        duration_ms=duration,
    )


def check_tool(result: ToolResult) -> ToolResult:
    """Raise ToolInvocationError if *result* carries a non-zero exit code."""
    if not result.ok:
        raise ToolInvocationError(result.command[0], result.exit_code)
    return result
