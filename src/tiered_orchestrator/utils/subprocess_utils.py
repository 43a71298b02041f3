"""Async subprocess execution with timeout enforcement."""

import asyncio
import logging
import os
import signal
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class SubprocessError(Exception):
    """Raised when a command cannot be started at all (missing executable, bad cwd)."""

    def __init__(self, cmd: str, reason: str):
        self.cmd = cmd
        self.reason = reason
        super().__init__(f"Could not start command: {cmd}: {reason}")


@dataclass
class ProcessResult:
    """Outcome of one child process."""
    cmd: str
    returncode: int
    stdout: str
    stderr: str
    duration_seconds: float
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def combined_output(self) -> str:
        return f"{self.stdout}{self.stderr}"


def kill_process_tree(pid: int, sig: int = signal.SIGKILL) -> None:
    """Signal the child's whole process group, falling back to the single pid.

    Children are spawned with start_new_session=True, so the group reaches
    grandchildren too (e.g. `bun run build` spawning tsc).
    """
    try:
        os.killpg(os.getpgid(pid), sig)
    except (ProcessLookupError, PermissionError):
        pass
    except OSError:
        try:
            os.kill(pid, sig)
        except (ProcessLookupError, PermissionError):
            pass


async def _feed_stdin(stream: asyncio.StreamWriter, data: bytes) -> None:
    try:
        stream.write(data)
        await stream.drain()
    except (BrokenPipeError, ConnectionResetError):
        # Child exited without reading all of its input
        logger.debug("Child closed stdin before input was consumed")
    finally:
        stream.close()


async def _finish(task: "asyncio.Future[Any]", timeout: Optional[float]) -> Any:
    """Result of a pipe task, or None if it is still blocked after ``timeout``."""
    done, _ = await asyncio.wait({task}, timeout=timeout)
    if not done:
        # A descendant outside the process group still holds the pipe
        task.cancel()
        return None
    return task.result()


async def run_process(
    argv: List[str],
    *,
    cwd: Optional[Path] = None,
    input_text: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
) -> ProcessResult:
    """
    Run a command without blocking the event loop.

    stdout and stderr are drained by their own reader tasks while only the
    child's exit races the timer. If it has not exited after ``timeout``
    seconds its process group is killed, the child is reaped, and the result
    is returned with ``timed_out=True`` and whatever output the child wrote
    before it died.

    Args:
        argv: Command and arguments (no shell)
        cwd: Working directory
        input_text: Text written to the child's stdin, then stdin is closed
        env: Full environment for the child (None inherits ours)
        timeout: Seconds before the child is killed (None waits forever)

    Returns:
        ProcessResult with captured stdout/stderr

    Raises:
        SubprocessError: If the command could not be started
    """
    cmd_str = " ".join(argv)
    if not argv:
        raise SubprocessError(cmd_str, "empty command")
    start = time.time()

    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd) if cwd else None,
            stdin=asyncio.subprocess.PIPE if input_text is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
            start_new_session=True,
        )
    except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
        raise SubprocessError(cmd_str, str(e)) from e

    stdout_reader = asyncio.ensure_future(process.stdout.read())
    stderr_reader = asyncio.ensure_future(process.stderr.read())
    feeder = None
    if input_text is not None:
        feeder = asyncio.ensure_future(_feed_stdin(process.stdin, input_text.encode()))
    timed_out = False

    try:
        await asyncio.wait_for(process.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        timed_out = True
        logger.warning(f"Command timed out after {timeout}s, killing: {cmd_str}")
        kill_process_tree(process.pid)
        await process.wait()
    except asyncio.CancelledError:
        kill_process_tree(process.pid)
        await process.wait()
        for task in (stdout_reader, stderr_reader, feeder):
            if task is not None:
                task.cancel()
        raise

    if feeder is not None:
        await _finish(feeder, timeout=5)

    drain_timeout = 5 if timed_out else None
    stdout_b = await _finish(stdout_reader, drain_timeout) or b""
    stderr_b = await _finish(stderr_reader, drain_timeout) or b""

    duration = time.time() - start
    returncode = process.returncode if process.returncode is not None else -1

    return ProcessResult(
        cmd=cmd_str,
        returncode=returncode,
        stdout=stdout_b.decode("utf-8", errors="replace"),
        stderr=stderr_b.decode("utf-8", errors="replace"),
        duration_seconds=duration,
        timed_out=timed_out,
    )
