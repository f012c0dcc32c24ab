"""Argument-vector subprocess execution with a hard deadline.

External tools are always started with ``create_subprocess_exec`` (never a
shell) in their own session, so a timeout or cancellation can kill the whole
process tree, not just the direct child.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from music_upload.ingest.errors import CommandTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of a finished external command."""

    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def tail_lines(text: str, max_lines: int) -> str:
    """Return the last *max_lines* non-empty lines of *text*."""
    lines = [line for line in text.strip().splitlines() if line.strip()]
    return "\n".join(lines[-max_lines:]) if max_lines > 0 else ""


def _kill_process_tree(proc: asyncio.subprocess.Process) -> None:
    """SIGKILL the process group started for *proc*."""
    if proc.returncode is not None:
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except OSError:
        logger.warning("killpg failed for pid %d, killing child only", proc.pid)
        try:
            proc.kill()
        except ProcessLookupError:
            pass


async def run_command(
    argv: Sequence[str],
    *,
    timeout: float,
    cwd: Path | None = None,
) -> CommandResult:
    """Run *argv* and capture its output.

    Args:
        argv: Program followed by its arguments; each element is passed
            verbatim, with no shell interpretation.
        timeout: Seconds before the process tree is killed.
        cwd: Optional working directory.

    Returns:
        CommandResult with decoded stdout/stderr.

    Raises:
        FileNotFoundError: If the program does not exist.
        CommandTimeoutError: If the deadline passed; the tree has been killed.
    """
    args = [str(a) for a in argv]
    proc = await asyncio.create_subprocess_exec(
        *args,
        cwd=str(cwd) if cwd is not None else None,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        start_new_session=True,
    )

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except TimeoutError:
        _kill_process_tree(proc)
        await proc.wait()
        logger.warning("%s timed out after %.1fs (pid %d killed)", args[0], timeout, proc.pid)
        raise CommandTimeoutError(Path(args[0]).name, timeout) from None
    except asyncio.CancelledError:
        _kill_process_tree(proc)
        await asyncio.shield(proc.wait())
        raise

    return CommandResult(
        argv=args,
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout_bytes.decode(errors="replace"),
        stderr=stderr_bytes.decode(errors="replace"),
    )
