"""Tests for music_upload.ingest.runner."""

from __future__ import annotations

import asyncio
import os
import time
from pathlib import Path

import pytest

from music_upload.ingest.errors import CommandTimeoutError
from music_upload.ingest.runner import run_command, tail_lines


def _is_running(pid: int) -> bool:
    """True unless *pid* is gone or a zombie waiting to be reaped."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    stat_file = Path(f"/proc/{pid}/stat")
    try:
        state = stat_file.read_text().rsplit(")", 1)[1].split()[0]
    except (OSError, IndexError):
        return True
    return state not in ("Z", "X")


class TestTailLines:
    def test_keeps_last_lines(self) -> None:
        text = "\n".join(f"line {i}" for i in range(1, 31))
        tail = tail_lines(text, 20)
        lines = tail.splitlines()
        assert len(lines) == 20
        assert lines[0] == "line 11"
        assert lines[-1] == "line 30"

    def test_skips_blank_lines(self) -> None:
        assert tail_lines("a\n\n\nb\n\n", 5) == "a\nb"

    def test_zero_lines(self) -> None:
        assert tail_lines("a\nb", 0) == ""


class TestRunCommand:
    async def test_captures_output(self) -> None:
        result = await run_command(["sh", "-c", "echo out; echo err >&2"], timeout=5)
        assert result.ok
        assert result.stdout.strip() == "out"
        assert result.stderr.strip() == "err"

    async def test_nonzero_exit(self) -> None:
        result = await run_command(["sh", "-c", "exit 3"], timeout=5)
        assert not result.ok
        assert result.returncode == 3

    async def test_arguments_are_not_shell_interpreted(self, tmp_path: Path) -> None:
        marker = tmp_path / "pwned"
        hostile = f"x; touch {marker}"
        result = await run_command(["echo", hostile], timeout=5)
        assert result.stdout.strip() == hostile
        assert not marker.exists()

    async def test_runs_in_cwd(self, tmp_path: Path) -> None:
        result = await run_command(["pwd"], timeout=5, cwd=tmp_path)
        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()

    async def test_missing_program(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            await run_command([str(tmp_path / "no-such-tool")], timeout=5)

    async def test_timeout_kills_process(self) -> None:
        started = time.monotonic()
        with pytest.raises(CommandTimeoutError) as exc_info:
            await run_command(["sleep", "30"], timeout=0.5)
        assert time.monotonic() - started < 10
        assert exc_info.value.code == "TIMED_OUT"
        assert "sleep timed out after 0.5s" in str(exc_info.value)

    async def test_timeout_kills_grandchildren(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "child.pid"
        script = f"sleep 30 & echo $! > {pid_file}; wait"
        with pytest.raises(CommandTimeoutError):
            await run_command(["sh", "-c", script], timeout=1)

        child_pid = int(pid_file.read_text().strip())
        for _ in range(50):
            if not _is_running(child_pid):
                break
            await asyncio.sleep(0.05)
        else:
            pytest.fail("grandchild process survived the timeout")

    async def test_cancellation_kills_process(self) -> None:
        task = asyncio.create_task(run_command(["sleep", "30"], timeout=60))
        await asyncio.sleep(0.3)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
