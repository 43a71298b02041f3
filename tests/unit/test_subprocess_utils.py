"""Tests for async subprocess execution."""

import time

import pytest

from tiered_orchestrator.utils.subprocess_utils import SubprocessError, run_process


@pytest.mark.asyncio
async def test_captures_output():
    result = await run_process(["sh", "-c", "echo out; echo err >&2"])

    assert result.ok
    assert result.stdout == "out\n"
    assert result.stderr == "err\n"
    assert result.combined_output == "out\nerr\n"


@pytest.mark.asyncio
async def test_nonzero_exit():
    result = await run_process(["sh", "-c", "exit 4"])

    assert not result.ok
    assert result.returncode == 4
    assert not result.timed_out


@pytest.mark.asyncio
async def test_feeds_stdin():
    result = await run_process(["cat"], input_text="diff text\n")

    assert result.stdout == "diff text\n"


@pytest.mark.asyncio
async def test_runs_in_cwd_with_env(tmp_path):
    (tmp_path / "marker").write_text("")
    result = await run_process(
        ["sh", "-c", 'test -f marker && echo "$FLAG"'],
        cwd=tmp_path,
        env={"FLAG": "set", "PATH": "/usr/bin:/bin"},
    )

    assert result.stdout == "set\n"


@pytest.mark.asyncio
async def test_timeout_kills_process_group():
    start = time.monotonic()
    result = await run_process(["sh", "-c", "sleep 30 & sleep 30; echo never"], timeout=0.3)

    assert time.monotonic() - start < 10
    assert result.timed_out
    assert not result.ok
    assert "never" not in result.stdout


@pytest.mark.asyncio
async def test_timeout_keeps_output_written_before_kill():
    result = await run_process(
        ["sh", "-c", "echo partial; echo diag >&2; sleep 30"], timeout=0.5
    )

    assert result.timed_out
    assert result.stdout == "partial\n"
    assert result.stderr == "diag\n"


@pytest.mark.asyncio
async def test_large_output_does_not_block_exit():
    result = await run_process(["sh", "-c", "yes line | head -n 50000"], timeout=10)

    assert result.ok
    assert result.stdout.count("line\n") == 50000


@pytest.mark.asyncio
async def test_child_ignoring_stdin_still_completes():
    result = await run_process(["true"], input_text="x" * 200000, timeout=10)

    assert result.ok


@pytest.mark.asyncio
async def test_missing_executable_raises():
    with pytest.raises(SubprocessError) as exc_info:
        await run_process(["no-such-binary-for-tests"])

    assert exc_info.value.cmd == "no-such-binary-for-tests"


@pytest.mark.asyncio
async def test_missing_cwd_raises(tmp_path):
    with pytest.raises(SubprocessError):
        await run_process(["true"], cwd=tmp_path / "absent")


@pytest.mark.asyncio
async def test_empty_argv_raises():
    with pytest.raises(SubprocessError, match="empty command"):
        await run_process([])

