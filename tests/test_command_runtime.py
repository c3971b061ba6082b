from __future__ import annotations

import asyncio

import pytest

from mc_miner.command_runtime import CommandJobStatus, CommandRuntime, CommandRuntimeClosedError


def test_runtime_executes_job_successfully() -> None:
    calls: list[str] = []

    async def _job() -> None:
        calls.append("ran")

    async def _run() -> CommandJobStatus:
        runtime = CommandRuntime()
        job_id = runtime.submit("echo", _job)
        await runtime.drain(timeout=1)
        job = runtime.get_job(job_id)
        assert job.started_at is not None and job.finished_at is not None
        return job.status

    assert asyncio.run(_run()) == CommandJobStatus.SUCCEEDED
    assert calls == ["ran"]


def test_runtime_marks_failed_job() -> None:
    async def _job() -> None:
        raise RuntimeError("boom")

    async def _run() -> tuple[CommandJobStatus, str | None]:
        runtime = CommandRuntime()
        job_id = runtime.submit("explode", _job)
        await runtime.drain(timeout=1)
        job = runtime.get_job(job_id)
        return job.status, job.error

    status, error = asyncio.run(_run())
    assert status == CommandJobStatus.FAILED
    assert "RuntimeError" in (error or "")


def test_drain_cancels_stragglers_after_timeout() -> None:
    async def _job() -> None:
        await asyncio.sleep(10)

    async def _run() -> tuple[CommandJobStatus, int]:
        runtime = CommandRuntime()
        job_id = runtime.submit("slow", _job)
        await asyncio.sleep(0)
        await runtime.drain(timeout=0.01)
        return runtime.get_job(job_id).status, runtime.in_flight

    status, in_flight = asyncio.run(_run())
    assert status == CommandJobStatus.CANCELLED
    assert in_flight == 0


def test_closed_runtime_rejects_jobs() -> None:
    async def _job() -> None:
        return None

    async def _run() -> None:
        runtime = CommandRuntime()
        await runtime.drain()
        assert runtime.closed
        with pytest.raises(CommandRuntimeClosedError):
            runtime.submit("late", _job)

    asyncio.run(_run())


def test_history_is_newest_first_and_bounded() -> None:
    async def _job() -> None:
        return None

    async def _run() -> CommandRuntime:
        runtime = CommandRuntime(max_history=3)
        for index in range(5):
            runtime.submit(f"job-{index}", _job)
        await runtime.drain(timeout=1)
        return runtime

    runtime = asyncio.run(_run())
    assert [job.name for job in runtime.list_recent_jobs()] == ["job-4", "job-3", "job-2"]
    assert [job.name for job in runtime.list_recent_jobs(limit=1)] == ["job-4"]
    with pytest.raises(KeyError):
        runtime.get_job("missing")
