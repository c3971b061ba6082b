"""Supervised task pool for command-triggered and event-triggered jobs."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable
from uuid import uuid4

JobFactory = Callable[[], Awaitable[None]]


class CommandJobStatus(str, Enum):
    """Lifecycle states for submitted jobs."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class CommandJob:
    """Represents job execution state and outcome."""

    id: str
    name: str
    submitted_at: datetime
    status: CommandJobStatus
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None


class CommandRuntimeClosedError(RuntimeError):
    """Raised when a job is submitted after the runtime started draining."""


class CommandRuntime:
    """Runs each submitted job as its own task and keeps track of it until it ends.

    ``drain`` stops accepting jobs, waits for the in-flight ones, and cancels
    whatever is still running when the timeout expires.
    """

    def __init__(self, *, max_history: int = 1_000, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("mc_miner.command_runtime")
        self._history: deque[CommandJob] = deque(maxlen=max_history)
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def submit(self, name: str, factory: JobFactory) -> str:
        """Start ``factory()`` as a supervised task and return the job id."""
        if self._closed:
            raise CommandRuntimeClosedError(f"Command runtime is closed; rejected job {name!r}")

        job_id = uuid4().hex
        job = CommandJob(
            id=job_id,
            name=name,
            submitted_at=datetime.now(timezone.utc),
            status=CommandJobStatus.QUEUED,
        )
        self._history.appendleft(job)
        task = asyncio.create_task(self._execute(job, factory), name=f"job-{name}-{job_id[:8]}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda _task, job_id=job_id: self._tasks.pop(job_id, None))
        self._logger.debug("job_submitted", extra={"job_id": job_id, "job": name, "in_flight": len(self._tasks)})
        return job_id

    def get_job(self, job_id: str) -> CommandJob:
        """Return job state for the given id."""
        for job in self._history:
            if job.id == job_id:
                return job
        raise KeyError(f"Unknown command job id: {job_id}")

    def list_recent_jobs(self, limit: int = 20) -> list[CommandJob]:
        """Return the most recently submitted jobs, newest first."""
        return list(self._history)[:limit]

    async def drain(self, timeout: float | None = None) -> None:
        """Refuse new jobs and wait for in-flight ones; cancel stragglers after ``timeout``."""
        self._closed = True
        current = asyncio.current_task()
        pending = [task for task in self._tasks.values() if task is not current]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=timeout)
            for task in still_running:
                task.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)
                self._logger.warning("jobs_cancelled_on_drain", extra={"count": len(still_running)})
        self._logger.info("command_runtime_drained")

    async def _execute(self, job: CommandJob, factory: JobFactory) -> None:
        job.status = CommandJobStatus.RUNNING
        job.started_at = datetime.now(timezone.utc)
        self._logger.debug("job_started", extra={"job_id": job.id, "job": job.name})
        try:
            await factory()
        except asyncio.CancelledError:
            job.status = CommandJobStatus.CANCELLED
            raise
        except Exception as exc:  # noqa: BLE001 - runtime should capture job failures.
            job.status = CommandJobStatus.FAILED
            job.error = f"{type(exc).__name__}: {exc}"
            self._logger.exception("job_failed", extra={"job_id": job.id, "job": job.name})
        else:
            job.status = CommandJobStatus.SUCCEEDED
            self._logger.debug("job_succeeded", extra={"job_id": job.id, "job": job.name})
        finally:
            job.finished_at = datetime.now(timezone.utc)
