"""Background job worker pool for secondary-index sync.

Jobs are submitted with `schedule`, which never blocks or raises on
handler failure. A failed job is logged and recorded; it is not retried.
Completed jobs drop their payload, and only the newest `max_finished`
finished jobs are kept.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from edu_cms.app.utils.metrics import metrics

logger = logging.getLogger(__name__)

DEFAULT_MAX_FINISHED_JOBS = 1000


class SyncJobType(str, Enum):
    """Known job types."""

    UPSERT = "UPSERT"
    DELETE = "DELETE"
    INDEX_REBUILD = "INDEX_REBUILD"
    CLEANUP = "CLEANUP"


class SyncJobStatus(str, Enum):
    """Job lifecycle status."""

    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"


_FINISHED = (SyncJobStatus.completed, SyncJobStatus.failed)


@dataclass
class SyncJob:
    """A unit of background work."""

    id: str
    type: str
    payload: dict[str, Any] = field(default_factory=dict)
    status: SyncJobStatus = SyncJobStatus.pending
    error: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime | None = None
    completed_at: datetime | None = None


JobHandler = Callable[[SyncJob], Awaitable[None]]


class BackgroundSyncWorker:
    """asyncio.Queue drained by a fixed number of worker tasks."""

    def __init__(
        self, concurrency: int = 1, max_finished: int = DEFAULT_MAX_FINISHED_JOBS
    ) -> None:
        """Initialize worker pool.

        Args:
            concurrency: Number of worker tasks started by `start`
            max_finished: Completed and failed jobs retained for inspection
        """
        self._concurrency = max(1, concurrency)
        self._max_finished = max(0, max_finished)
        self._queue: asyncio.Queue[SyncJob] = asyncio.Queue()
        self._handlers: dict[str, JobHandler] = {}
        self._jobs: dict[str, SyncJob] = {}
        self._tasks: list[asyncio.Task[None]] = []
        self.register_handler(SyncJobType.CLEANUP, self._cleanup)

    @property
    def running(self) -> bool:
        """Whether worker tasks are active."""
        return bool(self._tasks)

    def register_handler(self, job_type: str, handler: JobHandler) -> None:
        """Register (or replace) the handler for a job type."""
        self._handlers[str(getattr(job_type, "value", job_type))] = handler

    def schedule(self, job_type: str, payload: dict[str, Any] | None = None) -> str:
        """Queue a job and return its ID immediately."""
        job = SyncJob(
            id=f"job_{uuid.uuid4().hex[:12]}",
            type=str(getattr(job_type, "value", job_type)),
            payload=payload or {},
        )
        self._jobs[job.id] = job
        self._queue.put_nowait(job)
        logger.debug("Enqueued job %s of type %s", job.id, job.type)
        return job.id

    async def start(self) -> None:
        """Start the worker tasks (idempotent)."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._run(), name=f"sync-worker-{i}")
            for i in range(self._concurrency)
        ]
        logger.info("Background sync worker started (concurrency=%d)", self._concurrency)

    async def stop(self) -> None:
        """Cancel the worker tasks. Queued jobs stay pending."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info("Background sync worker stopped")

    async def join(self) -> None:
        """Wait until every queued job has finished."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self.process_job(job)
            finally:
                self._queue.task_done()

    async def process_job(self, job: SyncJob) -> None:
        """Run one job, recording its outcome. Never raises for handler errors."""
        handler = self._handlers.get(job.type)

        if handler is None:
            job.status = SyncJobStatus.failed
            job.error = f"No handler registered for type: {job.type}"
            job.completed_at = datetime.now(timezone.utc)
            logger.error("Job %s failed: %s", job.id, job.error)
            metrics.record_sync_job(job.type, "failed")
            self._trim_finished()
            return

        job.status = SyncJobStatus.running
        job.started_at = datetime.now(timezone.utc)

        try:
            await handler(job)
        except Exception as e:
            job.status = SyncJobStatus.failed
            job.error = str(e) or type(e).__name__
            logger.error(
                "Job %s of type %s failed: %s",
                job.id,
                job.type,
                job.error,
                extra={"structured": {"job_id": job.id, "job_type": job.type}},
            )
        else:
            job.status = SyncJobStatus.completed
            job.payload = {}

        job.completed_at = datetime.now(timezone.utc)
        metrics.record_sync_job(job.type, job.status.value)
        self._trim_finished()

    def get_job(self, job_id: str) -> SyncJob | None:
        """Look up a job by ID."""
        return self._jobs.get(job_id)

    def get_jobs(
        self, status: SyncJobStatus | None = None, job_type: str | None = None
    ) -> list[SyncJob]:
        """Jobs, newest first, optionally filtered."""
        jobs = list(self._jobs.values())
        if status is not None:
            jobs = [j for j in jobs if j.status == status]
        if job_type is not None:
            wanted = str(getattr(job_type, "value", job_type))
            jobs = [j for j in jobs if j.type == wanted]
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    def get_stats(self) -> dict[str, int]:
        """Job counts by status."""
        stats = {status.value: 0 for status in SyncJobStatus}
        for job in self._jobs.values():
            stats[job.status.value] += 1
        return stats

    def clear_completed(self) -> int:
        """Forget finished jobs. Returns how many were dropped."""
        finished = [job_id for job_id, job in self._jobs.items() if job.status in _FINISHED]
        for job_id in finished:
            del self._jobs[job_id]
        return len(finished)

    def _trim_finished(self) -> None:
        finished = [job for job in self._jobs.values() if job.status in _FINISHED]
        excess = len(finished) - self._max_finished
        if excess <= 0:
            return
        finished.sort(key=lambda j: j.completed_at or j.created_at)
        for job in finished[:excess]:
            del self._jobs[job.id]

    async def _cleanup(self, job: SyncJob) -> None:
        dropped = self.clear_completed()
        logger.info("Cleanup removed %d finished jobs", dropped)


class NullSyncScheduler:
    """SyncScheduler that drops every job (sync disabled)."""

    def schedule(self, job_type: str, payload: dict[str, Any] | None = None) -> str:
        """Discard the job."""
        return f"job_{uuid.uuid4().hex[:12]}"
