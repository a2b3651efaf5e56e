"""
Background jobs on RQ (Redis Queue).

Reminders and the daily trial check are RQ jobs with deterministic ids,
so scheduling the same id again replaces the pending job and removing it
withdraws it. Jobs run in `python -m app.worker` (an RQ worker started
with its scheduler) and are enqueued from the API.

RQ talks to Redis synchronously; the async wrappers here run each call in
a worker thread so the event loop is not blocked.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Optional

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue, Retry
from rq.exceptions import NoSuchJobError
from rq.job import Job

logger = logging.getLogger(__name__)


class TaskQueueError(Exception):
    """Raised when a job cannot be scheduled or withdrawn."""
    pass


def log_failed_job(job: Job, connection: Redis, exc_type, exc_value, traceback) -> None:
    """RQ failure callback; runs for every failed attempt."""
    logger.error(
        f"[JOB-FAILED] queue={job.origin} job_id={job.id} func={job.func_name} "
        f"retries_left={job.retries_left}: {exc_value}"
    )


class JobQueue:
    """
    Thin layer over RQ queues sharing one Redis connection.

    Usage:
        jobs = JobQueue.from_url(settings.redis_url)
        await jobs.enqueue_at("reminders", fire_at, send_reminder_job, id, "24h", job_id=key)
        await jobs.remove(key)
    """

    def __init__(self, connection: Redis, job_timeout: int = 120):
        self.connection = connection
        self.job_timeout = job_timeout

    @classmethod
    def from_url(cls, url: str, job_timeout: int = 120) -> "JobQueue":
        # RQ stores pickled payloads, so responses must stay as bytes
        return cls(Redis.from_url(url), job_timeout=job_timeout)

    def queue(self, name: str) -> Queue:
        return Queue(name, connection=self.connection)

    async def enqueue_at(
        self,
        queue_name: str,
        run_at: datetime,
        func: Callable,
        *args: Any,
        job_id: str,
        retry: Optional[Retry] = None,
        result_ttl: int = 3600,
    ) -> str:
        """
        Schedule `func(*args)` for `run_at`, replacing any job with the same id.

        Raises:
            TaskQueueError: Redis unreachable
        """
        return await asyncio.to_thread(
            self._enqueue_at, queue_name, run_at, func, args, job_id, retry, result_ttl
        )

    def _enqueue_at(
        self,
        queue_name: str,
        run_at: datetime,
        func: Callable,
        args: tuple,
        job_id: str,
        retry: Optional[Retry],
        result_ttl: int,
    ) -> str:
        try:
            self._delete(job_id)
            job = self.queue(queue_name).enqueue_at(
                run_at,
                func,
                *args,
                job_id=job_id,
                retry=retry,
                job_timeout=self.job_timeout,
                result_ttl=result_ttl,
                failure_ttl=86400,
                on_failure=log_failed_job,
            )
        except RedisError as e:
            raise TaskQueueError(f"Could not schedule {job_id}: {e}") from e

        logger.info(f"[JOB-ENQUEUE] queue={queue_name} func={func.__name__} job_id={job.id} at={run_at.isoformat()}")
        return job.id

    async def remove(self, job_id: str) -> bool:
        """Withdraw a job. Idempotent; returns whether one existed."""
        return await asyncio.to_thread(self._remove, job_id)

    def _remove(self, job_id: str) -> bool:
        try:
            removed = self._delete(job_id)
        except RedisError as e:
            raise TaskQueueError(f"Could not remove {job_id}: {e}") from e
        if removed:
            logger.info(f"[JOB-CANCEL] job_id={job_id}")
        return removed

    def _delete(self, job_id: str) -> bool:
        try:
            job = Job.fetch(job_id, connection=self.connection)
        except NoSuchJobError:
            return False
        job.delete()
        return True

    async def exists(self, job_id: str) -> bool:
        return await asyncio.to_thread(self._exists, job_id)

    def _exists(self, job_id: str) -> bool:
        try:
            return Job.exists(job_id, connection=self.connection)
        except RedisError as e:
            raise TaskQueueError(f"Could not look up {job_id}: {e}") from e

    def close(self) -> None:
        self.connection.close()
