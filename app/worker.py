"""
RQ worker for reminders and the daily trial check.

    python -m app.worker

Listens on the `reminders` and `scheduler` queues with RQ's scheduler
enabled, so jobs scheduled with `enqueue_at` are moved onto their queue
when due. Run more processes for more reminder throughput; the trial
check is one job per day, so it never overlaps itself.
"""

import asyncio
import logging

from rq import Worker

from app.config import settings
from app.core.notifications import REMINDER_QUEUE, SCHEDULER_QUEUE, schedule_next
from app.infra.jobs import JobQueue
from app.main import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    setup_logging()
    logger.info(f"Starting {settings.app_name} worker in {settings.app_env} mode")

    jobs = JobQueue.from_url(settings.redis_url, job_timeout=settings.job_timeout_seconds)
    jobs.connection.ping()

    asyncio.run(schedule_next(jobs))

    queues = [jobs.queue(REMINDER_QUEUE), jobs.queue(SCHEDULER_QUEUE)]
    for queue in queues:
        logger.info(f"  -> queue '{queue.name}': {len(queue)} job(s) pending")

    # RQ handles SIGINT/SIGTERM with a warm shutdown
    Worker(queues, connection=jobs.connection).work(with_scheduler=True)
    logger.info("Worker stopped")


if __name__ == "__main__":
    main()
