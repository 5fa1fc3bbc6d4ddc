"""
Queue infrastructure module.

Two queues are available:
- dramatiq_broker: Redis-backed Dramatiq broker for out-of-process workers
- work_queue: the in-process bounded WorkQueue used by the API

Both cap concurrently running pipeline runs at ``MAX_PARALLELISM``. For
Dramatiq the cap is system-wide through a Redis-backed concurrency limiter
shared by every worker process. A second Redis lock per document keeps two
workers from processing the same document at once.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import AsyncIO, CurrentMessage
from dramatiq.rate_limits import ConcurrentRateLimiter
from dramatiq.rate_limits.backends import RedisBackend

from docpipe.core.config import Settings
from docpipe.core.work_queue import WorkQueue

settings = Settings()

# ============================================================================
# Dramatiq Task Queue
# ============================================================================
dramatiq_broker = RedisBroker(url=settings.REDIS_URL)

# Add AsyncIO middleware to support async actors
dramatiq_broker.add_middleware(AsyncIO())

# Lets actors see how many retries their message has used
dramatiq_broker.add_middleware(CurrentMessage())

dramatiq.set_broker(dramatiq_broker)

limiter_backend = RedisBackend(url=settings.REDIS_URL)

pipeline_limiter = ConcurrentRateLimiter(
    limiter_backend,
    "docpipe-pipeline-runs",
    limit=settings.MAX_PARALLELISM,
    ttl=settings.WORKER_LOCK_TTL_MS,
)


@asynccontextmanager
async def pipeline_slot(document_id: str) -> AsyncIterator[None]:
    """
    Hold one of the system-wide pipeline slots plus the document's own lock.

    The limiter talks to Redis synchronously, so acquire and release run in a
    worker thread.

    Raises:
        RateLimitExceeded: If no slot is free or the document is already being processed
    """
    slots = [
        pipeline_limiter.acquire(raise_on_failure=True),
        ConcurrentRateLimiter(
            limiter_backend, f"docpipe-document-{document_id}", limit=1, ttl=settings.WORKER_LOCK_TTL_MS
        ).acquire(raise_on_failure=True),
    ]
    entered = []
    try:
        for slot in slots:
            await asyncio.to_thread(slot.__enter__)
            entered.append(slot)
        yield
    finally:
        for slot in reversed(entered):
            await asyncio.to_thread(slot.__exit__, None, None, None)


# ============================================================================
# In-process Work Queue
# ============================================================================
_work_queue: WorkQueue | None = None


def get_work_queue() -> WorkQueue:
    """Return the process-wide WorkQueue, creating it on first use."""
    global _work_queue

    if _work_queue is None:
        _work_queue = WorkQueue(
            max_parallelism=settings.MAX_PARALLELISM,
            max_queue_depth=settings.MAX_QUEUE_DEPTH,
            max_retained=settings.WORK_RESULTS_RETAINED,
        )
    return _work_queue
