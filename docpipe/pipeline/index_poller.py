"""
Indexing Status Poller.

After a file is uploaded to an index backend with asynchronous availability,
poll its status on a fixed interval until it settles or the wait budget runs
out. Running out of budget is not an error: the caller gets ``Processing``
back and a later reconciliation pass re-checks the file.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from docpipe.clients.base import IndexClient
from docpipe.models.document import IndexStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollOutcome:
    status: str
    error_message: str | None = None


class IndexStatusPoller:
    def __init__(
        self,
        client: IndexClient,
        interval: float = 2.0,
        max_wait: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.client = client
        self.interval = interval
        self.max_wait = max_wait
        self._clock = clock
        self._sleep = sleep

    async def wait_until_settled(self, file_id: str) -> PollOutcome:
        """
        Poll ``describe(file_id)`` until the file is Available or Failed.

        Transient describe errors are logged and retried within the same
        budget; they never end the wait early.

        Returns:
            PollOutcome whose status is Available, Failed (with the backend's
            message), or Processing when the budget ran out.
        """
        deadline = self._clock() + self.max_wait
        attempts = 0

        while self._clock() < deadline:
            attempts += 1
            try:
                info = await self.client.describe(file_id)
            except Exception as e:
                logger.warning(f"Error polling index status for {file_id} (attempt {attempts}): {e}")
            else:
                if info.status == IndexStatus.AVAILABLE:
                    logger.info(f"Index file {file_id} available after {attempts} polls")
                    return PollOutcome(IndexStatus.AVAILABLE)
                if info.status == IndexStatus.FAILED or info.error_message:
                    error = info.error_message or "Index backend reported failure"
                    logger.error(f"Index file {file_id} failed: {error}")
                    return PollOutcome(IndexStatus.FAILED, error)

            await self._sleep(self.interval)

        logger.warning(f"Index file {file_id} still processing after {self.max_wait}s")
        return PollOutcome(IndexStatus.PROCESSING)
