from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable

from apscheduler.jobstores.base import JobLookupError
from telegram.ext import CallbackContext, Job, JobQueue

LOGGER = logging.getLogger(__name__)


class RepeatingTask:
    """A named timer job with explicit start/stop and non-overlapping ticks."""

    def __init__(
        self,
        name: str,
        action: Callable[[], Awaitable[Any] | Any],
        *,
        interval_seconds: float,
        first_delay_seconds: float = 0.0,
    ) -> None:
        self.name = name
        self._action = action
        self._interval = interval_seconds
        self._first = first_delay_seconds
        self._job: Job | None = None
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._job is not None

    def start(self, job_queue: JobQueue) -> None:
        if self._job is not None:
            return
        self._job = job_queue.run_repeating(
            self._callback,
            interval=self._interval,
            first=self._first,
            name=self.name,
            job_kwargs={"max_instances": 1, "coalesce": True},
        )
        LOGGER.info("Started %s every %ss", self.name, self._interval)

    def stop(self) -> None:
        if self._job is None:
            return
        try:
            self._job.schedule_removal()
        except JobLookupError:
            # A stopped JobQueue has already dropped its jobs.
            LOGGER.debug("%s was already removed from the job queue", self.name)
        self._job = None
        LOGGER.info("Stopped %s", self.name)

    async def _callback(self, context: CallbackContext) -> None:
        await self.tick()

    async def tick(self) -> bool:
        """Run the action once; returns False when the previous tick is still running."""
        if self._lock.locked():
            LOGGER.debug("Skipping %s tick; previous run still in progress", self.name)
            return False

        async with self._lock:
            try:
                result = self._action()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                LOGGER.exception("%s tick failed", self.name)
        return True
