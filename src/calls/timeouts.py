"""ResponseTimeoutArbiter — bounded wait for a response after dispatch."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.date import DateTrigger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60


def timeout_key(call_id: str) -> str:
    """Name of the response timeout job for a call."""
    return f"timeout-{call_id}"


class ResponseTimeoutArbiter:
    """Keeps at most one pending response timeout per call.

    When a timeout elapses, *on_timeout* is awaited with the call id. The
    handler decides, under the registry lock, whether the call still needs
    to be marked missed.
    """

    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        on_timeout: Callable[[str], Awaitable[None]],
        duration_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._on_timeout = on_timeout
        self._duration = timedelta(seconds=duration_seconds)
        self._clock = clock or (lambda: datetime.now(UTC))

    def start(self, call_id: str, duration_seconds: float | None = None) -> datetime:
        """Arm the timeout for *call_id*, replacing any running one.

        Returns the instant the timeout will fire.
        """
        self.cancel(call_id)
        duration = (
            timedelta(seconds=duration_seconds) if duration_seconds is not None else self._duration
        )
        fire_at = self._clock() + duration
        key = timeout_key(call_id)
        self._scheduler.add_job(
            self._on_timeout,
            trigger=DateTrigger(run_date=fire_at),
            id=key,
            name=key,
            args=[call_id],
            misfire_grace_time=None,
            replace_existing=True,
        )
        logger.debug("Response timeout armed for %s (%s)", call_id, duration)
        return fire_at

    def cancel(self, call_id: str) -> bool:
        """Stop the timeout for *call_id*. Returns False if none was running."""
        try:
            self._scheduler.remove_job(timeout_key(call_id))
        except JobLookupError:
            return False
        logger.debug("Response timeout cancelled for %s", call_id)
        return True

    def is_running(self, call_id: str) -> bool:
        return self._scheduler.get_job(timeout_key(call_id)) is not None
