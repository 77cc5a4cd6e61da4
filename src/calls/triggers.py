"""TriggerScheduler — one-shot and daily APScheduler jobs keyed per call."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from src.calls.errors import InvalidScheduleError
from src.calls.models import RepeatMode

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from apscheduler.job import Job
    from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)


def job_key(call_id: str) -> str:
    """Name of the trigger job for a call."""
    return f"call-{call_id}"


@dataclass(frozen=True)
class TriggerSpec:
    """When a trigger fires.

    ``once`` fires at ``at`` exactly. ``daily`` fires every day at the time
    of day of ``at`` as seen in the scheduler's reference zone, rounded up
    to the whole second. The first daily fire is ``at`` itself.
    """

    kind: RepeatMode
    at: datetime

    @classmethod
    def once(cls, at: datetime) -> TriggerSpec:
        return cls(RepeatMode.ONCE, at)

    @classmethod
    def daily(cls, at: datetime) -> TriggerSpec:
        return cls(RepeatMode.DAILY, at)


class TriggerScheduler:
    """Arms and disarms call triggers on a shared AsyncIOScheduler.

    Args:
        scheduler: The process-wide APScheduler instance.
        timezone: IANA zone every trigger is evaluated in.
        clock: Returns the current aware datetime.
    """

    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        timezone: str,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._tz = ZoneInfo(timezone)
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def timezone(self) -> ZoneInfo:
        return self._tz

    def arm(
        self,
        key: str,
        spec: TriggerSpec,
        callback: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> Job:
        """Replace whatever trigger is armed under *key* with a new one."""
        trigger = self._build_trigger(spec)
        if self.disarm(key):
            logger.info("Replaced existing trigger %s", key)
        job = self._scheduler.add_job(
            callback,
            trigger=trigger,
            id=key,
            name=key,
            args=list(args),
            misfire_grace_time=None,
            replace_existing=True,
        )
        logger.info("Armed %s trigger %s at %s", spec.kind.value, key, spec.at.astimezone(self._tz))
        return job

    def disarm(self, key: str) -> bool:
        """Remove the trigger under *key*. Returns False if none was armed."""
        try:
            self._scheduler.remove_job(key)
        except JobLookupError:
            logger.debug("Trigger %s not armed (may already be removed)", key)
            return False
        logger.info("Disarmed trigger %s", key)
        return True

    def is_armed(self, key: str) -> bool:
        return self._scheduler.get_job(key) is not None

    def _build_trigger(self, spec: TriggerSpec):
        """Convert a TriggerSpec into an APScheduler trigger."""
        if spec.kind == RepeatMode.ONCE:
            if spec.at <= self._clock():
                msg = f"Trigger time {spec.at.isoformat()} is not in the future"
                raise InvalidScheduleError(msg)
            return DateTrigger(run_date=spec.at, timezone=self._tz)

        local = spec.at.astimezone(self._tz)
        if local.microsecond:
            local = local.replace(microsecond=0) + timedelta(seconds=1)
        return CronTrigger(
            hour=local.hour,
            minute=local.minute,
            second=local.second,
            start_date=local,
            timezone=self._tz,
        )
