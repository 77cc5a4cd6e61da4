"""CallLifecycleEngine — schedule, dispatch, respond, cancel and clean up calls."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from apscheduler.triggers.cron import CronTrigger

from src.calls import ids
from src.calls.errors import CallNotFoundError, ForbiddenError, InvalidScheduleError
from src.calls.ids import IdentifierIssuer
from src.calls.models import (
    CallRequest,
    CallResponse,
    CallState,
    CallStats,
    RepeatMode,
    ResponseStatus,
    ScheduledCall,
)
from src.calls.timeouts import ResponseTimeoutArbiter
from src.calls.triggers import TriggerScheduler, TriggerSpec, job_key
from src.config import settings

if TYPE_CHECKING:
    from collections.abc import Callable

    from apscheduler.schedulers.asyncio import AsyncIOScheduler

    from src.calls.registry import CallRegistry
    from src.notifications.router import DispatchRouter

logger = logging.getLogger(__name__)

CLEANUP_JOB_ID = "cleanup"
TIMEOUT_NOTE = "timeout"


class CallLifecycleEngine:
    """Orchestrates the call lifecycle on top of the registry and timers.

    Every state change funnels through this class under the registry lock.
    Timer jobs only carry a call id; ``handle_trigger`` and
    ``handle_timeout`` re-read the record when they run. The push send
    happens outside the lock and its outcome is written back afterwards.

    Args:
        registry: Call table and recipient index.
        router: Push delivery façade.
        scheduler: APScheduler instance shared by triggers and timeouts.
        timezone: Reference zone for daily triggers and the cleanup sweep.
        response_timeout_seconds: Wait before an unanswered call is missed.
        retention_hours: Age after which finished calls are purged.
        cleanup_hour: Hour of day (reference zone) the sweep runs.
        clock: Returns the current aware datetime.
    """

    def __init__(
        self,
        registry: CallRegistry,
        router: DispatchRouter,
        scheduler: AsyncIOScheduler,
        *,
        timezone: str | None = None,
        response_timeout_seconds: float | None = None,
        retention_hours: float | None = None,
        cleanup_hour: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._registry = registry
        self._router = router
        self._scheduler = scheduler
        self._clock = clock or (lambda: datetime.now(UTC))
        self._retention = timedelta(
            hours=retention_hours if retention_hours is not None else settings.retention_hours
        )
        self._cleanup_hour = cleanup_hour if cleanup_hour is not None else settings.cleanup_hour
        self._issuer = IdentifierIssuer(lambda call_id: call_id in registry)
        self._triggers = TriggerScheduler(
            scheduler, timezone or settings.trigger_timezone, clock=self._clock
        )
        self._timeouts = ResponseTimeoutArbiter(
            scheduler,
            self.handle_timeout,
            duration_seconds=(
                response_timeout_seconds
                if response_timeout_seconds is not None
                else settings.response_timeout_seconds
            ),
            clock=self._clock,
        )
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def triggers(self) -> TriggerScheduler:
        return self._triggers

    @property
    def timeouts(self) -> ResponseTimeoutArbiter:
        return self._timeouts

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Arm the daily cleanup sweep and start the scheduler."""
        self._scheduler.add_job(
            self.cleanup,
            trigger=CronTrigger(
                hour=self._cleanup_hour, minute=0, timezone=self._triggers.timezone
            ),
            id=CLEANUP_JOB_ID,
            name=CLEANUP_JOB_ID,
            misfire_grace_time=None,
            replace_existing=True,
        )
        if not self._scheduler.running:
            self._scheduler.start()
        self._running = True
        logger.info("Call engine started (tz=%s)", self._triggers.timezone)

    async def stop(self) -> None:
        """Shut down the scheduler. In-memory calls are not preserved."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Call engine stopped")

    # -- Scheduling ------------------------------------------------------------

    async def schedule(self, request: CallRequest) -> ScheduledCall:
        """Store a call and arm its trigger.

        The recipient's first active call, if any, is cancelled first.
        """
        if request.scheduled_at <= self._clock():
            msg = f"Scheduled time {request.scheduled_at.isoformat()} must be in the future"
            raise InvalidScheduleError(msg)

        async with self._registry.lock:
            active = self._registry.recipient_call_ids(request.recipient_id)
            if active:
                logger.info(
                    "Recipient %s already has call %s; cancelling it",
                    request.recipient_id,
                    active[0],
                )
                self._cancel_locked(active[0])

            call = self._build_call(request, request.scheduled_at, request.repeat)
            stored = self._registry.put(call)
            spec = (
                TriggerSpec.once(call.scheduled_at)
                if call.repeat == RepeatMode.ONCE
                else TriggerSpec.daily(call.scheduled_at)
            )
            try:
                self._triggers.arm(job_key(call.id), spec, self.handle_trigger, call.id)
            except InvalidScheduleError:
                self._registry.remove(call.id)
                raise

        logger.info(
            "Call scheduled: id=%s recipient=%s at=%s platform=%s repeat=%s",
            stored.id,
            stored.recipient_id,
            stored.scheduled_at.isoformat(),
            stored.platform,
            stored.repeat,
        )
        return stored

    async def schedule_immediate(self, request: CallRequest) -> ScheduledCall:
        """Store a call stamped with the current time and dispatch it now."""
        async with self._registry.lock:
            call = self._build_call(request, self._clock(), RepeatMode.ONCE)
            self._registry.put(call)
        logger.info("Immediate call: id=%s recipient=%s", call.id, call.recipient_id)
        return await self.dispatch(call.id)

    def _build_call(
        self, request: CallRequest, scheduled_at: datetime, repeat: RepeatMode
    ) -> ScheduledCall:
        return ScheduledCall(
            id=self._issuer.resolve(request.id),
            recipient_id=request.recipient_id,
            scheduled_at=scheduled_at,
            device_handle=request.device_handle,
            display_name=request.display_name,
            platform=request.platform,
            avatar_ref=request.avatar_ref,
            purpose=request.purpose,
            repeat=repeat,
            created_at=self._clock(),
        )

    # -- Dispatch --------------------------------------------------------------

    async def dispatch(self, call_id: str) -> ScheduledCall:
        """Mark a call dispatched, arm its response timeout and push it.

        Delivery failure is logged and recorded on the call; the timeout
        still runs so the call always reaches a terminal response.
        """
        async with self._registry.lock:
            call = self._registry.get(call_id)
            if call.is_cancelled:
                logger.info("Not dispatching cancelled call %s", call_id)
                return call
            call.state = CallState.DISPATCHED
            call.response = None
            call.delivered = None
            call.dispatched_at = self._clock()
            self._registry.put(call)
            self._timeouts.start(call_id)

        try:
            delivered = await self._router.dispatch(call)
        except Exception:
            logger.exception("Dispatch failed for call %s", call_id)
            delivered = False
        if not delivered:
            logger.error(
                "Delivery failed for call %s (%s); waiting for response timeout",
                call_id,
                call.platform,
            )

        async with self._registry.lock:
            current = self._registry.find(call_id)
            if current is None:
                call.delivered = delivered
                return call
            current.delivered = delivered
            return self._registry.put(current)

    async def handle_trigger(self, call_id: str) -> None:
        """Trigger job callback: dispatch unless the call is gone or disabled.

        A skipped daily fire still moves ``scheduled_at`` to this cycle so
        retention counts from it. A skipped one-shot fire cancels the call.
        """
        async with self._registry.lock:
            call = self._registry.find(call_id)
            if call is None:
                logger.warning("Trigger fired for unknown call %s", call_id)
                return
            if call.is_cancelled:
                logger.info("Trigger fired for cancelled call %s; ignoring", call_id)
                return
            if not call.enabled:
                if call.repeat == RepeatMode.ONCE:
                    # A one-shot trigger is spent after this fire
                    logger.info("Call %s is disabled; its only fire is skipped", call_id)
                    self._cancel_locked(call_id)
                    return
                logger.info("Call %s is disabled; skipping this cycle", call_id)
                call.scheduled_at = self._clock()
                self._registry.put(call)
                return
            if call.repeat == RepeatMode.DAILY:
                call.scheduled_at = self._clock()
                self._registry.put(call)
        try:
            await self.dispatch(call_id)
        except CallNotFoundError:
            logger.warning("Call %s purged before dispatch", call_id)

    async def handle_timeout(self, call_id: str) -> None:
        """Response timeout callback: mark the call missed if still unanswered."""
        async with self._registry.lock:
            call = self._registry.find(call_id)
            if call is None or call.is_cancelled or call.response is not None:
                return
            call.response = CallResponse(
                status=ResponseStatus.MISSED,
                responded_at=self._clock(),
                note=TIMEOUT_NOTE,
            )
            self._registry.put(call)
        logger.info("Call %s not answered in time; marked missed", call_id)

    # -- Cancellation & toggling -----------------------------------------------

    async def cancel(self, call_id: str) -> ScheduledCall:
        """Disarm a call's timers and mark it cancelled (kept until cleanup)."""
        async with self._registry.lock:
            return self._cancel_locked(ids.normalize(call_id))

    async def cancel_by_recipient(self, recipient_id: int) -> ScheduledCall:
        """Cancel the first indexed call of a recipient."""
        async with self._registry.lock:
            active = self._registry.recipient_call_ids(recipient_id)
            if not active:
                msg = f"No calls for recipient {recipient_id}"
                raise CallNotFoundError(msg)
            return self._cancel_locked(active[0])

    def _cancel_locked(self, call_id: str) -> ScheduledCall:
        call = self._registry.get(call_id)
        self._triggers.disarm(job_key(call_id))
        self._timeouts.cancel(call_id)
        call.state = CallState.CANCELLED
        logger.info("Call cancelled: %s", call_id)
        return self._registry.put(call)

    async def toggle(
        self, recipient_id: int, enabled: bool, call_id: str | None = None
    ) -> ScheduledCall:
        """Enable or disable a call.

        Without *call_id* the recipient's first indexed call is used.
        """
        async with self._registry.lock:
            if call_id:
                call = self._registry.get(ids.normalize(call_id))
                if call.recipient_id != recipient_id:
                    msg = f"Call {call.id} does not belong to recipient {recipient_id}"
                    raise ForbiddenError(msg)
            else:
                call = self._registry.list_by_recipient(recipient_id)[0]
            call.enabled = enabled
            stored = self._registry.put(call)
        logger.info("Call %s %s", stored.id, "enabled" if enabled else "disabled")
        return stored

    # -- Responses -------------------------------------------------------------

    async def record_response(
        self,
        call_id: str,
        status: ResponseStatus,
        responded_at: datetime | None = None,
        note: str | None = None,
    ) -> ScheduledCall:
        """Store the recipient's response, replacing any earlier one."""
        async with self._registry.lock:
            call = self._registry.get(ids.normalize(call_id))
            if call.is_cancelled:
                logger.warning("Ignoring %s response for cancelled call %s", status, call.id)
                return call
            call.response = CallResponse(
                status=status,
                responded_at=responded_at or self._clock(),
                note=note,
            )
            if call.state == CallState.SCHEDULED:
                call.state = CallState.DISPATCHED
            self._timeouts.cancel(call.id)
            stored = self._registry.put(call)
        logger.info("Response recorded: call=%s status=%s", stored.id, status)
        return stored

    # -- Queries ---------------------------------------------------------------

    def get(self, call_id: str) -> ScheduledCall:
        return self._registry.get(ids.normalize(call_id))

    def list_all(self) -> list[ScheduledCall]:
        return self._registry.list_all()

    def list_by_recipient(self, recipient_id: int) -> list[ScheduledCall]:
        return self._registry.list_by_recipient(recipient_id)

    def _dispatched(self, recipient_id: int | None) -> list[ScheduledCall]:
        return [
            call
            for call in self._registry.list_all()
            if call.is_dispatched and (recipient_id is None or call.recipient_id == recipient_id)
        ]

    def stats(self, recipient_id: int | None = None) -> CallStats:
        """Response counts over dispatched calls, optionally for one recipient."""
        stats = CallStats()
        for call in self._dispatched(recipient_id):
            stats.total += 1
            if call.response is None:
                stats.no_response += 1
            elif call.response.status == ResponseStatus.ANSWERED:
                stats.answered += 1
            elif call.response.status == ResponseStatus.DECLINED:
                stats.declined += 1
            else:
                stats.missed += 1
        return stats

    def history(self, recipient_id: int) -> list[dict]:
        """Dispatched calls of a recipient, projected for display."""
        return [call.to_history_entry() for call in self._dispatched(recipient_id)]

    # -- Maintenance -----------------------------------------------------------

    async def cleanup(self) -> int:
        """Purge finished calls older than the retention window.

        Returns the number of purged calls.
        """
        cutoff = self._clock() - self._retention
        purged = 0
        async with self._registry.lock:
            for call in self._registry.list_all():
                finished = call.is_cancelled or (call.is_dispatched and call.response is not None)
                if finished and call.scheduled_at < cutoff:
                    self._triggers.disarm(job_key(call.id))
                    self._timeouts.cancel(call.id)
                    self._registry.remove(call.id)
                    purged += 1
        if purged:
            logger.info("Cleaned up %d finished call(s)", purged)
        return purged
