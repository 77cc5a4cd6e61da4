"""Call record data model."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class Platform(StrEnum):
    """Delivery transport selector.

    ``ios`` is the primary transport (APNs VoIP push), ``android`` the
    secondary one (FCM data message).
    """

    IOS = "ios"
    ANDROID = "android"


class CallState(StrEnum):
    SCHEDULED = "scheduled"
    DISPATCHED = "dispatched"
    CANCELLED = "cancelled"


class ResponseStatus(StrEnum):
    ANSWERED = "answered"
    DECLINED = "declined"
    MISSED = "missed"


class RepeatMode(StrEnum):
    DAILY = "daily"
    ONCE = "once"


@dataclass(frozen=True)
class CallResponse:
    """The recipient's reaction to a dispatched call."""

    status: ResponseStatus
    responded_at: datetime
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "responded_at": self.responded_at.isoformat(),
            "note": self.note,
        }


@dataclass
class ScheduledCall:
    """A call scheduled for (or already dispatched to) one recipient.

    Attributes:
        id: Canonical lowercase 8-4-4-4-12 identifier.
        recipient_id: Owning recipient.
        scheduled_at: When the call fires. For daily calls only the
            hour and minute matter once the first trigger is armed.
        device_handle: Opaque push token of the recipient's device.
        display_name: Caller name shown on the incoming call screen.
        platform: Which push transport delivers the call.
        avatar_ref: Optional caller avatar URL.
        purpose: Optional call title.
        repeat: ``daily`` (default) or ``once``.
        state: Lifecycle state.
        enabled: Daily triggers skip dispatch while this is False.
        response: Set once the recipient answers, declines or times out.
        dispatched_at: Instant of the most recent dispatch.
        delivered: Outcome of the most recent transport attempt.
    """

    id: str
    recipient_id: int
    scheduled_at: datetime
    device_handle: str
    display_name: str
    platform: Platform
    avatar_ref: str | None = None
    purpose: str | None = None
    repeat: RepeatMode = RepeatMode.DAILY
    state: CallState = CallState.SCHEDULED
    enabled: bool = True
    response: CallResponse | None = None
    dispatched_at: datetime | None = None
    delivered: bool | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_cancelled(self) -> bool:
        return self.state == CallState.CANCELLED

    @property
    def is_dispatched(self) -> bool:
        return self.state == CallState.DISPATCHED

    def copy(self) -> ScheduledCall:
        """Return a detached copy (responses are immutable, so shallow is enough)."""
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the JSON API."""
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "scheduled_at": self.scheduled_at.isoformat(),
            "device_handle": self.device_handle,
            "display_name": self.display_name,
            "avatar_ref": self.avatar_ref,
            "purpose": self.purpose,
            "platform": self.platform.value,
            "repeat": self.repeat.value,
            "state": self.state.value,
            "enabled": self.enabled,
            "response": self.response.to_dict() if self.response else None,
            "dispatched_at": self.dispatched_at.isoformat() if self.dispatched_at else None,
            "delivered": self.delivered,
            "created_at": self.created_at.isoformat(),
        }

    def to_history_entry(self) -> dict[str, Any]:
        """Project to the compact shape used by the history endpoint."""
        return {
            "id": self.id,
            "scheduled_at": self.scheduled_at.isoformat(),
            "status": self.response.status.value if self.response else "none",
            "responded_at": self.response.responded_at.isoformat() if self.response else None,
            "display_name": self.display_name,
            "platform": self.platform.value,
        }


@dataclass(frozen=True)
class CallRequest:
    """Everything a client supplies to schedule or immediately place a call."""

    recipient_id: int
    scheduled_at: datetime
    device_handle: str
    display_name: str
    platform: Platform
    id: str | None = None
    avatar_ref: str | None = None
    purpose: str | None = None
    repeat: RepeatMode = RepeatMode.DAILY


@dataclass
class CallStats:
    """Response counts over dispatched calls."""

    total: int = 0
    answered: int = 0
    declined: int = 0
    missed: int = 0
    no_response: int = 0

    @property
    def answer_rate(self) -> str:
        """Share of answered or declined calls, e.g. ``"66.7%"``."""
        if self.total == 0:
            return "0.0%"
        return f"{(self.answered + self.declined) / self.total * 100:.1f}%"

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "answered": self.answered,
            "declined": self.declined,
            "missed": self.missed,
            "no_response": self.no_response,
            "answer_rate": self.answer_rate,
        }
