"""Request bodies accepted by the HTTP API."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from src.calls.models import CallRequest, Platform, RepeatMode, ResponseStatus

# 9999-12-31T23:59:59Z, the last second a datetime can hold
MAX_EPOCH_MILLIS = 253_402_300_799_000


class _Params(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


class ScheduleCallParams(_Params):
    id: str | None = Field(
        default=None,
        description="Client-generated call id; replaced by a server id if malformed",
    )
    recipient_id: int = Field(description="Owning recipient")
    scheduled_at: int = Field(
        ge=0, le=MAX_EPOCH_MILLIS, description="Fire time as epoch milliseconds"
    )
    device_handle: str = Field(min_length=1, description="Push token of the device")
    display_name: str = Field(min_length=1, description="Caller name shown on the device")
    avatar_ref: str | None = Field(default=None, description="Caller avatar URL")
    purpose: str | None = Field(default=None, description="Call title or purpose")
    platform: Platform = Field(description='"ios" (VoIP push) or "android" (FCM)')
    repeat: RepeatMode = Field(
        default=RepeatMode.DAILY,
        description='"daily" to ring every day at the same time, "once" for a single call',
    )

    def to_request(self) -> CallRequest:
        return CallRequest(
            id=self.id,
            recipient_id=self.recipient_id,
            scheduled_at=datetime.fromtimestamp(self.scheduled_at / 1000, tz=UTC),
            device_handle=self.device_handle,
            display_name=self.display_name,
            avatar_ref=self.avatar_ref,
            purpose=self.purpose,
            platform=self.platform,
            repeat=self.repeat,
        )


class ToggleCallParams(_Params):
    recipient_id: int
    id: str | None = Field(default=None, description="Call to toggle; first call if omitted")
    enabled: bool


class CallResponseParams(_Params):
    id: str = Field(min_length=1)
    status: ResponseStatus
    responded_at: datetime | None = Field(default=None, description="ISO 8601 response time")
    note: str | None = None

    def responded_at_utc(self) -> datetime | None:
        """The response time as an aware datetime (naive input is taken as UTC)."""
        if self.responded_at is None:
            return None
        if self.responded_at.tzinfo is None:
            return self.responded_at.replace(tzinfo=UTC)
        return self.responded_at
