"""PushChannel protocol — interface for all call delivery transports."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from src.calls.models import Platform, ScheduledCall


@runtime_checkable
class PushChannel(Protocol):
    """Protocol that all push transports must satisfy."""

    @property
    def platform(self) -> Platform:
        """The device platform this channel delivers to."""
        ...

    async def send(self, call: ScheduledCall) -> bool:
        """Push an incoming-call notification. Returns True on success."""
        ...
