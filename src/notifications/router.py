"""DispatchRouter — picks the push channel for a call's platform."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.calls.models import Platform, ScheduledCall
    from src.notifications.channels import PushChannel

logger = logging.getLogger(__name__)


class DispatchRouter:
    """Routes call notifications to the channel registered for each platform.

    Delivery is a single best-effort attempt: a missing channel, a failed
    send and a raised exception all come back as ``False``.
    """

    def __init__(self) -> None:
        self._channels: dict[Platform, PushChannel] = {}

    def register_channel(self, channel: PushChannel) -> None:
        """Register a channel. Raises ValueError if the platform is taken."""
        if channel.platform in self._channels:
            msg = f"Channel for platform '{channel.platform}' is already registered"
            raise ValueError(msg)
        self._channels[channel.platform] = channel

    def get_channel(self, platform: Platform) -> PushChannel | None:
        return self._channels.get(platform)

    def list_platforms(self) -> list[str]:
        return [str(p) for p in self._channels]

    async def dispatch(self, call: ScheduledCall) -> bool:
        """Deliver *call* through its platform's channel."""
        channel = self._channels.get(call.platform)
        if channel is None:
            logger.warning(
                "No channel registered for platform %s (call %s)", call.platform, call.id
            )
            return False
        try:
            return await channel.send(call)
        except Exception:
            logger.exception("Push delivery raised for call %s (%s)", call.id, call.platform)
            return False
