"""APNs VoIP push implementation of the PushChannel protocol."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

import httpx
import jwt

from src.calls.models import Platform
from src.config import settings

if TYPE_CHECKING:
    from src.calls.models import ScheduledCall

logger = logging.getLogger(__name__)

APNS_PRODUCTION_URL = "https://api.push.apple.com"
APNS_SANDBOX_URL = "https://api.sandbox.push.apple.com"

# Apple rejects provider tokens older than an hour.
TOKEN_TTL_SECONDS = 50 * 60


class ApnsChannel:
    """Sends incoming-call VoIP pushes to iOS devices over HTTP/2."""

    def __init__(self) -> None:
        self._token: str | None = None
        self._token_issued_at = 0.0

    @property
    def platform(self) -> Platform:
        return Platform.IOS

    def _provider_token(self) -> str:
        """Return a cached ES256 provider token, re-signing when stale."""
        now = time.time()
        if self._token is None or now - self._token_issued_at > TOKEN_TTL_SECONDS:
            key = settings.apns_key_path.read_text()
            self._token = jwt.encode(
                {"iss": settings.apns_team_id, "iat": int(now)},
                key,
                algorithm="ES256",
                headers={"kid": settings.apns_key_id},
            )
            self._token_issued_at = now
        return self._token

    @staticmethod
    def build_payload(call: ScheduledCall) -> dict:
        return {
            "uuid": call.id,
            "name_caller": call.display_name,
            "handle": call.purpose or "Incoming Call",
            "is_video": True,
        }

    async def send(self, call: ScheduledCall) -> bool:
        """Push a VoIP notification for *call*."""
        if not settings.apns_configured():
            logger.warning(
                "APNs not configured; VoIP push skipped (call %s, device %s)",
                call.id,
                call.device_handle,
            )
            return False

        base_url = APNS_PRODUCTION_URL if settings.apns_production else APNS_SANDBOX_URL
        headers = {
            "authorization": f"bearer {self._provider_token()}",
            "apns-topic": f"{settings.apns_bundle_id}.voip",
            "apns-push-type": "voip",
            "apns-priority": "10",
            "apns-expiration": "0",
        }
        try:
            async with httpx.AsyncClient(
                http2=True, timeout=settings.push_timeout_seconds
            ) as client:
                resp = await client.post(
                    f"{base_url}/3/device/{call.device_handle}",
                    json=self.build_payload(call),
                    headers=headers,
                )
        except httpx.HTTPError:
            logger.exception("APNs push failed (network error) for call %s", call.id)
            return False

        if resp.status_code == 200:
            logger.info("iOS VoIP push sent: call %s, device %s", call.id, call.device_handle)
            return True
        logger.error(
            "APNs push failed: call=%s status=%d body=%s",
            call.id,
            resp.status_code,
            resp.text[:200],
        )
        return False
