"""FCM HTTP v1 implementation of the PushChannel protocol."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import httpx
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from src.calls.models import Platform
from src.config import settings

if TYPE_CHECKING:
    from src.calls.models import ScheduledCall

logger = logging.getLogger(__name__)

FCM_SCOPES = ["https://www.googleapis.com/auth/firebase.messaging"]
FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project}/messages:send"


class FcmChannel:
    """Sends incoming-call data messages to Android devices."""

    def __init__(self) -> None:
        self._credentials: service_account.Credentials | None = None

    @property
    def platform(self) -> Platform:
        return Platform.ANDROID

    def _load_credentials(self) -> service_account.Credentials:
        if self._credentials is None:
            self._credentials = service_account.Credentials.from_service_account_file(
                str(settings.fcm_credentials_path), scopes=FCM_SCOPES
            )
        return self._credentials

    async def _access_token(self) -> str:
        """Return a valid OAuth token, refreshing it off the event loop."""
        creds = self._load_credentials()
        if not creds.valid:
            await asyncio.to_thread(creds.refresh, Request())
        return creds.token

    def _project_id(self) -> str:
        return settings.fcm_project_id or self._load_credentials().project_id

    @staticmethod
    def build_message(call: ScheduledCall) -> dict:
        return {
            "message": {
                "token": call.device_handle,
                "data": {
                    "screen": "incoming_call",
                    "uuid": call.id,
                    "caller_name": call.display_name,
                    "caller_avatar": call.avatar_ref or "",
                    "call_purpose": call.purpose or "",
                    "timestamp": datetime.now(UTC).isoformat(),
                },
                "android": {
                    "priority": "high",
                    "ttl": "60s",
                    "data": {"channel_id": "incoming_calls"},
                },
            }
        }

    async def send(self, call: ScheduledCall) -> bool:
        """Push an FCM data message for *call*."""
        if not settings.fcm_configured():
            logger.warning(
                "FCM not configured; push skipped (call %s, device %s)",
                call.id,
                call.device_handle,
            )
            return False

        try:
            token = await self._access_token()
            async with httpx.AsyncClient(timeout=settings.push_timeout_seconds) as client:
                resp = await client.post(
                    FCM_SEND_URL.format(project=self._project_id()),
                    json=self.build_message(call),
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError:
            logger.exception("FCM push failed (network error) for call %s", call.id)
            return False

        if resp.status_code == 200:
            logger.info("Android FCM push sent: call %s, device %s", call.id, call.device_handle)
            return True
        logger.error(
            "FCM push failed: call=%s status=%d body=%s",
            call.id,
            resp.status_code,
            resp.text[:200],
        )
        return False
