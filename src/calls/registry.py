"""CallRegistry — in-memory call table plus the recipient index."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from src.calls.errors import CallNotFoundError

if TYPE_CHECKING:
    from src.calls.models import ScheduledCall

logger = logging.getLogger(__name__)


class CallRegistry:
    """Owns every stored call and the recipient → call id index.

    Records go in and come out as copies, so the only way to change stored
    state is ``put``. The recipient index lists, in insertion order, the ids
    of each recipient's stored calls that are not cancelled.

    Callers that read, modify and write back a record must hold ``lock``
    for the whole sequence. The individual methods never await, so each
    one is atomic on the event loop.
    """

    def __init__(self) -> None:
        self._calls: dict[str, ScheduledCall] = {}
        self._by_recipient: dict[int, list[str]] = {}
        self.lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._calls)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._calls

    # -- Mutations -------------------------------------------------------------

    def put(self, call: ScheduledCall) -> ScheduledCall:
        """Insert or replace a record and bring the index in line with it."""
        previous = self._calls.get(call.id)
        if previous is not None and previous.recipient_id != call.recipient_id:
            self._unindex(previous.recipient_id, call.id)

        self._calls[call.id] = call.copy()

        if call.is_cancelled:
            self._unindex(call.recipient_id, call.id)
        else:
            ids = self._by_recipient.setdefault(call.recipient_id, [])
            if call.id not in ids:
                ids.append(call.id)
        return call.copy()

    def remove(self, call_id: str) -> ScheduledCall | None:
        """Drop a record and its index entry. Returns the removed record."""
        call = self._calls.pop(call_id, None)
        if call is None:
            return None
        self._unindex(call.recipient_id, call_id)
        logger.debug("Removed call %s from registry", call_id)
        return call

    def _unindex(self, recipient_id: int, call_id: str) -> None:
        ids = self._by_recipient.get(recipient_id)
        if ids is None:
            return
        remaining = [i for i in ids if i != call_id]
        if remaining:
            self._by_recipient[recipient_id] = remaining
        else:
            del self._by_recipient[recipient_id]

    # -- Queries ---------------------------------------------------------------

    def get(self, call_id: str) -> ScheduledCall:
        """Return a copy of the call, or raise CallNotFoundError."""
        call = self._calls.get(call_id)
        if call is None:
            msg = f"No call with id {call_id}"
            raise CallNotFoundError(msg)
        return call.copy()

    def find(self, call_id: str) -> ScheduledCall | None:
        """Like ``get`` but returns None for unknown ids."""
        call = self._calls.get(call_id)
        return call.copy() if call is not None else None

    def list_all(self) -> list[ScheduledCall]:
        """Every stored call in insertion order."""
        return [call.copy() for call in self._calls.values()]

    def recipient_call_ids(self, recipient_id: int) -> list[str]:
        """Indexed call ids for a recipient (empty list if none)."""
        return list(self._by_recipient.get(recipient_id, []))

    def list_by_recipient(self, recipient_id: int) -> list[ScheduledCall]:
        """Indexed calls for a recipient, or raise CallNotFoundError if none."""
        ids = self._by_recipient.get(recipient_id)
        if not ids:
            msg = f"No calls for recipient {recipient_id}"
            raise CallNotFoundError(msg)
        return [self._calls[call_id].copy() for call_id in ids]
