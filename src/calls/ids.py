"""Call identifier issuance — canonical 8-4-4-4-12 UUID strings."""

from __future__ import annotations

import logging
import re
import uuid
from typing import TYPE_CHECKING

from src.calls.errors import IdentifierError, InvalidIdentifierError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

MAX_GENERATION_ATTEMPTS = 5

_CANONICAL_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def validate(candidate: str) -> bool:
    """Return True if *candidate* matches the canonical grammar (any case)."""
    return bool(_CANONICAL_RE.match(candidate))


def normalize(candidate: str) -> str:
    """Trim and lowercase a client-supplied identifier."""
    return candidate.strip().lower()


def parse(candidate: str) -> str:
    """Normalize *candidate*, raising InvalidIdentifierError if malformed."""
    value = normalize(candidate)
    if not validate(value):
        msg = f"Malformed call identifier: {candidate!r}"
        raise InvalidIdentifierError(msg)
    return value


class IdentifierIssuer:
    """Issues identifiers that do not collide with stored calls.

    Args:
        exists: Predicate telling whether an id is already taken.
    """

    def __init__(self, exists: Callable[[str], bool]) -> None:
        self._exists = exists

    def generate(self) -> str:
        """Return a fresh identifier.

        Retries up to MAX_GENERATION_ATTEMPTS times on collision, then
        returns one more identifier without checking it.
        """
        for _ in range(MAX_GENERATION_ATTEMPTS):
            candidate = str(uuid.uuid4())
            if not self._exists(candidate):
                return candidate
            logger.warning("Generated call id collided, retrying: %s", candidate)
        candidate = str(uuid.uuid4())
        logger.warning(
            "Call id collided %d times; using unchecked id %s",
            MAX_GENERATION_ATTEMPTS,
            candidate,
        )
        return candidate

    def resolve(self, candidate: str | None) -> str:
        """Accept a client-supplied identifier or synthesize one.

        A malformed or missing candidate is replaced by a generated id. An
        accepted candidate that is already in use is replaced as well.
        """
        if candidate and candidate.strip():
            try:
                call_id = parse(candidate)
            except InvalidIdentifierError:
                call_id = self.generate()
                logger.warning("Invalid client call id %r; generated %s", candidate, call_id)
            else:
                if self._exists(call_id):
                    replacement = self.generate()
                    logger.warning(
                        "Client call id %s already in use; generated %s", call_id, replacement
                    )
                    call_id = replacement
        else:
            call_id = self.generate()
            logger.warning("Client call id missing; generated %s", call_id)

        if not call_id:
            msg = "Call identifier is empty"
            raise IdentifierError(msg)
        return call_id
