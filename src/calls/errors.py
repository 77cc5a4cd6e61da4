"""Errors raised by the call lifecycle."""


class CallError(Exception):
    """Base class for every call lifecycle failure."""


class InvalidScheduleError(CallError):
    """The requested fire time is not strictly in the future."""


class InvalidIdentifierError(CallError):
    """A candidate identifier does not match the canonical form."""


class IdentifierError(CallError):
    """No usable identifier could be resolved for a request."""


class CallNotFoundError(CallError):
    """Unknown call id, or a recipient with no indexed calls."""


class ForbiddenError(CallError):
    """The call does not belong to the recipient named in the request."""
