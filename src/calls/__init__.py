"""Call lifecycle — identifiers, registry, triggers, timeouts and the engine."""

from src.calls.engine import CallLifecycleEngine
from src.calls.ids import IdentifierIssuer
from src.calls.models import (
    CallRequest,
    CallResponse,
    CallState,
    CallStats,
    Platform,
    RepeatMode,
    ResponseStatus,
    ScheduledCall,
)
from src.calls.registry import CallRegistry
from src.calls.timeouts import ResponseTimeoutArbiter
from src.calls.triggers import TriggerScheduler, TriggerSpec

__all__ = [
    "CallLifecycleEngine",
    "CallRegistry",
    "CallRequest",
    "CallResponse",
    "CallState",
    "CallStats",
    "IdentifierIssuer",
    "Platform",
    "RepeatMode",
    "ResponseStatus",
    "ResponseTimeoutArbiter",
    "ScheduledCall",
    "TriggerScheduler",
    "TriggerSpec",
]
