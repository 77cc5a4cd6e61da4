"""Push delivery layer — one channel per device platform."""

from src.notifications.apns_channel import ApnsChannel
from src.notifications.channels import PushChannel
from src.notifications.fcm_channel import FcmChannel
from src.notifications.router import DispatchRouter

__all__ = [
    "ApnsChannel",
    "DispatchRouter",
    "FcmChannel",
    "PushChannel",
]
