from .base import DeliveryError, DeliveryOutcome, Notifier
from .formatter import build_push_payload
from .unified_push import UnifiedPushNotifier, deliver

__all__ = [
    "DeliveryError",
    "DeliveryOutcome",
    "Notifier",
    "UnifiedPushNotifier",
    "build_push_payload",
    "deliver",
]
