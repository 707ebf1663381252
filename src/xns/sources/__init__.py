from .base import BadgeCount, NotificationSource, XApiError, XAuth, XError, XHttpError, XParseError
from .extract import parse_notifications
from .x import XNotificationsSource

__all__ = [
    "BadgeCount",
    "NotificationSource",
    "XApiError",
    "XAuth",
    "XError",
    "XHttpError",
    "XNotificationsSource",
    "XParseError",
    "parse_notifications",
]
