from __future__ import annotations

from typing import Any

from ..models import Notification


PUSH_PRIORITY = 3


def build_push_payload(notification: Notification) -> dict[str, Any]:
    """
    UnifiedPush 消息体（固定结构）：
    {title, message, priority, data: {url, notification_type, sort_index}}
    """
    return {
        "title": notification.title(),
        "message": notification.message,
        "priority": PUSH_PRIORITY,
        "data": {
            "url": notification.url,
            "notification_type": notification.notification_type,
            "sort_index": notification.sort_index,
        },
    }
