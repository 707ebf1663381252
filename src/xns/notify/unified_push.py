from __future__ import annotations

import json
import logging
import urllib.error
from dataclasses import dataclass

from ..http_utils import HttpClient, HttpStatusError
from ..models import Notification
from .base import DeliveryError, DeliveryOutcome, Notifier
from .formatter import build_push_payload


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UnifiedPushNotifier(Notifier):
    """
    UnifiedPush 推送：单次 JSON POST，任何 2xx 视为成功。

    失败原因只有三类：序列化失败、传输失败、非 2xx；均抛 DeliveryError。
    """

    http: HttpClient

    def send(self, endpoint: str, notification: Notification) -> None:
        try:
            body = json.dumps(build_push_payload(notification), ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise DeliveryError(f"serialize error: {e}") from e

        try:
            self.http.post(endpoint, body=body, headers={"Content-Type": "application/json"})
        except HttpStatusError as e:
            raise DeliveryError(f"push endpoint returned HTTP {e.status}") from e
        except (urllib.error.URLError, TimeoutError, OSError, ValueError) as e:
            raise DeliveryError(f"{type(e).__name__}: {e}") from e


def deliver(notifier: Notifier, endpoint: str, notification: Notification, *, user_id: str = "") -> DeliveryOutcome:
    """投递调用点：吞掉单条失败并记录日志，保证同一任务中后续通知仍会被尝试。"""
    try:
        notifier.send(endpoint, notification)
    except Exception as e:  # noqa: BLE001
        logger.warning(
            "push failed: user_id=%s sort_index=%s type=%s error=%s",
            user_id,
            notification.sort_index,
            notification.notification_type,
            e,
        )
        return DeliveryOutcome(sort_index=notification.sort_index, ok=False, error=f"{type(e).__name__}: {e}")
    return DeliveryOutcome(sort_index=notification.sort_index, ok=True)
