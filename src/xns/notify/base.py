from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from ..models import Notification


class DeliveryError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class DeliveryOutcome:
    sort_index: str
    ok: bool
    error: str | None = None


class Notifier(Protocol):
    """
    推送接口：把一条通知发送到某个推送端点。

    约定：
    - send 失败抛 DeliveryError，由 deliver() 统一捕获并转换为 DeliveryOutcome
    - 不做重试
    """

    def send(self, endpoint: str, notification: Notification) -> None: ...
