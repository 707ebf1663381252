from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from ..models import Account, Notification


class XError(Exception):
    """X 平台交互失败的基类：由 runner 按账号捕获并记录，不影响其他账号。"""


class XHttpError(XError):
    """传输层失败（连接/TLS/超时/非 2xx）。"""


class XParseError(XError):
    """响应体无法解码为 JSON。"""


class XApiError(XError):
    """响应体是上游显式的错误载荷（顶层 errors 数组非空）。"""


@dataclass(frozen=True, slots=True)
class XAuth:
    auth_token: str
    csrf_token: str

    @classmethod
    def for_account(cls, account: Account) -> "XAuth":
        return cls(auth_token=account.auth_token, csrf_token=account.csrf_token)


@dataclass(frozen=True, slots=True)
class BadgeCount:
    ntab_unread_count: int = 0
    dm_unread_count: int = 0


class NotificationSource(Protocol):
    """
    平台适配器接口：
    - badge_count：轻量探测，返回未读数
    - notifications：拉取完整通知时间线，并抽取为按 sort_index 降序的通知列表

    失败时抛 XError 子类。
    """

    def badge_count(self, auth: XAuth) -> BadgeCount: ...

    def notifications(self, auth: XAuth) -> list[Notification]: ...
