from __future__ import annotations

import json
from typing import Any

from ..models import Notification, normalize_notification_type
from .base import XApiError, XParseError


INSTRUCTIONS_PATH = ("data", "user", "result", "timeline", "timeline", "instructions")
ADD_ENTRIES = "TimelineAddEntries"
CURSOR_PREFIX = "cursor-"
FALLBACK_MESSAGE = "New notification"
STATUS_URL = "https://x.com/i/status/{}"


def dig(value: Any, *path: str | int) -> Any:
    """
    按路径逐层取值，任何一层缺失或类型不符都返回 None，而不是抛异常。

    str 作为 dict 的 key，int 作为 list 的下标。
    """
    cur = value
    for key in path:
        if isinstance(key, int):
            if not isinstance(cur, list) or not -len(cur) <= key < len(cur):
                return None
            cur = cur[key]
        else:
            if not isinstance(cur, dict):
                return None
            cur = cur.get(key)
            if cur is None:
                return None
    return cur


def dig_str(value: Any, *path: str | int) -> str | None:
    v = dig(value, *path)
    return v if isinstance(v, str) else None


def dig_list(value: Any, *path: str | int) -> list[Any]:
    v = dig(value, *path)
    return v if isinstance(v, list) else []


def first_str(value: Any, *paths: tuple[str | int, ...]) -> str | None:
    """依次尝试多条路径，第一个命中的字符串胜出。"""
    for path in paths:
        v = dig_str(value, *path)
        if v is not None:
            return v
    return None


def decode_payload(body: bytes | str) -> Any:
    try:
        if isinstance(body, bytes):
            body = body.decode("utf-8")
        return json.loads(body)
    except (UnicodeDecodeError, ValueError) as e:
        raise XParseError(f"invalid JSON payload: {e}") from e


def raise_for_api_errors(payload: Any) -> None:
    errors = dig_list(payload, "errors")
    if errors:
        message = dig_str(errors, 0, "message") or "Unknown error"
        raise XApiError(message)


def parse_notifications(payload: Any) -> list[Notification]:
    """
    从 NotificationsTimeline 响应中抽取通知（纯函数，无 I/O）。

    - 顶层 errors 非空：抛 XApiError（携带第一条错误信息）
    - 找不到 instructions：返回空列表（时间线可能为空或结构调整）
    - 只看 TimelineAddEntries；跳过 cursor- 条目与没有 sortIndex 的条目
    - 结果按 sort_index 字符串降序（最新在前）
    """
    if isinstance(payload, (bytes, str)):
        payload = decode_payload(payload)

    raise_for_api_errors(payload)

    notifications: list[Notification] = []
    for instruction in dig_list(payload, *INSTRUCTIONS_PATH):
        if dig_str(instruction, "type") != ADD_ENTRIES:
            continue
        for entry in dig_list(instruction, "entries"):
            entry_id = dig_str(entry, "entryId") or ""
            if entry_id.startswith(CURSOR_PREFIX):
                continue
            sort_index = dig_str(entry, "sortIndex")
            if not sort_index:
                continue
            notif = parse_entry(dig(entry, "content"), sort_index)
            if notif is not None:
                notifications.append(notif)

    notifications.sort(key=lambda n: n.sort_index, reverse=True)
    return notifications


def parse_entry(content: Any, sort_index: str) -> Notification | None:
    item = dig(content, "itemContent")
    if not isinstance(item, dict):
        return None

    return Notification(
        sort_index=sort_index,
        notification_type=normalize_notification_type(dig_str(item, "notificationType") or "unknown"),
        message=extract_message(item),
        icon_url=dig_str(item, "icon", "iconUrl"),
        url=extract_url(item),
        from_users=extract_from_users(item),
    )


def extract_message(item: Any) -> str:
    message = first_str(
        item,
        ("message", "text"),
        ("header", "text"),
        ("tweet_results", "result", "legacy", "full_text"),
    )
    return message if message is not None else FALLBACK_MESSAGE


def extract_from_users(item: Any) -> tuple[str, ...]:
    names = (dig_str(u, "user_results", "result", "legacy", "name") for u in dig_list(item, "fromUsers"))
    return tuple(n for n in names if n is not None)


def extract_url(item: Any) -> str | None:
    url = dig_str(item, "url", "url")
    if url is not None:
        return url
    tweet_id = dig_str(item, "tweet_results", "result", "rest_id")
    if tweet_id is not None:
        return STATUS_URL.format(tweet_id)
    return None
