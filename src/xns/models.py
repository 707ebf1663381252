from __future__ import annotations

from dataclasses import dataclass


# 上游 notificationType 的同义词表（大小写不敏感）
_TYPE_SYNONYMS: dict[str, str] = {
    "like": "like",
    "likes": "like",
    "liked": "like",
    "retweet": "retweet",
    "retweets": "retweet",
    "retweeted": "retweet",
    "reply": "reply",
    "replies": "reply",
    "replied": "reply",
    "mention": "mention",
    "mentions": "mention",
    "mentioned": "mention",
    "follow": "follow",
    "follows": "follow",
    "followed": "follow",
    "quote": "quote",
    "quotes": "quote",
    "quoted": "quote",
}

_TITLES: dict[str, str] = {
    "like": "New Like",
    "retweet": "New Repost",
    "reply": "New Reply",
    "mention": "New Mention",
    "follow": "New Follower",
    "quote": "New Quote",
}

DEFAULT_TITLE = "New Notification"


def normalize_notification_type(value: str) -> str:
    """
    将上游的通知类型归一到固定词表。

    未识别的类型不会变成 "unknown"，而是原样小写透传，
    这样上游新增的类型（例如 "Spaces"）在下游仍然可区分。
    """
    v = (value or "").lower()
    return _TYPE_SYNONYMS.get(v, v)


@dataclass(frozen=True, slots=True)
class Account:
    """
    已注册的 X 账号。

    last_sort_index:
      - 已投递过的最大 sort_index（进度标记）；None 表示从未轮询过
    created_at / updated_at:
      - 由存储层维护的 epoch 秒
    """

    user_id: str
    auth_token: str
    csrf_token: str
    endpoint: str
    last_sort_index: str | None = None
    created_at: int | None = None
    updated_at: int | None = None


@dataclass(frozen=True, slots=True)
class Notification:
    """
    统一通知模型：由时间线中的一个 entry 抽取而来，只在一次轮询周期内存在，不落库。

    sort_index 是唯一的排序与去重键（按字符串比较）。
    """

    sort_index: str
    notification_type: str
    message: str
    icon_url: str | None = None
    url: str | None = None
    from_users: tuple[str, ...] = ()

    def title(self) -> str:
        return _TITLES.get(self.notification_type, DEFAULT_TITLE)
