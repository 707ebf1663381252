from __future__ import annotations

import json
import urllib.error
import urllib.parse
from dataclasses import dataclass
from typing import Any, Mapping

from ..http_utils import HttpClient, HttpStatusError, with_query_params
from ..models import Notification
from ..txid import TransactionIdCache
from .base import BadgeCount, XAuth, XHttpError
from .extract import decode_payload, parse_notifications


BEARER_TOKEN = (
    "Bearer AAAAAAAAAAAAAAAAAAAAANRILgAAAAAAnNwIzUejRCOuH5E6I8xnZz4puTs%"
    "3D1Zv7ttfk8LF81IUq16cHjhLTvJu4FA33AGWWjCpTnA"
)
USER_AGENT = (
    "Mozilla/5.0 (Linux; Android 10; K) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/123.0.0.0 Mobile Safari/537.3"
)

BADGE_COUNT_URL = "https://x.com/i/api/2/badge_count/badge_count.json?supports_ntab_urt=1"

# NotificationsTimeline 的 GraphQL query id，上游会不定期更换
NOTIFICATIONS_QUERY_ID = "Y-4nWuqrAwaEDpHtfJmK5A"
NOTIFICATIONS_URL = f"https://x.com/i/api/graphql/{NOTIFICATIONS_QUERY_ID}/NotificationsTimeline"

# variables / features 的 key 属于上游接口约定，需要与 Web 端保持同步
NOTIFICATIONS_VARIABLES: Mapping[str, Any] = {
    "count": 20,
    "includePromotedContent": False,
    "withCommunity": True,
    "withQuickPromoteEligibilityTweetFields": True,
    "withBirdwatchNotes": True,
    "withVoice": True,
    "withV2Timeline": True,
}

NOTIFICATIONS_FEATURES: Mapping[str, bool] = {
    "rweb_tipjar_consumption_enabled": True,
    "responsive_web_graphql_exclude_directive_enabled": True,
    "verified_phone_label_enabled": False,
    "creator_subscriptions_tweet_preview_api_enabled": True,
    "responsive_web_graphql_timeline_navigation_enabled": True,
    "responsive_web_graphql_skip_user_profile_image_extensions_enabled": False,
    "communities_web_enable_tweet_community_results_fetch": True,
    "c9s_tweet_anatomy_moderator_badge_enabled": True,
    "articles_preview_enabled": True,
    "responsive_web_edit_tweet_api_enabled": True,
    "graphql_is_translatable_rweb_tweet_is_translatable_enabled": True,
    "view_counts_everywhere_api_enabled": True,
    "longform_notetweets_consumption_enabled": True,
    "responsive_web_twitter_article_tweet_consumption_enabled": True,
    "tweet_awards_web_tipping_enabled": False,
    "creator_subscriptions_quote_tweet_preview_enabled": False,
    "freedom_of_speech_not_reach_fetch_enabled": True,
    "standardized_nudges_misinfo": True,
    "tweet_with_visibility_results_prefer_gql_limited_actions_policy_enabled": True,
    "rweb_video_timestamps_enabled": True,
    "longform_notetweets_rich_text_read_enabled": True,
    "longform_notetweets_inline_media_enabled": True,
    "responsive_web_enhance_cards_enabled": False,
}


def _compact_json(value: Mapping[str, Any]) -> str:
    return json.dumps(value, separators=(",", ":"))


def _get_count(d: Any, key: str) -> int:
    if not isinstance(d, dict):
        return 0
    v = d.get(key)
    if isinstance(v, bool):
        return 0
    try:
        return int(v)
    except (TypeError, ValueError):
        return 0


def notifications_url() -> str:
    return with_query_params(
        NOTIFICATIONS_URL,
        {
            "variables": _compact_json(NOTIFICATIONS_VARIABLES),
            "features": _compact_json(NOTIFICATIONS_FEATURES),
        },
    )


@dataclass(slots=True)
class XNotificationsSource:
    """
    X 通知数据源（Web 端私有接口，使用用户的 auth_token/ct0 cookie 鉴权）。

    txid:
      - 可选的签名缓存；配置后每个请求都会附带 x-client-transaction-id
    """

    http: HttpClient
    txid: TransactionIdCache | None = None

    def _headers(self, auth: XAuth, method: str, url: str) -> dict[str, str]:
        headers = {
            "accept": "*/*",
            "accept-language": "en-US,en;q=0.9",
            "authorization": BEARER_TOKEN,
            "cache-control": "no-cache",
            "content-type": "application/json",
            "pragma": "no-cache",
            "priority": "u=1, i",
            "referer": "https://x.com/",
            "user-agent": USER_AGENT,
            "x-twitter-active-user": "yes",
            "x-twitter-client-language": "en",
            "x-csrf-token": auth.csrf_token,
            "cookie": f"auth_token={auth.auth_token}; ct0={auth.csrf_token}",
        }
        if self.txid is not None:
            path = urllib.parse.urlparse(url).path
            headers["x-client-transaction-id"] = self.txid.generate(method, path)
        return headers

    def _get_json(self, auth: XAuth, url: str) -> Any:
        try:
            resp = self.http.get(url, headers=self._headers(auth, "GET", url))
        except HttpStatusError as e:
            raise XHttpError(str(e)) from e
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            raise XHttpError(f"{type(e).__name__}: {e}") from e
        return decode_payload(resp.body)

    def badge_count(self, auth: XAuth) -> BadgeCount:
        data = self._get_json(auth, BADGE_COUNT_URL)
        return BadgeCount(
            ntab_unread_count=_get_count(data, "ntab_unread_count"),
            dm_unread_count=_get_count(data, "dm_unread_count"),
        )

    def notifications(self, auth: XAuth) -> list[Notification]:
        return parse_notifications(self._get_json(auth, notifications_url()))
