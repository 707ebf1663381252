from __future__ import annotations

import random
import ssl
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Mapping


_RETRYABLE_STATUS = (429, 500, 502, 503, 504)


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status: int
    url: str
    headers: Mapping[str, str]
    body: bytes

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding, errors="replace")


class HttpStatusError(RuntimeError):
    """非 2xx 响应。body 只保留前 200 字节用于日志。"""

    def __init__(self, status: int, url: str, body: bytes = b"") -> None:
        super().__init__(f"HTTP {status}: {body[:200]!r}")
        self.status = status
        self.url = url
        self.body = body


class HttpClient:
    """
    轻量 HTTP 客户端（仅依赖标准库），所有出站请求（X API / UnifiedPush / 首页抓取）共用。

    策略：
    - 每个请求都带显式超时，避免单个账号卡住整个轮询周期
    - 默认不重试；max_retries > 0 时仅对 429/5xx 与网络错误做退避重试
    - 非 2xx 统一抛 HttpStatusError
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 20.0,
        user_agent: str = "xns/0",
        max_retries: int = 0,
        base_backoff_seconds: float = 0.8,
        verify_ssl: bool = True,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._user_agent = user_agent
        self._max_retries = max_retries
        self._base_backoff_seconds = base_backoff_seconds
        self._ssl_context = ssl.create_default_context() if verify_ssl else ssl._create_unverified_context()

    def get(self, url: str, *, headers: Mapping[str, str] | None = None) -> HttpResponse:
        return self.request("GET", url, headers=headers)

    def post(self, url: str, *, body: bytes, headers: Mapping[str, str] | None = None) -> HttpResponse:
        return self.request("POST", url, headers=headers, body=body)

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
    ) -> HttpResponse:
        request_headers = {"User-Agent": self._user_agent}
        if headers:
            request_headers.update(dict(headers))

        last_error: Exception | None = None
        for attempt in range(self._max_retries + 1):
            try:
                req = urllib.request.Request(url=url, data=body, headers=request_headers, method=method)
                with urllib.request.urlopen(req, timeout=self._timeout_seconds, context=self._ssl_context) as resp:
                    status = getattr(resp, "status", 200)
                    resp_body = resp.read()
                    if not 200 <= status < 300:
                        raise HttpStatusError(status, url, resp_body)
                    return HttpResponse(
                        status=status,
                        url=resp.geturl() if hasattr(resp, "geturl") else url,
                        headers={k: v for k, v in getattr(resp, "headers", {}).items()},
                        body=resp_body,
                    )
            except urllib.error.HTTPError as e:
                error_body = e.read() if e.fp is not None else b""
                last_error = HttpStatusError(e.code, url, error_body)
                if e.code not in _RETRYABLE_STATUS or attempt >= self._max_retries:
                    raise last_error from e
            except HttpStatusError as e:
                last_error = e
                if e.status not in _RETRYABLE_STATUS or attempt >= self._max_retries:
                    raise
            except (urllib.error.URLError, TimeoutError) as e:
                last_error = e
                if attempt >= self._max_retries:
                    raise

            backoff = self._base_backoff_seconds * (2**attempt)
            jitter = random.random() * 0.25 * backoff
            time.sleep(backoff + jitter)

        assert last_error is not None
        raise last_error


def with_query_params(url: str, params: Mapping[str, str]) -> str:
    parsed = urllib.parse.urlparse(url)
    q = dict(urllib.parse.parse_qsl(parsed.query, keep_blank_values=True))
    q.update({k: v for k, v in params.items() if v is not None})
    new_query = urllib.parse.urlencode(q)
    return urllib.parse.urlunparse(parsed._replace(query=new_query))
