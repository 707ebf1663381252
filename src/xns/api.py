from __future__ import annotations

import json
import logging
import urllib.parse
from dataclasses import dataclass
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Mapping

from .rate_limit import RateLimiters
from .state.store import AccountStore
from .txid import TransactionIdCache


logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 64 * 1024
_REGISTER_FIELDS = ("twitter_user_id", "auth_token", "csrf_token", "up_endpoint")


@dataclass(slots=True)
class AppState:
    store: AccountStore
    rate_limiters: RateLimiters
    txid: TransactionIdCache | None = None


def _ok(**extra: Any) -> dict[str, Any]:
    return {"status": "ok", **extra}


def _error(message: str) -> dict[str, Any]:
    return {"status": "error", "error": message}


def _is_http_url(value: str) -> bool:
    parsed = urllib.parse.urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class AdminHandler(BaseHTTPRequestHandler):
    """
    管理接口：
    - POST   /register    注册/更新账号（按地址限流）
    - DELETE /unregister  注销账号（按地址限流）
    - GET    /health      健康检查 + 账号数
    - GET    /txid        生成 x-client-transaction-id（force=true 时先强制刷新）
    """

    state: AppState
    server_version = "xns"

    def do_POST(self) -> None:  # noqa: N802
        if self._path() == "/register":
            self._register()
        else:
            self._send(HTTPStatus.NOT_FOUND, _error("not found"))

    def do_DELETE(self) -> None:  # noqa: N802
        if self._path() == "/unregister":
            self._unregister()
        else:
            self._send(HTTPStatus.NOT_FOUND, _error("not found"))

    def do_GET(self) -> None:  # noqa: N802
        path = self._path()
        if path == "/health":
            self._health()
        elif path == "/txid":
            self._txid()
        else:
            self._send(HTTPStatus.NOT_FOUND, _error("not found"))

    def _register(self) -> None:
        if not self.state.rate_limiters.register.check(self._client_ip()):
            self._send(HTTPStatus.TOO_MANY_REQUESTS, _error("Rate limit exceeded"))
            return

        body = self._read_json()
        if body is None:
            return
        values = {k: body.get(k) for k in _REGISTER_FIELDS}
        missing = [k for k, v in values.items() if not isinstance(v, str) or not v.strip()]
        if missing:
            self._send(HTTPStatus.BAD_REQUEST, _error(f"missing fields: {', '.join(missing)}"))
            return
        if not _is_http_url(values["up_endpoint"]):
            self._send(HTTPStatus.BAD_REQUEST, _error("up_endpoint must be an http(s) URL"))
            return

        user_id = values["twitter_user_id"].strip()
        try:
            self.state.store.register(
                user_id=user_id,
                auth_token=values["auth_token"],
                csrf_token=values["csrf_token"],
                endpoint=values["up_endpoint"],
            )
        except Exception:  # noqa: BLE001
            logger.exception("register failed: user_id=%s", user_id)
            self._send(HTTPStatus.INTERNAL_SERVER_ERROR, _error("Failed to register"))
            return

        logger.info("registered user_id=%s", user_id)
        self._send(HTTPStatus.OK, _ok())

    def _unregister(self) -> None:
        if not self.state.rate_limiters.unregister.check(self._client_ip()):
            self._send(HTTPStatus.TOO_MANY_REQUESTS, _error("Rate limit exceeded"))
            return

        body = self._read_json()
        if body is None:
            return
        raw_user_id = body.get("twitter_user_id")
        if not isinstance(raw_user_id, str) or not raw_user_id.strip():
            self._send(HTTPStatus.BAD_REQUEST, _error("missing fields: twitter_user_id"))
            return
        user_id = raw_user_id.strip()

        try:
            removed = self.state.store.unregister(user_id)
        except Exception:  # noqa: BLE001
            logger.exception("unregister failed: user_id=%s", user_id)
            self._send(HTTPStatus.INTERNAL_SERVER_ERROR, _error("Failed to unregister"))
            return

        if not removed:
            self._send(HTTPStatus.NOT_FOUND, _error("User not found"))
            return
        logger.info("unregistered user_id=%s", user_id)
        self._send(HTTPStatus.OK, _ok())

    def _health(self) -> None:
        try:
            users = self.state.store.count()
        except Exception as e:  # noqa: BLE001
            logger.exception("health check failed")
            self._send(HTTPStatus.INTERNAL_SERVER_ERROR, _error(f"{type(e).__name__}: {e}"))
            return
        self._send(HTTPStatus.OK, _ok(users=users))

    def _txid(self) -> None:
        txid = self.state.txid
        if txid is None:
            self._send(HTTPStatus.SERVICE_UNAVAILABLE, _error("transaction id signer not configured"))
            return

        query = urllib.parse.parse_qs(urllib.parse.urlparse(self.path).query)
        path = (query.get("path") or [""])[0]
        if not path:
            self._send(HTTPStatus.BAD_REQUEST, _error("missing query parameter: path"))
            return
        force = (query.get("force") or ["false"])[0].lower() in ("1", "true", "yes")

        try:
            if force:
                txid.invalidate_and_refresh()
            value = txid.generate("GET", path)
        except Exception as e:  # noqa: BLE001
            logger.exception("txid generation failed: path=%s", path)
            self._send(HTTPStatus.INTERNAL_SERVER_ERROR, _error(f"{type(e).__name__}: {e}"))
            return
        self._send(HTTPStatus.OK, {"x-client-transaction-id": value})

    def _path(self) -> str:
        return urllib.parse.urlparse(self.path).path

    def _client_ip(self) -> str:
        return str(self.client_address[0])

    def _read_json(self) -> Mapping[str, Any] | None:
        try:
            length = int(self.headers.get("Content-Length") or "0")
        except ValueError:
            length = -1
        if length < 0 or length > MAX_BODY_BYTES:
            self._send(HTTPStatus.BAD_REQUEST, _error("invalid Content-Length"))
            return None
        raw = self.rfile.read(length)
        try:
            body = json.loads(raw.decode("utf-8") or "null")
        except (UnicodeDecodeError, ValueError):
            self._send(HTTPStatus.BAD_REQUEST, _error("invalid JSON body"))
            return None
        if not isinstance(body, dict):
            self._send(HTTPStatus.BAD_REQUEST, _error("expected JSON object"))
            return None
        return body

    def _send(self, status: HTTPStatus, payload: Mapping[str, Any]) -> None:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        logger.debug("%s - %s", self.address_string(), format % args)


def make_server(host: str, port: int, state: AppState) -> ThreadingHTTPServer:
    handler = type("Handler", (AdminHandler,), {"state": state})
    server = ThreadingHTTPServer((host, port), handler)
    server.daemon_threads = True
    return server
