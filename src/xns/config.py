from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from typing import Any, Mapping


DEFAULT_DB_PATH = "./xns.sqlite3"
DEFAULT_LISTEN_ADDR = "127.0.0.1:3000"
DEFAULT_POLL_INTERVAL_SECONDS = 15
DEFAULT_MAX_CONCURRENT = 50
DEFAULT_REQUEST_TIMEOUT_SECONDS = 20.0
DEFAULT_RATE_LIMIT_SWEEP_SECONDS = 300

ENV_PREFIX = "XNS_"


def _require_dict(value: Any, *, where: str) -> Mapping[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"Expected object at {where}, got {type(value)}")
    return value


def _as_int(v: Any, default: int) -> int:
    if v is None or isinstance(v, bool):
        return default
    try:
        return int(v)
    except (TypeError, ValueError):
        return default


def _as_float(v: Any, default: float) -> float:
    if v is None or isinstance(v, bool):
        return default
    try:
        return float(v)
    except (TypeError, ValueError):
        return default


def _as_str(v: Any, default: str | None) -> str | None:
    if v is None:
        return default
    s = str(v).strip()
    return s or default


def parse_listen_addr(value: str) -> tuple[str, int]:
    """解析 "host:port"，IPv6 需要写成 "[::1]:3000"。"""
    host, sep, port = value.rpartition(":")
    if not sep or not host:
        raise ValueError(f"invalid listen address {value!r}, expected host:port")
    host = host.strip("[]")
    try:
        port_num = int(port)
    except ValueError as e:
        raise ValueError(f"invalid port in listen address {value!r}") from e
    if not 0 <= port_num <= 65535:
        raise ValueError(f"port out of range in listen address {value!r}")
    return host, port_num


@dataclass(frozen=True, slots=True)
class AppConfig:
    """
    应用总配置。

    poll_interval_seconds:
      - 轮询周期（固定间隔；周期之间不重叠）
    max_concurrent:
      - 同一时刻最多处理的账号数
    request_timeout_seconds:
      - 每个出站请求的超时，避免单个账号拖住整个周期
    txid_provider:
      - 可选，x-client-transaction-id 派生器的导入路径 "package.module:factory"
    """

    db_path: str = DEFAULT_DB_PATH
    listen_addr: str = DEFAULT_LISTEN_ADDR
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    rate_limit_sweep_seconds: int = DEFAULT_RATE_LIMIT_SWEEP_SECONDS
    txid_provider: str | None = None

    def listen_host_port(self) -> tuple[str, int]:
        return parse_listen_addr(self.listen_addr)


def _apply(config: AppConfig, values: Mapping[str, Any]) -> AppConfig:
    return replace(
        config,
        db_path=_as_str(values.get("db_path"), config.db_path) or DEFAULT_DB_PATH,
        listen_addr=_as_str(values.get("listen_addr"), config.listen_addr) or DEFAULT_LISTEN_ADDR,
        poll_interval_seconds=max(1, _as_int(values.get("poll_interval_seconds"), config.poll_interval_seconds)),
        max_concurrent=max(1, _as_int(values.get("max_concurrent"), config.max_concurrent)),
        request_timeout_seconds=max(
            0.1, _as_float(values.get("request_timeout_seconds"), config.request_timeout_seconds)
        ),
        rate_limit_sweep_seconds=max(
            1, _as_int(values.get("rate_limit_sweep_seconds"), config.rate_limit_sweep_seconds)
        ),
        txid_provider=_as_str(values.get("txid_provider"), config.txid_provider),
    )


_ENV_KEYS = {
    "db_path": "DB_PATH",
    "listen_addr": "LISTEN_ADDR",
    "poll_interval_seconds": "POLL_INTERVAL",
    "max_concurrent": "MAX_CONCURRENT",
    "request_timeout_seconds": "REQUEST_TIMEOUT",
    "rate_limit_sweep_seconds": "RATE_LIMIT_SWEEP",
    "txid_provider": "TXID_PROVIDER",
}


def load_config(config_path: str | None = None, environ: Mapping[str, str] | None = None) -> AppConfig:
    """
    配置优先级：默认值 < JSON 配置文件 < 环境变量（XNS_*）。

    JSON 顶层结构（示意）：
    {
      "db_path": "./xns.sqlite3",
      "listen_addr": "127.0.0.1:3000",
      "poll_interval_seconds": 15,
      "max_concurrent": 50,
      "request_timeout_seconds": 20
    }

    数值无法解析时回退到默认值，不报错。
    """
    config = AppConfig()

    if config_path:
        with open(config_path, "rb") as f:
            raw = json.loads(f.read().decode("utf-8"))
        config = _apply(config, _require_dict(raw, where="$"))

    env = os.environ if environ is None else environ
    overrides = {key: env[ENV_PREFIX + name] for key, name in _ENV_KEYS.items() if env.get(ENV_PREFIX + name)}
    if overrides:
        config = _apply(config, overrides)
    return config
