from __future__ import annotations

import argparse
import logging
import os
import threading
import time
from typing import Callable

from .api import AppState, make_server
from .config import AppConfig, load_config
from .rate_limit import RateLimiters
from .runner import Runner, RunOnceReport, build_runner
from .txid import TransactionIdCache, load_signer_factory


logger = logging.getLogger("xns")


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="xns", description="X notification relay (polling -> UnifiedPush)")
    p.add_argument("--config", default=None, help="Path to JSON config file (optional; XNS_* env vars override it)")
    p.add_argument(
        "--log-level",
        default=None,
        help="Log level (DEBUG/INFO/WARNING/ERROR). Defaults to env XNS_LOG_LEVEL or INFO",
    )
    p.add_argument(
        "--status-interval",
        type=int,
        default=None,
        help="Daemon heartbeat interval seconds. Defaults to env XNS_STATUS_INTERVAL_SECONDS or 60. Set 0 to disable.",
    )
    p.add_argument("--no-api", action="store_true", help="Do not start the admin HTTP API in daemon mode")

    mode = p.add_mutually_exclusive_group(required=False)
    mode.add_argument("--once", action="store_true", help="Run one poll cycle and exit")
    mode.add_argument("--daemon", action="store_true", help="Run forever with poll interval (default)")
    return p


def _resolve_log_level(value: str | None) -> int:
    v = (value or "").strip().upper()
    if not v:
        return logging.INFO
    level = logging.getLevelNamesMapping().get(v)
    if isinstance(level, int):
        return level
    return logging.INFO


def _log_report(prefix: str, cycle_id: int, report: RunOnceReport) -> None:
    logger.info(
        "%s: id=%d duration_ms=%d accounts=%d events_fetched=%d events_new=%d delivered=%d delivery_failures=%d account_errors=%d",
        prefix,
        cycle_id,
        report.duration_ms,
        len(report.accounts),
        report.events_fetched,
        report.events_new,
        report.delivered,
        report.delivery_failures,
        report.account_errors,
    )


def run_daemon(
    runner: Runner,
    config: AppConfig,
    *,
    rate_limiters: RateLimiters | None = None,
    status_interval: int = 60,
    stop: threading.Event | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """
    固定间隔调度：每个 tick 跑完一个完整周期后才考虑下一个 tick。

    - 周期耗时超过间隔：下一个周期立即开始，错过的 tick 不补跑（周期不会重叠）
    - 单个周期异常只记录日志，循环不会退出
    - 每轮（包括刚跑完周期的那一轮）都检查限流桶清理与心跳，周期持续超时也不会饿死它们
    """
    stop = stop or threading.Event()
    interval = max(1, config.poll_interval_seconds)
    sweep_interval = max(1, config.rate_limit_sweep_seconds)

    cycle_id = 0
    next_tick = clock()
    next_sweep = clock() + sweep_interval
    next_heartbeat = clock() + status_interval if status_interval > 0 else float("inf")
    last_report: RunOnceReport | None = None

    while not stop.is_set():
        now = clock()
        if now >= next_tick:
            cycle_id += 1
            try:
                last_report = runner.run_once()
            except Exception:  # noqa: BLE001
                logger.exception("cycle crashed: id=%d", cycle_id)
            else:
                if last_report.accounts or last_report.store_error:
                    _log_report("cycle summary", cycle_id, last_report)
            next_tick += interval
            now = clock()
            if next_tick <= now:
                next_tick = now

        if rate_limiters is not None and now >= next_sweep:
            removed = rate_limiters.cleanup()
            if removed:
                logger.debug("rate limiter sweep removed %d buckets", removed)
            next_sweep = now + sweep_interval

        if now >= next_heartbeat:
            logger.info(
                "daemon alive: cycles=%d next_poll_in=%ds last_duration_ms=%d last_delivered=%d last_account_errors=%d",
                cycle_id,
                max(0, int(next_tick - now)),
                last_report.duration_ms if last_report else 0,
                last_report.delivered if last_report else 0,
                last_report.account_errors if last_report else 0,
            )
            next_heartbeat = now + status_interval

        # 周期超时：不等待，直接进入下一轮
        if next_tick <= now:
            continue
        wake_at = min(next_tick, next_sweep if rate_limiters is not None else next_tick, next_heartbeat)
        stop.wait(max(0.05, min(wake_at - now, 1.0)))

    return cycle_id


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    log_level = _resolve_log_level(args.log_level or os.environ.get("XNS_LOG_LEVEL"))
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    config = load_config(args.config)

    txid: TransactionIdCache | None = None
    if config.txid_provider:
        txid = TransactionIdCache(load_signer_factory(config.txid_provider))

    runner = build_runner(config, txid=txid)

    status_interval = args.status_interval
    if status_interval is None:
        try:
            status_interval = int(os.environ.get("XNS_STATUS_INTERVAL_SECONDS") or 60)
        except ValueError:
            status_interval = 60
    status_interval = max(0, int(status_interval))

    mode = "once" if args.once else "daemon"
    logger.info("xns start: mode=%s config=%s", mode, args.config or "<env>")
    logger.info(
        "config: db_path=%s listen_addr=%s poll_interval_seconds=%d max_concurrent=%d request_timeout_seconds=%.1f txid=%s",
        config.db_path,
        config.listen_addr,
        config.poll_interval_seconds,
        config.max_concurrent,
        config.request_timeout_seconds,
        config.txid_provider or "<none>",
    )

    if args.once:
        report = runner.run_once()
        _log_report("once done", 1, report)
        return 0 if report.store_error is None else 1

    rate_limiters = RateLimiters()
    server = None
    if not args.no_api:
        host, port = config.listen_host_port()
        server = make_server(host, port, AppState(store=runner.store, rate_limiters=rate_limiters, txid=txid))
        threading.Thread(target=server.serve_forever, name="xns-api", daemon=True).start()
        logger.info("admin api listening on %s:%d", host, port)

    try:
        run_daemon(runner, config, rate_limiters=rate_limiters, status_interval=status_interval)
    except KeyboardInterrupt:
        logger.info("interrupted, shutting down")
    finally:
        if server is not None:
            server.shutdown()
            server.server_close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
