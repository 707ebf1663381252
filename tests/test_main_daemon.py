import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime

from xns.config import AppConfig
from xns.main import build_arg_parser, run_daemon
from xns.rate_limit import RateLimiter, RateLimiters
from xns.runner import RunOnceReport


def _empty_report() -> RunOnceReport:
    now = datetime.now(tz=UTC)
    return RunOnceReport(
        started_at=now,
        finished_at=now,
        duration_ms=0,
        accounts=(),
        events_fetched=0,
        events_new=0,
        delivered=0,
        delivery_failures=0,
        account_errors=0,
    )


@dataclass
class _ScriptedRunner:
    """第一个周期抛异常，之后正常；跑满 cycles 个周期后触发 stop。"""

    stop: threading.Event
    cycles: int
    calls: int = 0
    active: int = 0
    overlapped: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock)

    def run_once(self) -> RunOnceReport:
        with self.lock:
            self.active += 1
            if self.active > 1:
                self.overlapped = True
        try:
            self.calls += 1
            if self.calls >= self.cycles:
                self.stop.set()
            if self.calls == 1:
                raise RuntimeError("cycle blew up")
            return _empty_report()
        finally:
            with self.lock:
                self.active -= 1


def test_daemon_survives_crashed_cycle_and_never_overlaps(caplog) -> None:  # noqa: ANN001
    stop = threading.Event()
    runner = _ScriptedRunner(stop=stop, cycles=3)
    ticks = itertools.count(0, 10)

    caplog.set_level(logging.ERROR)
    cycles = run_daemon(
        runner,
        AppConfig(poll_interval_seconds=1),
        status_interval=0,
        stop=stop,
        clock=lambda: float(next(ticks)),
    )

    assert cycles == 3
    assert runner.calls == 3
    assert runner.overlapped is False
    assert "cycle crashed: id=1" in caplog.text


def test_daemon_sweeps_rate_limiters() -> None:
    stop = threading.Event()
    limiter_clock = {"now": 0.0}
    limiters = RateLimiters(register=RateLimiter(max_requests=1, window_seconds=5, clock=lambda: limiter_clock["now"]))
    limiters.register.check("1.2.3.4")
    limiter_clock["now"] = 100.0

    # 时钟：第一次 tick 跑周期，之后停在 tick 之间，让 sweep 有机会执行
    values = iter([0.0, 0.0, 0.0, 0.0, 2.0])

    def _clock() -> float:
        try:
            return next(values)
        except StopIteration:
            stop.set()
            return 2.0

    runner = _ScriptedRunner(stop=threading.Event(), cycles=99, calls=1)
    run_daemon(
        runner,
        AppConfig(poll_interval_seconds=60, rate_limit_sweep_seconds=1),
        rate_limiters=limiters,
        status_interval=0,
        stop=stop,
        clock=_clock,
    )

    assert len(limiters.register) == 0


@dataclass
class _SlowRunner:
    """每个周期把假时钟推进 seconds_per_cycle 秒，模拟周期持续超时。"""

    stop: threading.Event
    clock: dict
    seconds_per_cycle: float
    cycles: int
    calls: int = 0

    def run_once(self) -> RunOnceReport:
        self.calls += 1
        self.clock["now"] += self.seconds_per_cycle
        if self.calls >= self.cycles:
            self.stop.set()
        return _empty_report()


def test_daemon_sweeps_and_heartbeats_while_cycles_overrun(caplog) -> None:  # noqa: ANN001
    stop = threading.Event()
    daemon_clock = {"now": 0.0}
    limiter_clock = {"now": 0.0}
    limiters = RateLimiters(register=RateLimiter(max_requests=1, window_seconds=5, clock=lambda: limiter_clock["now"]))
    limiters.register.check("1.2.3.4")
    limiter_clock["now"] = 100.0

    # 每个周期 20s，间隔只有 15s：调度永远落后，下一个周期总是立即开始
    runner = _SlowRunner(stop=stop, clock=daemon_clock, seconds_per_cycle=20.0, cycles=100)

    caplog.set_level(logging.INFO)
    cycles = run_daemon(
        runner,
        AppConfig(poll_interval_seconds=15, rate_limit_sweep_seconds=300),
        rate_limiters=limiters,
        status_interval=60,
        stop=stop,
        clock=lambda: daemon_clock["now"],
    )

    assert cycles == 100
    assert len(limiters.register) == 0
    assert "daemon alive" in caplog.text


def test_arg_parser_modes() -> None:
    args = build_arg_parser().parse_args(["--once", "--log-level", "debug"])
    assert args.once is True
    assert args.daemon is False
    args = build_arg_parser().parse_args(["--daemon", "--no-api"])
    assert args.daemon is True
    assert args.no_api is True
