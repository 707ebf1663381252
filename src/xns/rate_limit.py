from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable


@dataclass(slots=True)
class RateLimiter:
    """
    固定窗口限流：按来源地址计数。

    - check()：窗口过期则重置，计数未达上限时放行并加一
    - cleanup()：移除窗口已过期的桶，内存上限为一个窗口内的活跃地址数
    """

    max_requests: int
    window_seconds: float
    clock: Callable[[], float] = time.monotonic
    _buckets: dict[str, tuple[int, float]] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def check(self, address: str) -> bool:
        now = self.clock()
        with self._lock:
            count, started_at = self._buckets.get(address, (0, now))
            if now - started_at > self.window_seconds:
                count, started_at = 0, now
            if count >= self.max_requests:
                self._buckets[address] = (count, started_at)
                return False
            self._buckets[address] = (count + 1, started_at)
            return True

    def cleanup(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [a for a, (_, started_at) in self._buckets.items() if now - started_at > self.window_seconds]
            for address in expired:
                del self._buckets[address]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)


@dataclass(slots=True)
class RateLimiters:
    """管理接口各操作的限流器：注册 5 次/小时，注销 10 次/小时（每个地址）。"""

    register: RateLimiter = field(default_factory=lambda: RateLimiter(max_requests=5, window_seconds=3600))
    unregister: RateLimiter = field(default_factory=lambda: RateLimiter(max_requests=10, window_seconds=3600))

    def cleanup(self) -> int:
        return self.register.cleanup() + self.unregister.cleanup()
