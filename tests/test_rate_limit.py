import threading
import unittest

from xns.rate_limit import RateLimiter, RateLimiters


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestRateLimiter(unittest.TestCase):
    def test_fixed_window(self) -> None:
        clock = _Clock()
        limiter = RateLimiter(max_requests=5, window_seconds=3600, clock=clock)

        self.assertEqual([limiter.check("1.2.3.4") for _ in range(5)], [True] * 5)
        self.assertFalse(limiter.check("1.2.3.4"))
        # 其他地址不受影响
        self.assertTrue(limiter.check("5.6.7.8"))

        clock.now += 3601
        self.assertTrue(limiter.check("1.2.3.4"))

    def test_refusals_do_not_extend_the_window(self) -> None:
        clock = _Clock()
        limiter = RateLimiter(max_requests=1, window_seconds=10, clock=clock)
        self.assertTrue(limiter.check("a"))
        clock.now += 9
        self.assertFalse(limiter.check("a"))
        clock.now += 2
        self.assertTrue(limiter.check("a"))

    def test_cleanup_removes_only_expired_buckets(self) -> None:
        clock = _Clock()
        limiter = RateLimiter(max_requests=5, window_seconds=60, clock=clock)
        limiter.check("old")
        clock.now += 30
        limiter.check("fresh")
        clock.now += 31

        self.assertEqual(limiter.cleanup(), 1)
        self.assertEqual(len(limiter), 1)

    def test_concurrent_checks_never_over_admit(self) -> None:
        limiter = RateLimiter(max_requests=50, window_seconds=3600)
        admitted: list[bool] = []
        lock = threading.Lock()

        def _hammer() -> None:
            for _ in range(20):
                ok = limiter.check("same")
                with lock:
                    admitted.append(ok)

        threads = [threading.Thread(target=_hammer) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(sum(admitted), 50)

    def test_rate_limiters_defaults(self) -> None:
        limiters = RateLimiters()
        self.assertEqual(limiters.register.max_requests, 5)
        self.assertEqual(limiters.unregister.max_requests, 10)
        self.assertEqual(limiters.register.window_seconds, 3600)
        self.assertEqual(limiters.cleanup(), 0)
