import threading

from gateway.throttling import FixedWindowRateLimiter, build_rate_limiters


class Clock:
    def __init__(self):
        self.t = 1000.0

    def __call__(self):
        return self.t


def test_admits_up_to_limit_then_refuses():
    limiter = FixedWindowRateLimiter(3, 60, clock=Clock())
    decisions = [limiter.check("1.2.3.4") for _ in range(4)]
    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert [d.remaining for d in decisions] == [2, 1, 0, 0]


def test_window_resets_after_expiry():
    clock = Clock()
    limiter = FixedWindowRateLimiter(1, 60, clock=clock)
    assert limiter.check("k").allowed
    assert not limiter.check("k").allowed
    clock.t += 60
    decision = limiter.check("k")
    assert decision.allowed
    assert decision.reset_at == clock.t + 60


def test_keys_are_independent():
    limiter = FixedWindowRateLimiter(1, 60, clock=Clock())
    assert limiter.check("a").allowed
    assert limiter.check("b").allowed
    assert not limiter.check("a").allowed


def test_reset_and_clear():
    limiter = FixedWindowRateLimiter(1, 60, clock=Clock())
    limiter.check("a")
    limiter.check("b")
    limiter.reset("a")
    assert limiter.check("a").allowed
    limiter.clear()
    assert limiter.check("b").allowed


def test_concurrent_checks_never_exceed_limit():
    limiter = FixedWindowRateLimiter(50, 60)
    allowed = []
    lock = threading.Lock()

    def worker():
        for _ in range(20):
            d = limiter.check("shared")
            with lock:
                allowed.append(d.allowed)

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sum(allowed) == 50


def test_build_rate_limiters_from_config():
    limiters = build_rate_limiters({"general": (100, 900), "otp": (10, 900)})
    assert limiters["otp"].max_requests == 10
    assert limiters["general"].window_seconds == 900


def test_expired_windows_are_evicted():
    clock = Clock()
    limiter = FixedWindowRateLimiter(5, 60, clock=clock)
    for i in range(100):
        limiter.check(f"10.0.0.{i}")
    assert limiter.tracked_keys() == 100

    clock.t += 61
    limiter.check("10.0.1.1")
    assert limiter.tracked_keys() == 1


def test_live_windows_survive_a_sweep():
    clock = Clock()
    limiter = FixedWindowRateLimiter(1, 60, clock=clock)
    limiter.check("old")
    clock.t += 59
    limiter.check("young")
    clock.t += 2
    # "old" expired, "young" still counts
    assert not limiter.check("young").allowed
    assert limiter.tracked_keys() == 1
