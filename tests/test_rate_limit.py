from honeypot.rate_limit import SlidingWindowLimiter


def test_allows_up_to_budget_then_blocks():
    limiter = SlidingWindowLimiter(max_requests=3, window_seconds=60)
    assert [limiter.allow("1.2.3.4", now=t) for t in (0, 1, 2, 3)] == [True, True, True, False]


def test_window_slides():
    limiter = SlidingWindowLimiter(max_requests=2, window_seconds=10)
    assert limiter.allow("ip", now=0)
    assert limiter.allow("ip", now=5)
    assert not limiter.allow("ip", now=9)
    assert limiter.allow("ip", now=10.5)


def test_keys_are_independent():
    limiter = SlidingWindowLimiter(max_requests=1, window_seconds=60)
    assert limiter.allow("a", now=0)
    assert limiter.allow("b", now=0)
    assert not limiter.allow("a", now=1)


def test_zero_budget_disables_limiting():
    limiter = SlidingWindowLimiter(max_requests=0, window_seconds=60)
    assert not limiter.enabled
    assert all(limiter.allow("ip", now=0) for _ in range(100))


def test_expired_clients_are_forgotten():
    limiter = SlidingWindowLimiter(max_requests=5, window_seconds=1)
    for i in range(1000):
        limiter.allow(f"10.0.{i // 256}.{i % 256}", now=0)
    assert len(limiter) == 1000
    assert limiter.allow("192.168.1.1", now=100)
    assert len(limiter) == 1


def test_active_clients_survive_prune():
    limiter = SlidingWindowLimiter(max_requests=2, window_seconds=10)
    assert limiter.allow("idle", now=1)
    assert limiter.allow("busy", now=5)
    assert limiter.allow("busy", now=9)
    limiter.prune(now=11.5)
    assert len(limiter) == 1
    assert not limiter.allow("busy", now=12)
