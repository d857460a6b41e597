from ytsync import rate_limiter as rate_limiter_module
from ytsync.rate_limiter import RateLimiter


def test_window_is_per_key(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(rate_limiter_module.time, "time", lambda: now[0])
    limiter = RateLimiter(max_requests=2, window_seconds=60)

    assert limiter.acquire("a") == 0.0
    assert limiter.acquire("a") == 0.0
    assert limiter.acquire("a") == 60.0
    assert limiter.get_remaining_requests("a") == 0
    assert limiter.get_remaining_requests("b") == 2

    now[0] += 30
    assert limiter.get_reset_time("a") == 30.0

    now[0] += 30
    assert limiter.get_remaining_requests("a") == 2
    assert limiter.acquire("a") == 0.0
