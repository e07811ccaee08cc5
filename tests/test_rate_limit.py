from app.services.rate_limit import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_rate_limiter_blocks_after_max_calls():
    clock = FakeClock()
    limiter = RateLimiter(max_calls=2, period_seconds=10, clock=clock)
    assert limiter.allow("1:draw").allowed
    assert limiter.allow("1:draw").allowed

    blocked = limiter.allow("1:draw")
    assert not blocked.allowed
    assert blocked.retry_after == 10

    clock.now += 10
    assert limiter.allow("1:draw").allowed


def test_rate_limiter_keys_are_independent():
    limiter = RateLimiter(max_calls=1, period_seconds=10, clock=FakeClock())
    assert limiter.allow("1:draw").allowed
    assert limiter.allow("2:draw").allowed
    assert not limiter.allow("1:draw").allowed

    limiter.reset("1:draw")
    assert limiter.allow("1:draw").allowed
