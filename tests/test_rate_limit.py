import pytest

from core.config import RateLimitRule
from core.exceptions import RateLimitException
from infrastructure.gateway.rate_limit import RateLimiter, TokenBucket


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_bucket_allows_burst_then_refuses():
    clock = FakeClock()
    bucket = TokenBucket(capacity=10, refill_rate=1, clock=clock)
    assert all(bucket.consume() for _ in range(10))
    assert bucket.consume() is False


def test_bucket_refills_at_rate():
    clock = FakeClock()
    bucket = TokenBucket(capacity=10, refill_rate=1, clock=clock)
    for _ in range(10):
        bucket.consume()
    clock.advance(1)
    assert bucket.consume() is True
    assert bucket.consume() is False


def test_bucket_never_exceeds_capacity():
    clock = FakeClock()
    bucket = TokenBucket(capacity=3, refill_rate=5, clock=clock)
    clock.advance(60)
    assert bucket.tokens == 3


def test_retry_after_hint():
    clock = FakeClock()
    bucket = TokenBucket(capacity=1, refill_rate=0.5, clock=clock)
    bucket.consume()
    assert bucket.retry_after() == 2
    assert TokenBucket(capacity=1, refill_rate=0, clock=clock).retry_after() is None


def test_bucket_rejects_bad_config():
    with pytest.raises(ValueError):
        TokenBucket(capacity=0, refill_rate=1)


def test_limiter_keys_by_class_and_identity():
    clock = FakeClock()
    limiter = RateLimiter(
        {
            "webhook": RateLimitRule(capacity=2, refill_rate=0),
            "default": RateLimitRule(capacity=1, refill_rate=0),
        },
        clock=clock,
    )
    assert limiter.allow("webhook", "10.0.0.1")
    assert limiter.allow("webhook", "10.0.0.1")
    assert not limiter.allow("webhook", "10.0.0.1")
    # Other identities and classes have their own buckets
    assert limiter.allow("webhook", "10.0.0.2")
    assert limiter.allow("unknown-class", "10.0.0.1")
    assert not limiter.allow("unknown-class", "10.0.0.1")


def test_limiter_check_raises_with_retry_after():
    clock = FakeClock()
    limiter = RateLimiter(
        {"default": RateLimitRule(capacity=10, refill_rate=1)},
        clock=clock,
    )
    for _ in range(10):
        limiter.check("create-invoice", "1.2.3.4")
    with pytest.raises(RateLimitException) as exc_info:
        limiter.check("create-invoice", "1.2.3.4")
    assert exc_info.value.details == {"retry_after": 1, "caller_class": "create-invoice"}

    clock.advance(1)
    limiter.check("create-invoice", "1.2.3.4")


def test_limiter_requires_default_rule():
    with pytest.raises(ValueError):
        RateLimiter({"webhook": RateLimitRule(capacity=1, refill_rate=1)})


def test_limiter_drops_refilled_buckets_when_full():
    clock = FakeClock()
    limiter = RateLimiter(
        {"default": RateLimitRule(capacity=1, refill_rate=1)},
        clock=clock,
        max_buckets=2,
    )
    assert limiter.allow("default", "a")
    assert limiter.allow("default", "b")
    clock.advance(5)
    assert limiter.allow("default", "c")
    assert set(limiter._buckets) == {("default", "c")}

    # A drained bucket is kept, so its caller cannot reset by flooding new identities
    assert limiter.allow("default", "d")
    assert limiter.allow("default", "e")
    assert ("default", "c") in limiter._buckets
    assert not limiter.allow("default", "c")
