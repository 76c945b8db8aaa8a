"""
Token bucket rate limiting for inbound callers.
"""
from __future__ import annotations

import math
import time
from typing import Callable, Mapping, Optional

from core.config import RateLimitRule
from core.exceptions import RateLimitException
from core.logging_config import get_logger


logger = get_logger(__name__)

Clock = Callable[[], float]


class TokenBucket:
    """Classic token bucket with lazy refill on consume()."""

    def __init__(self, capacity: float, refill_rate: float, clock: Clock = time.monotonic) -> None:
        if capacity <= 0 or refill_rate < 0:
            raise ValueError("capacity must be > 0 and refill_rate >= 0")
        self.capacity = float(capacity)
        self.refill_rate = float(refill_rate)
        self._clock = clock
        self._tokens = float(capacity)
        self._last_refill = clock()

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate)
        self._last_refill = now

    def consume(self) -> bool:
        """Take one token; False when the bucket is empty."""
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        return False

    def retry_after(self) -> Optional[int]:
        """Whole seconds until the next token, None if it never refills."""
        if self.refill_rate <= 0:
            return None
        missing = max(0.0, 1 - self._tokens)
        return max(1, math.ceil(missing / self.refill_rate))


class RateLimiter:
    """Buckets keyed by (caller class, identity) with per-class limits.

    Unknown caller classes fall back to the "default" rule. Once more than
    max_buckets keys are tracked, buckets that refilled to capacity are
    dropped; a full bucket is indistinguishable from a fresh one.
    """

    def __init__(
        self,
        rules: Mapping[str, RateLimitRule],
        clock: Clock = time.monotonic,
        max_buckets: int = 10_000,
    ) -> None:
        if "default" not in rules:
            raise ValueError("rate limit rules need a 'default' entry")
        self._rules = dict(rules)
        self._clock = clock
        self._max_buckets = max_buckets
        self._buckets: dict[tuple[str, str], TokenBucket] = {}

    def _bucket(self, caller_class: str, identity: str) -> TokenBucket:
        key = (caller_class, identity)
        bucket = self._buckets.get(key)
        if bucket is None:
            rule = self._rules.get(caller_class, self._rules["default"])
            if len(self._buckets) >= self._max_buckets:
                self._prune()
            bucket = TokenBucket(rule.capacity, rule.refill_rate, clock=self._clock)
            self._buckets[key] = bucket
        return bucket

    def _prune(self) -> None:
        idle = [key for key, bucket in self._buckets.items() if bucket.tokens >= bucket.capacity]
        for key in idle:
            del self._buckets[key]
        logger.debug("rate_limit_buckets_pruned", dropped=len(idle), remaining=len(self._buckets))

    def allow(self, caller_class: str, identity: str) -> bool:
        return self._bucket(caller_class, identity).consume()

    def check(self, caller_class: str, identity: str) -> None:
        """Consume a token or raise RateLimitException."""
        bucket = self._bucket(caller_class, identity)
        if not bucket.consume():
            logger.warning("rate_limited", caller_class=caller_class, identity=identity)
            raise RateLimitException(retry_after=bucket.retry_after(), caller_class=caller_class)
