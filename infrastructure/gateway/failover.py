"""
Sticky multi-endpoint failover for outbound calls.

execute() starts at the current endpoint of an upstream and walks the others
round-robin, one attempt each, with a fixed pause in between. Whichever
endpoint answers becomes the current one for later calls.
"""
from __future__ import annotations

from typing import Awaitable, Callable, Mapping, Optional, Sequence, TypeVar

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from core.logging_config import get_logger


logger = get_logger(__name__)

T = TypeVar("T")


class FailoverGateway:
    def __init__(
        self,
        endpoints: Mapping[str, Sequence[str]],
        *,
        backoff_seconds: float = 0.5,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
        metrics=None,
    ) -> None:
        self._endpoints = {name: list(urls) for name, urls in endpoints.items()}
        self._current: dict[str, int] = {name: 0 for name in self._endpoints}
        self._backoff = backoff_seconds
        self._retry_on = retry_on
        self._metrics = metrics

    def endpoints(self, upstream: str) -> list[str]:
        urls = self._endpoints.get(upstream)
        if not urls:
            raise KeyError(f"no endpoints configured for upstream '{upstream}'")
        return urls

    def current_index(self, upstream: str) -> int:
        self.endpoints(upstream)
        return self._current[upstream]

    def current_endpoint(self, upstream: str) -> str:
        return self.endpoints(upstream)[self.current_index(upstream)]

    async def execute(
        self,
        upstream: str,
        operation: Callable[[str], Awaitable[T]],
        *,
        retry_on: Optional[tuple[type[BaseException], ...]] = None,
    ) -> T:
        """Run operation(endpoint_url) with failover; the last error propagates."""
        urls = self.endpoints(upstream)
        start = self._current[upstream]
        count = len(urls)

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(count),
            wait=wait_fixed(self._backoff),
            retry=retry_if_exception_type(retry_on or self._retry_on),
            reraise=True,
        ):
            index = (start + attempt.retry_state.attempt_number - 1) % count
            with attempt:
                try:
                    result = await operation(urls[index])
                except Exception as exc:
                    self._record_failure(upstream, urls[index], index, exc)
                    raise
                if index != start:
                    self._current[upstream] = index
                    logger.info("failover_switched", upstream=upstream, endpoint=urls[index], index=index)
                return result
        raise RuntimeError("unreachable")  # pragma: no cover

    def _record_failure(self, upstream: str, url: str, index: int, exc: Exception) -> None:
        if self._metrics is not None:
            self._metrics.rpc_failure.labels(upstream=upstream).inc()
        logger.warning(
            "upstream_call_failed",
            upstream=upstream,
            endpoint=url,
            index=index,
            error=str(exc),
            error_type=type(exc).__name__,
        )
