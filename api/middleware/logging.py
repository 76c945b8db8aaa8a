"""
Access logging for the invoice API.

One structured event when a request arrives and one when it completes, with
the elapsed time. JSON bodies can be attached for debugging; credentials are
masked and wallet addresses shortened before anything is logged.
"""
import json
import time
from typing import Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)

WEBHOOK_PATH_MARKER = "/webhooks/"


def shorten_address(value: Any) -> Any:
    """0x71C7...976F style; anything that is not an address is returned as is."""
    if isinstance(value, str) and value.startswith("0x") and len(value) > 12:
        return f"{value[:6]}...{value[-4:]}"
    return value


class LoggingMiddleware(BaseHTTPMiddleware):
    """Structured request/response logging with timing."""

    SKIP_PATHS = {"/health", "/metrics", "/docs", "/redoc", "/openapi.json"}

    MASKED_FIELDS = {"secret", "signature", "token", "api_key", "api_secret", "payer_reference"}
    ADDRESS_FIELDS = {"wallet_address", "payment_address"}

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.log_body_by_default: bool = settings.LOG_REQUEST_BODY_ENABLE_BY_DEFAULT
        self.max_body_bytes: int = settings.LOG_REQUEST_BODY_MAX_BYTES

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        request_info = await self._describe(request)
        logger.info("request_started", **request_info)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=round(time.perf_counter() - started, 4),
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
                **request_info,
            )
            raise

        duration = time.perf_counter() - started
        self._log_completed(response, duration, request_info)
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response

    async def _describe(self, request: Request) -> dict:
        info = {
            "method": request.method,
            "path": request.url.path,
        }
        if request.query_params:
            info["query_params"] = dict(request.query_params)
        if WEBHOOK_PATH_MARKER in request.url.path:
            # Signature headers are never logged, only whether they were sent
            info["signed"] = any(h.endswith("-signature") for h in request.headers.keys())

        if request.method == "POST" and self._body_logging_enabled(request):
            body = await self._body_snippet(request)
            if body is not None:
                info["body"] = body

        user_agent = request.headers.get("User-Agent")
        if user_agent:
            info["user_agent"] = user_agent
        return info

    def _body_logging_enabled(self, request: Request) -> bool:
        # X-Log-Body: true/false overrides the configured default
        header = (request.headers.get("X-Log-Body") or "").lower()
        if header in {"true", "1", "yes"}:
            return True
        if header in {"false", "0", "no"}:
            return False
        return bool(self.log_body_by_default and settings.DEBUG)

    async def _body_snippet(self, request: Request) -> Any:
        raw = await request.body()
        if not raw:
            return None
        text = raw[: self.max_body_bytes].decode("utf-8", errors="ignore")
        if "application/json" not in request.headers.get("content-type", "").lower():
            return text
        try:
            return self._redact(json.loads(text))
        except ValueError:
            return text

    def _redact(self, data: Any) -> Any:
        if isinstance(data, dict):
            redacted = {}
            for key, value in data.items():
                lowered = key.lower()
                if lowered in self.MASKED_FIELDS:
                    redacted[key] = "***"
                elif lowered in self.ADDRESS_FIELDS:
                    redacted[key] = shorten_address(value)
                else:
                    redacted[key] = self._redact(value)
            return redacted
        if isinstance(data, list):
            return [self._redact(v) for v in data]
        return data

    def _log_completed(self, response: Response, duration: float, request_info: dict) -> None:
        fields = {"status_code": response.status_code, "duration": round(duration, 4), **request_info}
        if response.status_code < 400:
            logger.info("request_completed", **fields)
        elif response.status_code < 500:
            logger.warning("request_client_error", **fields)
        else:
            logger.error("request_server_error", **fields)
