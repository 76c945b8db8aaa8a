"""
Request ID middleware.

Generates or forwards a trace id and hands it to the logging system through
contextvars.
"""
import ipaddress
import uuid
from contextvars import ContextVar
from typing import Iterable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

import structlog

from core.config import settings


request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
client_ip_var: ContextVar[Optional[str]] = ContextVar("client_ip", default=None)


def _matches(host: str, entries: Iterable[str]) -> bool:
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        ip = None
    for entry in entries:
        if host == entry:
            return True
        if ip is not None and "/" in entry:
            try:
                if ip in ipaddress.ip_network(entry, strict=False):
                    return True
            except ValueError:
                continue
    return False


def resolve_client_ip(request: Request, trusted_proxies: Iterable[str] = ()) -> str:
    """Socket peer, unless the peer is a trusted proxy.

    Behind a trusted proxy the X-Forwarded-For chain is read right to left and
    the first hop that is not itself a trusted proxy wins. Forwarding headers
    from any other peer are ignored.
    """
    peer = request.client.host if request.client else "unknown"
    trusted = list(trusted_proxies)
    if not trusted or not _matches(peer, trusted):
        return peer
    x_forwarded_for = request.headers.get("X-Forwarded-For")
    if x_forwarded_for:
        hops = [hop.strip() for hop in x_forwarded_for.split(",") if hop.strip()]
        for hop in reversed(hops):
            if not _matches(hop, trusted):
                return hop
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return peer


def _trusted_proxies(request: Request) -> list[str]:
    container = getattr(request.app.state, "container", None)
    source = container.settings if container is not None else settings
    return source.TRUSTED_PROXIES


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Request tracing middleware.

    1. take X-Request-ID from the request or generate one
    2. bind it (and the client ip) into structlog contextvars
    3. echo it back in the response headers
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME)
        if not request_id:
            request_id = str(uuid.uuid4())

        client_ip = resolve_client_ip(request, _trusted_proxies(request))

        request.state.request_id = request_id
        request.state.client_ip = client_ip

        request_id_var.set(request_id)
        client_ip_var.set(client_ip)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=client_ip,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response


def get_request_id() -> Optional[str]:
    """Request id of the current request, None outside a request."""
    return request_id_var.get()


def get_client_ip() -> Optional[str]:
    return client_ip_var.get()
