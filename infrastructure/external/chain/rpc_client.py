"""
Minimal EVM JSON-RPC client with per-chain endpoint failover.
"""
from __future__ import annotations

import itertools
from typing import Any, Optional

import httpx

from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from infrastructure.gateway.failover import FailoverGateway
from shared.codes.payment_codes import PaymentCode


logger = get_logger(__name__)


class ChainRpcError(BusinessException):
    def __init__(self, message: str, *, chain: str, details: Optional[dict] = None):
        full_details = {"chain": chain}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.CHAIN_RPC_ERROR,
            message=message,
            error_type="ChainRpcError",
            details=full_details,
        )


class ChainRpcClient:
    """JSON-RPC 2.0 over HTTP. Each chain is a failover upstream named after it."""

    def __init__(
        self,
        gateway: FailoverGateway,
        *,
        timeout_seconds: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._gateway = gateway
        self._timeout = timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._ids = itertools.count(1)

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout), transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def call(
        self,
        chain: str,
        method: str,
        params: Optional[list] = None,
        *,
        timeout: Optional[float] = None,
    ) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}

        async def send(url: str) -> Any:
            try:
                response = await self._http().post(
                    url, json=payload, timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT
                )
                response.raise_for_status()
                body = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                raise ChainRpcError(f"{method} failed: {exc}", chain=chain, details={"url": url}) from exc
            if body.get("error"):
                raise ChainRpcError(
                    f"{method} returned an error", chain=chain, details={"url": url, "error": body["error"]}
                )
            return body.get("result")

        try:
            return await self._gateway.execute(chain, send)
        except KeyError as exc:
            raise ChainRpcError(f"Unsupported chain: {chain}", chain=chain) from exc

    async def block_number(self, chain: str, *, timeout: Optional[float] = None) -> int:
        result = await self.call(chain, "eth_blockNumber", timeout=timeout)
        try:
            return int(result, 16)
        except (TypeError, ValueError) as exc:
            raise ChainRpcError("eth_blockNumber returned a non-hex result", chain=chain) from exc
