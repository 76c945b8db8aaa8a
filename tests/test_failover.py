import json

import httpx
import pytest

from infrastructure.external.chain.rpc_client import ChainRpcClient, ChainRpcError
from infrastructure.gateway.failover import FailoverGateway


URLS = ["https://a.example", "https://b.example", "https://c.example"]


class UpstreamDown(Exception):
    pass


def _value(metrics, upstream):
    return metrics.registry.get_sample_value("rpc_failure_total", {"upstream": upstream}) or 0


@pytest.mark.asyncio
async def test_primary_success_keeps_index(metrics):
    gateway = FailoverGateway({"rpc": URLS}, backoff_seconds=0, metrics=metrics)
    calls = []

    async def op(url):
        calls.append(url)
        return "ok"

    assert await gateway.execute("rpc", op) == "ok"
    assert calls == [URLS[0]]
    assert gateway.current_index("rpc") == 0
    assert _value(metrics, "rpc") == 0


@pytest.mark.asyncio
async def test_failover_is_sticky(metrics):
    gateway = FailoverGateway({"rpc": URLS}, backoff_seconds=0, metrics=metrics)
    calls = []

    async def primary_down(url):
        calls.append(url)
        if url == URLS[0]:
            raise UpstreamDown(url)
        return url

    assert await gateway.execute("rpc", primary_down) == URLS[1]
    assert gateway.current_index("rpc") == 1
    assert gateway.current_endpoint("rpc") == URLS[1]

    # Next call starts at the endpoint that answered last
    calls.clear()
    assert await gateway.execute("rpc", primary_down) == URLS[1]
    assert calls == [URLS[1]]
    assert _value(metrics, "rpc") == 1


@pytest.mark.asyncio
async def test_walks_round_robin_from_current():
    gateway = FailoverGateway({"rpc": URLS}, backoff_seconds=0)
    gateway._current["rpc"] = 2
    calls = []

    async def only_b(url):
        calls.append(url)
        if url != URLS[1]:
            raise UpstreamDown(url)
        return "b"

    assert await gateway.execute("rpc", only_b) == "b"
    assert calls == [URLS[2], URLS[0], URLS[1]]
    assert gateway.current_index("rpc") == 1


@pytest.mark.asyncio
async def test_all_fail_raises_last_error(metrics):
    gateway = FailoverGateway({"rpc": URLS}, backoff_seconds=0, metrics=metrics)
    calls = []

    async def all_down(url):
        calls.append(url)
        raise UpstreamDown(url)

    with pytest.raises(UpstreamDown) as exc_info:
        await gateway.execute("rpc", all_down)
    assert str(exc_info.value) == URLS[2]
    assert calls == URLS
    assert gateway.current_index("rpc") == 0
    assert _value(metrics, "rpc") == 3


@pytest.mark.asyncio
async def test_non_retryable_error_stops_immediately():
    gateway = FailoverGateway({"rpc": URLS}, backoff_seconds=0, retry_on=(UpstreamDown,))
    calls = []

    async def bad_request(url):
        calls.append(url)
        raise ValueError("bad params")

    with pytest.raises(ValueError):
        await gateway.execute("rpc", bad_request)
    assert calls == [URLS[0]]


@pytest.mark.asyncio
async def test_unknown_upstream():
    gateway = FailoverGateway({"rpc": URLS, "empty": []})
    with pytest.raises(KeyError):
        gateway.current_endpoint("nope")
    with pytest.raises(KeyError):
        gateway.endpoints("empty")


def _rpc_transport(down: set[str]):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host in down:
            return httpx.Response(503)
        body = json.loads(request.content)
        assert body["method"] == "eth_blockNumber"
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": "0x10"})

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_rpc_client_fails_over_between_nodes(metrics):
    gateway = FailoverGateway({"ethereum": URLS}, backoff_seconds=0, metrics=metrics)
    client = ChainRpcClient(gateway, transport=_rpc_transport({"a.example"}))
    try:
        assert await client.block_number("ethereum") == 16
    finally:
        await client.aclose()
    assert gateway.current_index("ethereum") == 1
    assert _value(metrics, "ethereum") == 1


@pytest.mark.asyncio
async def test_rpc_client_unknown_chain_and_total_outage():
    gateway = FailoverGateway({"ethereum": URLS}, backoff_seconds=0)
    client = ChainRpcClient(gateway, transport=_rpc_transport({"a.example", "b.example", "c.example"}))
    try:
        with pytest.raises(ChainRpcError):
            await client.block_number("solana")
        with pytest.raises(ChainRpcError) as exc_info:
            await client.block_number("ethereum")
        assert exc_info.value.details["url"] == URLS[2]
    finally:
        await client.aclose()
