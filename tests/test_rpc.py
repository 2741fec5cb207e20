from __future__ import annotations

import json

import httpx
import pytest

from subnet_deployer.errors import ConnectivityError
from subnet_deployer.ledger.rpc import get_network_id, info_endpoint


@pytest.mark.parametrize(
    ("rpc_url", "expected"),
    [
        ("http://127.0.0.1:9650", "http://127.0.0.1:9650/ext/info"),
        ("https://api.avax-test.network/ext/bc/P", "https://api.avax-test.network/ext/info"),
        ("127.0.0.1:9650", "http://127.0.0.1:9650/ext/info"),
    ],
)
def test_info_endpoint(rpc_url: str, expected: str) -> None:
    assert info_endpoint(rpc_url) == expected


def test_info_endpoint_rejects_url_without_host() -> None:
    with pytest.raises(ConnectivityError):
        info_endpoint("http://")


@pytest.mark.asyncio
async def test_get_network_id() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": {"networkID": "5"}})

    network_id = await get_network_id(
        "http://127.0.0.1:9650/ext/bc/P", transport=httpx.MockTransport(handler)
    )

    assert network_id == 5
    assert str(seen[0].url) == "http://127.0.0.1:9650/ext/info"
    assert json.loads(seen[0].content)["method"] == "info.getNetworkID"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"error": {"code": -32601, "message": "not found"}}),
        httpx.Response(200, json={"result": {}}),
    ],
)
async def test_get_network_id_failures(response: httpx.Response) -> None:
    transport = httpx.MockTransport(lambda request: response)

    with pytest.raises(ConnectivityError):
        await get_network_id("http://127.0.0.1:9650", transport=transport)


@pytest.mark.asyncio
async def test_get_network_id_connection_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ConnectivityError, match="connection refused"):
        await get_network_id("http://127.0.0.1:9650", transport=httpx.MockTransport(handler))
