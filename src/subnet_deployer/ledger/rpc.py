"""Minimal JSON-RPC lookups against an avalanchego node."""

from __future__ import annotations

import logging
from urllib.parse import urlsplit

import httpx

from subnet_deployer.errors import ConnectivityError

logger = logging.getLogger(__name__)

INFO_PATH = "/ext/info"


def info_endpoint(rpc_url: str) -> str:
    """Return the info API URL for the node behind ``rpc_url``.

    Chain-specific paths such as ``/ext/bc/P`` are dropped; only scheme, host
    and port are kept.
    """
    parts = urlsplit(rpc_url if "://" in rpc_url else f"http://{rpc_url}")
    if not parts.hostname:
        raise ConnectivityError(f"invalid chain RPC URL '{rpc_url}'")
    return f"{parts.scheme}://{parts.netloc}{INFO_PATH}"


async def _call(
    url: str,
    method: str,
    params: dict[str, object] | None,
    timeout: float,
    transport: httpx.AsyncBaseTransport | None,
) -> dict[str, object]:
    payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params or {}}
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        try:
            response = await client.post(url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            raise ConnectivityError(f"{method} request to {url} failed: {exc}") from exc
        except ValueError as exc:
            raise ConnectivityError(f"{method} returned invalid JSON: {exc}") from exc

    if not isinstance(body, dict):
        raise ConnectivityError(f"{method} returned an unexpected payload")
    if body.get("error"):
        raise ConnectivityError(f"{method} returned an error: {body['error']}")
    result = body.get("result")
    if not isinstance(result, dict):
        raise ConnectivityError(f"{method} returned no result")
    return result


async def get_network_id(
    rpc_url: str,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    url = info_endpoint(rpc_url)
    result = await _call(url, "info.getNetworkID", None, timeout, transport)
    try:
        network_id = int(result["networkID"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ConnectivityError(f"info.getNetworkID returned no network id: {result}") from exc
    logger.info("network id %d from %s", network_id, url)
    return network_id
