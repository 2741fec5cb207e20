"""Stable fingerprint of a deployment request."""

from __future__ import annotations

import hashlib
import json

from subnet_deployer.domain.models import DeploymentRequest

# The RPC url is left out; the network id names the ledger it reaches.
_EXCLUDED_FIELDS = frozenset({"chain_rpc_url", "ssm_doc"})


def compute_request_fingerprint(
    request: DeploymentRequest,
    genesis: bytes,
    *,
    network_id: int | None,
    wallet_address: str,
) -> str:
    """Key a run by what it deploys, on which network, and from which account.

    Two runs share a fingerprint only when they would create the same ledger
    records with the same key on the same network.
    """
    payload = request.model_dump(mode="json", exclude=set(_EXCLUDED_FIELDS))
    payload["genesis_sha256"] = hashlib.sha256(genesis).hexdigest()
    payload["network_id"] = network_id
    payload["wallet_address"] = wallet_address
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(encoded.encode("utf-8")).hexdigest()
    return f"sha256:{digest}"
