"""Local input checks that run before any side effect."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path

from pydantic import ValidationError

from subnet_deployer.domain.models import DeploymentRequest
from subnet_deployer.errors import PreflightError

logger = logging.getLogger(__name__)


def _reject_duplicate_keys(pairs: list[tuple[str, object]]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in pairs:
        if key in result:
            raise PreflightError("node_ids_to_instance_ids", f"node id '{key}' is listed twice")
        result[key] = value
    return result


def parse_node_map(raw: str) -> dict[str, str]:
    """Parse the ``--node-ids-to-instance-ids`` JSON object."""
    try:
        value = json.loads(raw, object_pairs_hook=_reject_duplicate_keys)
    except json.JSONDecodeError as exc:
        raise PreflightError("node_ids_to_instance_ids", f"invalid JSON ({exc})") from exc
    if not isinstance(value, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        raise PreflightError(
            "node_ids_to_instance_ids",
            "expected a JSON object mapping node ids to instance ids",
        )
    return value


def build_request(values: Mapping[str, object]) -> DeploymentRequest:
    """Build a request, reporting the first invalid field as a ``PreflightError``."""
    try:
        return DeploymentRequest.model_validate(dict(values))
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "request"
        raise PreflightError(field, first["msg"]) from exc


def _require_file(field: str, path: Path, label: str) -> None:
    if not path.exists():
        raise PreflightError(field, f"{label} '{path}' not found")
    if not path.is_file():
        raise PreflightError(field, f"{label} '{path}' is not a file")


def run_preflight(request: DeploymentRequest) -> bytes:
    """Validate local inputs and return the chain genesis bytes.

    Checks run in a fixed order and stop at the first violation. Nothing here
    touches the network.
    """
    _require_file("vm_binary_local_path", request.vm_binary_local_path, "vm binary file")

    if request.subnet_config_local_path is not None and request.subnet_config_remote_dir is None:
        raise PreflightError(
            "subnet_config_remote_dir",
            "subnet_config_local_path is set but subnet_config_remote_dir is empty",
        )
    if request.chain_config_local_path is not None and request.chain_config_remote_dir is None:
        raise PreflightError(
            "chain_config_remote_dir",
            "chain_config_local_path is set but chain_config_remote_dir is empty",
        )

    _require_file("chain_genesis_path", request.chain_genesis_path, "chain genesis file")
    try:
        genesis = request.chain_genesis_path.read_bytes()
    except OSError as exc:
        raise PreflightError(
            "chain_genesis_path",
            f"failed to read '{request.chain_genesis_path}' ({exc})",
        ) from exc

    if request.subnet_config_local_path is not None:
        _require_file(
            "subnet_config_local_path", request.subnet_config_local_path, "subnet config file"
        )
    if request.chain_config_local_path is not None:
        _require_file(
            "chain_config_local_path", request.chain_config_local_path, "chain config file"
        )

    logger.debug(
        "preflight passed (vm id %s, %d genesis bytes, %d nodes)",
        request.vm_id,
        len(genesis),
        len(request.node_ids_to_instance_ids),
    )
    return genesis
