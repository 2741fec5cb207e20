from __future__ import annotations

import asyncio
import contextlib
import os
from pathlib import Path

import pytest

from subnet_deployer.config import _load_settings_cached


def pytest_sessionstart(session: pytest.Session) -> None:
    # Unit test runs never write run-state markers to the project data dir.
    os.environ.setdefault("RUN_STATE_ENABLED", "false")


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> None:
    _load_settings_cached.cache_clear()
    yield
    _load_settings_cached.cache_clear()


@pytest.fixture(autouse=True)
def _close_default_event_loop() -> None:
    yield
    policy = asyncio.get_event_loop_policy()
    local = getattr(policy, "_local", None)
    loop = getattr(local, "_loop", None) if local is not None else None
    if loop is not None and not loop.is_running() and not loop.is_closed():
        with contextlib.suppress(Exception):
            loop.close()
    if loop is not None:
        with contextlib.suppress(Exception):
            policy.set_event_loop(None)


@pytest.fixture
def local_files(tmp_path: Path) -> dict[str, Path]:
    vm_binary = tmp_path / "subnet-evm"
    vm_binary.write_bytes(b"\x7fELF binary")
    genesis = tmp_path / "genesis.json"
    genesis.write_text('{"config":{"chainId":99999}}')
    subnet_config = tmp_path / "subnet-config.json"
    subnet_config.write_text('{"proposerMinBlockDelay":0}')
    chain_config = tmp_path / "chain-config.json"
    chain_config.write_text('{"log-level":"info"}')
    return {
        "vm_binary": vm_binary,
        "genesis": genesis,
        "subnet_config": subnet_config,
        "chain_config": chain_config,
    }


@pytest.fixture
def request_values(local_files: dict[str, Path]) -> dict[str, object]:
    return {
        "region": "us-west-2",
        "s3_bucket": "my-bucket",
        "s3_key_prefix": "pfx",
        "ssm_doc": "avalanched-install",
        "chain_rpc_url": "http://127.0.0.1:9650",
        "staking_period_in_days": 15,
        "staking_amount_in_avax": 2000,
        "vm_binary_local_path": str(local_files["vm_binary"]),
        "vm_binary_remote_dir": "/data/avalanche-plugins",
        "vm_id": "",
        "chain_name": "subnetevm",
        "chain_genesis_path": str(local_files["genesis"]),
        "avalanchego_config_remote_path": "/data/avalanche-configs/config.json",
        "node_ids_to_instance_ids": {"n1": "i1", "n2": "i2"},
    }
