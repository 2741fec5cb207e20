"""Deterministic object keys and remote paths for staged artifacts."""

from __future__ import annotations

from pathlib import PurePath


def append_slash(prefix: str) -> str:
    if prefix.endswith("/"):
        return prefix
    return prefix + "/"


def config_key(prefix: str, local_path: str | PurePath) -> str:
    """Key for a config file: the prefix followed by the file stem."""
    return append_slash(prefix) + PurePath(local_path).stem


def vm_binary_key(prefix: str, vm_id: str) -> str:
    """Key for the VM binary, independent of its local file name."""
    return append_slash(prefix) + vm_id


def vm_binary_remote_path(remote_dir: str, vm_id: str) -> str:
    return append_slash(remote_dir) + vm_id


def subnet_config_remote_path(remote_dir: str, subnet_id: str) -> str:
    # avalanchego reads {subnet-config-dir}/{subnet id}.json
    return f"{append_slash(remote_dir)}{subnet_id}.json"


def chain_config_remote_path(remote_dir: str, blockchain_id: str) -> str:
    # avalanchego reads {chain-config-dir}/{blockchain id}/config.json
    return f"{append_slash(remote_dir)}{blockchain_id}/config.json"
