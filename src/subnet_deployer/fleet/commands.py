"""Command lines sent to the installer agent on each node.

Rendering is pure: identical inputs always produce the identical string.
"""

from __future__ import annotations

from subnet_deployer.staging.keys import (
    chain_config_remote_path,
    subnet_config_remote_path,
    vm_binary_remote_path,
)

INSTALL_SUBNET_CHAIN = "install-subnet-chain"
INSTALL_CHAIN = "install-chain"


def _flags(pairs: list[tuple[str, str]]) -> str:
    return " ".join(f"--{name} {value}" for name, value in pairs)


def render_install_subnet_chain(
    *,
    region: str,
    s3_bucket: str,
    vm_binary_s3_key: str,
    vm_binary_remote_dir: str,
    vm_id: str,
    subnet_id: str,
    avalanchego_config_path: str,
    subnet_config_s3_key: str | None = None,
    subnet_config_remote_dir: str | None = None,
    log_level: str = "info",
) -> str:
    """Render the command that installs the VM binary and tracks the subnet.

    The subnet config flags are added only when both the key and the remote
    directory are given.
    """
    pairs = [
        ("log-level", log_level),
        ("region", region),
        ("s3-bucket", s3_bucket),
        ("vm-binary-s3-key", vm_binary_s3_key),
        ("vm-binary-local-path", vm_binary_remote_path(vm_binary_remote_dir, vm_id)),
        ("subnet-id-to-track", subnet_id),
        ("avalanchego-config-path", avalanchego_config_path),
    ]
    if subnet_config_s3_key is not None and subnet_config_remote_dir is not None:
        pairs.append(("subnet-config-s3-key", subnet_config_s3_key))
        pairs.append(
            (
                "subnet-config-local-path",
                subnet_config_remote_path(subnet_config_remote_dir, subnet_id),
            )
        )
    return f"{INSTALL_SUBNET_CHAIN} {_flags(pairs)}"


def render_install_chain(
    *,
    region: str,
    s3_bucket: str,
    chain_config_s3_key: str,
    chain_config_remote_dir: str,
    blockchain_id: str,
    log_level: str = "info",
) -> str:
    pairs = [
        ("log-level", log_level),
        ("region", region),
        ("s3-bucket", s3_bucket),
        ("chain-config-s3-key", chain_config_s3_key),
        (
            "chain-config-local-path",
            chain_config_remote_path(chain_config_remote_dir, blockchain_id),
        ),
    ]
    return f"{INSTALL_CHAIN} {_flags(pairs)}"
