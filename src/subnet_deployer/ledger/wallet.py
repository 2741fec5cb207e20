"""Signing wallet interface and the loader for concrete implementations.

Key handling, signing and the P-chain transaction codec live outside this
package. A deployment only needs the operations below; a concrete wallet is
provided by a factory named in ``SUBNET_DEPLOYER_WALLET_FACTORY``.
"""

from __future__ import annotations

import importlib
import inspect
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Protocol, Union, runtime_checkable

from subnet_deployer.errors import ConfigError


@runtime_checkable
class PChainWallet(Protocol):
    """P-chain operations issued by one funded key.

    With ``check_acceptance=True`` a call returns only once the transaction is
    accepted. With ``dry_mode=True`` nothing is issued and the returned id is
    a preview.
    """

    @property
    def address(self) -> str: ...

    async def balance(self) -> int: ...

    async def add_validator(
        self,
        *,
        node_id: str,
        stake_amount: int,
        start: datetime,
        end: datetime,
        check_acceptance: bool,
    ) -> tuple[str, bool]: ...

    async def create_subnet(self, *, dry_mode: bool, check_acceptance: bool) -> str: ...

    async def create_chain(
        self,
        *,
        subnet_id: str,
        genesis_data: bytes,
        vm_id: str,
        chain_name: str,
        dry_mode: bool,
        check_acceptance: bool,
    ) -> str: ...

    async def add_subnet_validator(
        self,
        *,
        node_id: str,
        subnet_id: str,
        start: datetime,
        end: datetime,
        check_acceptance: bool,
    ) -> tuple[str, bool]: ...


WalletFactory = Callable[[str, str], Union[PChainWallet, Awaitable[PChainWallet]]]


def load_wallet_factory(path: str | None) -> WalletFactory:
    if not path:
        raise ConfigError(
            "no wallet factory configured; set SUBNET_DEPLOYER_WALLET_FACTORY "
            "to 'package.module:callable'"
        )
    module_name, _, attr = path.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigError(f"cannot import wallet factory module '{module_name}': {exc}") from exc
    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise ConfigError(f"wallet factory '{path}' is not a callable")
    return factory


async def build_wallet(factory: WalletFactory, key: str, rpc_url: str) -> PChainWallet:
    wallet = factory(key, rpc_url)
    if inspect.isawaitable(wallet):
        wallet = await wallet
    if not isinstance(wallet, PChainWallet):
        raise ConfigError(f"wallet factory returned {type(wallet).__name__}, not a PChainWallet")
    return wallet
