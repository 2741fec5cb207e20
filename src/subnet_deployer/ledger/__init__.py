"""Ledger access: wallet interface, transactor and RPC lookups."""

from subnet_deployer.ledger.transactor import (
    VALIDATION_START_OFFSET,
    LedgerTransactor,
    validation_period,
)
from subnet_deployer.ledger.wallet import PChainWallet, build_wallet, load_wallet_factory

__all__ = [
    "LedgerTransactor",
    "PChainWallet",
    "VALIDATION_START_OFFSET",
    "build_wallet",
    "load_wallet_factory",
    "validation_period",
]
