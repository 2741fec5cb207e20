"""Ledger operations issued through the signing wallet."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from subnet_deployer.domain.models import (
    ChainRecord,
    SubnetRecord,
    ValidationPeriod,
    ValidatorRegistration,
)
from subnet_deployer.errors import DeploymentError, TransactionError
from subnet_deployer.ledger.units import avax_to_navax
from subnet_deployer.ledger.wallet import PChainWallet
from subnet_deployer.utils.time import to_unix_seconds, utc_now

logger = logging.getLogger(__name__)

VALIDATION_START_OFFSET = timedelta(days=60)


def validation_period(
    anchor: datetime,
    days: int,
    offset: timedelta = VALIDATION_START_OFFSET,
) -> ValidationPeriod:
    if days < 1:
        raise ValueError("validation period must be at least one day")
    start = anchor + offset
    return ValidationPeriod(start=start, end=start + timedelta(days=days))


class LedgerTransactor:
    """Issues P-chain transactions in a wallet-consistent order.

    Real (non-dry) calls wait for acceptance. Calls are serialized on one lock
    because the wallet spends from a single account.
    """

    def __init__(
        self,
        wallet: PChainWallet,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._wallet = wallet
        self._clock = clock
        self._lock = asyncio.Lock()

    @property
    def wallet(self) -> PChainWallet:
        return self._wallet

    async def _issue(self, operation: str, target: str | None, call):
        async with self._lock:
            try:
                return await call()
            except DeploymentError:
                raise
            except Exception as exc:
                raise TransactionError(operation, str(exc) or type(exc).__name__, target) from exc

    async def register_primary_validator(
        self,
        node_id: str,
        stake_amount: int,
        period_days: int,
        now: datetime | None = None,
    ) -> ValidatorRegistration:
        """Add ``node_id`` as a primary network validator staking ``stake_amount`` AVAX."""
        period = validation_period(now or self._clock(), period_days)
        tx_id, added = await self._issue(
            "register-primary-validator",
            node_id,
            lambda: self._wallet.add_validator(
                node_id=node_id,
                stake_amount=avax_to_navax(stake_amount),
                start=period.start,
                end=period.end,
                check_acceptance=True,
            ),
        )
        logger.info(
            "validator tx id %s for %s, added %s (validates %d..%d)",
            tx_id,
            node_id,
            added,
            to_unix_seconds(period.start),
            to_unix_seconds(period.end),
        )
        return ValidatorRegistration(node_id=node_id, tx_id=tx_id, added=added, period=period)

    async def create_subnet(self, dry: bool) -> SubnetRecord | None:
        subnet_id = await self._issue(
            "create-subnet",
            None,
            lambda: self._wallet.create_subnet(dry_mode=dry, check_acceptance=not dry),
        )
        if dry:
            logger.info("[dry mode] subnet id '%s'", subnet_id)
            return None
        logger.info("created subnet '%s'", subnet_id)
        return SubnetRecord(subnet_id=subnet_id)

    async def create_chain(
        self,
        subnet_id: str,
        genesis_bytes: bytes,
        vm_id: str,
        name: str,
        dry: bool,
    ) -> ChainRecord | None:
        blockchain_id = await self._issue(
            "create-chain",
            subnet_id,
            lambda: self._wallet.create_chain(
                subnet_id=subnet_id,
                genesis_data=genesis_bytes,
                vm_id=vm_id,
                chain_name=name,
                dry_mode=dry,
                check_acceptance=not dry,
            ),
        )
        if dry:
            logger.info("[dry mode] blockchain id %s for subnet %s", blockchain_id, subnet_id)
            return None
        logger.info("created blockchain %s for subnet %s", blockchain_id, subnet_id)
        return ChainRecord(blockchain_id=blockchain_id, vm_id=vm_id, subnet_id=subnet_id)

    async def register_subnet_validator(
        self,
        node_id: str,
        subnet_id: str,
        period_days: int,
        now: datetime | None = None,
    ) -> ValidatorRegistration:
        """Add ``node_id`` as a validator of ``subnet_id``.

        Callers pass one day less than the primary registration so the subnet
        validation ends before the primary one does.
        """
        period = validation_period(now or self._clock(), period_days)
        tx_id, added = await self._issue(
            "register-subnet-validator",
            node_id,
            lambda: self._wallet.add_subnet_validator(
                node_id=node_id,
                subnet_id=subnet_id,
                start=period.start,
                end=period.end,
                check_acceptance=True,
            ),
        )
        logger.info(
            "subnet validator tx id %s for %s on %s, added %s (validates %d..%d)",
            tx_id,
            node_id,
            subnet_id,
            added,
            to_unix_seconds(period.start),
            to_unix_seconds(period.end),
        )
        return ValidatorRegistration(
            node_id=node_id,
            tx_id=tx_id,
            added=added,
            period=period,
            subnet_id=subnet_id,
        )
