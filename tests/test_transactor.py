from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from subnet_deployer.errors import TransactionError
from subnet_deployer.ledger.transactor import (
    VALIDATION_START_OFFSET,
    LedgerTransactor,
    validation_period,
)
from subnet_deployer.ledger.units import avax_to_navax, navax_to_avax
from subnet_deployer.ledger.wallet import PChainWallet

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class RecordingWallet:
    def __init__(self, fail_on: str | None = None) -> None:
        self.calls: list[tuple[str, dict]] = []
        self._fail_on = fail_on

    @property
    def address(self) -> str:
        return "P-fuji1test"

    async def balance(self) -> int:
        return avax_to_navax(10_000)

    def _record(self, name: str, kwargs: dict) -> None:
        self.calls.append((name, kwargs))
        if name == self._fail_on:
            raise RuntimeError(f"{name} rejected")

    async def add_validator(self, **kwargs):
        self._record("add_validator", kwargs)
        return f"tx-{kwargs['node_id']}", True

    async def create_subnet(self, **kwargs):
        self._record("create_subnet", kwargs)
        return "dry-subnet" if kwargs["dry_mode"] else "subnet1"

    async def create_chain(self, **kwargs):
        self._record("create_chain", kwargs)
        return "dry-chain" if kwargs["dry_mode"] else "chain1"

    async def add_subnet_validator(self, **kwargs):
        self._record("add_subnet_validator", kwargs)
        return f"subnet-tx-{kwargs['node_id']}", False


def test_recording_wallet_satisfies_protocol() -> None:
    assert isinstance(RecordingWallet(), PChainWallet)


def test_validation_period_starts_after_offset() -> None:
    period = validation_period(NOW, 15)
    assert period.start == NOW + timedelta(days=60)
    assert period.end == period.start + timedelta(days=15)


def test_validation_period_rejects_zero_days() -> None:
    with pytest.raises(ValueError):
        validation_period(NOW, 0)


@pytest.mark.parametrize("days", [2, 15, 365])
def test_subnet_period_ends_one_day_before_primary(days: int) -> None:
    primary = validation_period(NOW, days)
    subnet = validation_period(NOW, days - 1)

    assert primary.start <= subnet.start
    assert subnet.end < primary.end
    assert primary.end - subnet.end == timedelta(days=1)


def test_units() -> None:
    assert avax_to_navax(2000) == 2_000_000_000_000
    assert str(navax_to_avax(1_500_000_000)) == "1.5"
    with pytest.raises(ValueError):
        avax_to_navax(-1)


@pytest.mark.asyncio
async def test_register_primary_validator_converts_stake() -> None:
    wallet = RecordingWallet()
    transactor = LedgerTransactor(wallet, clock=lambda: NOW)

    registration = await transactor.register_primary_validator("n1", 2000, 15)

    name, kwargs = wallet.calls[0]
    assert name == "add_validator"
    assert kwargs["stake_amount"] == 2_000_000_000_000
    assert kwargs["start"] == NOW + VALIDATION_START_OFFSET
    assert kwargs["end"] == NOW + timedelta(days=75)
    assert kwargs["check_acceptance"] is True
    assert registration.tx_id == "tx-n1"
    assert registration.added is True
    assert registration.subnet_id is None


@pytest.mark.asyncio
async def test_register_primary_validator_uses_explicit_anchor() -> None:
    wallet = RecordingWallet()
    transactor = LedgerTransactor(wallet, clock=lambda: NOW)
    anchor = NOW - timedelta(days=3)

    registration = await transactor.register_primary_validator("n1", 2000, 15, now=anchor)

    assert registration.period.start == anchor + timedelta(days=60)


@pytest.mark.asyncio
async def test_create_subnet_dry_returns_none() -> None:
    wallet = RecordingWallet()
    transactor = LedgerTransactor(wallet)

    assert await transactor.create_subnet(dry=True) is None
    record = await transactor.create_subnet(dry=False)

    assert record is not None
    assert record.subnet_id == "subnet1"
    assert [call[1] for call in wallet.calls] == [
        {"dry_mode": True, "check_acceptance": False},
        {"dry_mode": False, "check_acceptance": True},
    ]


@pytest.mark.asyncio
async def test_create_chain_passes_genesis_and_vm_id() -> None:
    wallet = RecordingWallet()
    transactor = LedgerTransactor(wallet)

    record = await transactor.create_chain("subnet1", b"{}", "vm1", "subnetevm", dry=False)

    assert record is not None
    assert record.blockchain_id == "chain1"
    assert record.vm_id == "vm1"
    assert record.subnet_id == "subnet1"
    _, kwargs = wallet.calls[0]
    assert kwargs["genesis_data"] == b"{}"
    assert kwargs["chain_name"] == "subnetevm"
    assert kwargs["check_acceptance"] is True


@pytest.mark.asyncio
async def test_register_subnet_validator() -> None:
    wallet = RecordingWallet()
    transactor = LedgerTransactor(wallet, clock=lambda: NOW)

    registration = await transactor.register_subnet_validator("n2", "subnet1", 14)

    assert registration.subnet_id == "subnet1"
    assert registration.added is False
    assert registration.period.end == NOW + timedelta(days=74)


@pytest.mark.asyncio
async def test_wallet_errors_become_transaction_errors() -> None:
    transactor = LedgerTransactor(RecordingWallet(fail_on="add_validator"))

    with pytest.raises(TransactionError) as exc_info:
        await transactor.register_primary_validator("n1", 2000, 15)

    assert exc_info.value.operation == "register-primary-validator"
    assert exc_info.value.target == "n1"
    assert "add_validator rejected" in exc_info.value.message
