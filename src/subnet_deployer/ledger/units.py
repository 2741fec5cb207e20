"""P-chain denomination helpers."""

from __future__ import annotations

from decimal import Decimal

NANO_AVAX_PER_AVAX = 1_000_000_000


def avax_to_navax(amount: int) -> int:
    if amount < 0:
        raise ValueError("amount must not be negative")
    return amount * NANO_AVAX_PER_AVAX


def navax_to_avax(amount: int) -> Decimal:
    return Decimal(amount) / NANO_AVAX_PER_AVAX
