"""Pure money and capacity arithmetic for event funding."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from .errors import DivisionByZeroError, InvalidInputError

CENT = Decimal("0.01")
_HUNDRED = Decimal(100)


def quantize(amount: Decimal | int | float | str) -> Decimal:
    """Round to currency precision (2 dp, half-up)."""

    return Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)


def price_per_player(total_cost: Decimal, max_players: int) -> Decimal:
    if max_players <= 0:
        raise InvalidInputError("max_players must be greater than zero")
    return quantize(Decimal(total_cost) / Decimal(max_players))


def collected_amount(succeeded_count: int, price: Decimal) -> Decimal:
    return quantize(Decimal(succeeded_count) * Decimal(price))


def available_spots(max_players: int, succeeded_count: int) -> int:
    return max(0, max_players - succeeded_count)


def funding_percentage(collected: Decimal, total_cost: Decimal) -> Decimal:
    total = Decimal(total_cost)
    if total == 0:
        raise DivisionByZeroError("total_cost must be positive to compute funding percentage")
    return quantize(Decimal(collected) / total * _HUNDRED)


def to_minor_units(amount: Decimal) -> int:
    """Convert a currency amount to integer minor units (grosze/cents)."""

    return int((quantize(amount) * _HUNDRED).to_integral_value(rounding=ROUND_HALF_UP))


def platform_fee(amount: Decimal, percent: Decimal) -> int:
    """Application fee in minor units for a charge of ``amount``."""

    fee = Decimal(to_minor_units(amount)) * Decimal(percent) / _HUNDRED
    return int(fee.to_integral_value(rounding=ROUND_HALF_UP))


__all__ = [
    "CENT",
    "available_spots",
    "collected_amount",
    "funding_percentage",
    "platform_fee",
    "price_per_player",
    "quantize",
    "to_minor_units",
]
