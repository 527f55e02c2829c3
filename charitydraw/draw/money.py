"""Currency helpers: two-decimal, half-up rounding on ``Decimal`` values."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Amount = Union[Decimal, int, str]


def to_money(value: Amount) -> Decimal:
    """Convert ``value`` to a ``Decimal`` rounded half-up to cents.

    Floats are rejected because their binary representation makes half-up
    rounding unreliable (``2.675`` is stored as ``2.67499...``).
    """

    if isinstance(value, float):
        raise TypeError("monetary values must be Decimal, int or str, not float")
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount: Amount, percent: Amount) -> Decimal:
    """Return ``percent``% of ``amount`` rounded to cents."""

    return to_money(Decimal(amount) * Decimal(percent) / Decimal(100))


def split_evenly(amount: Amount, parts: int) -> Decimal:
    """Return one share of ``amount`` divided into ``parts``, rounded to cents.

    Rounding drift is not redistributed, so ``share * parts`` may differ from
    ``amount`` by up to half a cent per part.
    """

    if parts <= 0:
        return ZERO
    return to_money(Decimal(amount) / Decimal(parts))


def to_minor_units(amount: Amount) -> int:
    """Return ``amount`` in whole cents."""

    return int(to_money(amount) * 100)


__all__ = ["CENT", "ZERO", "to_money", "percent_of", "split_evenly", "to_minor_units"]
