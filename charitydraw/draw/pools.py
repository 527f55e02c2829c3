"""Prize pool calculation with a capped jackpot."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from .money import ZERO, Amount, percent_of, to_money


@dataclass(frozen=True)
class TierPercents:
    """Share of the base pool (in whole percent) assigned to each tier."""

    tier1: int
    tier2: int
    tier3: int

    def __post_init__(self) -> None:
        values = (self.tier1, self.tier2, self.tier3)
        if any(v < 0 for v in values):
            raise ValueError("Tier percentages must be non-negative")
        if sum(values) != 100:
            raise ValueError(f"Tier percentages must sum to 100, got {sum(values)}")


@dataclass(frozen=True)
class PoolBreakdown:
    """Pool amounts for one cycle.

    Attributes
    ----------
    base_pool : Decimal
        ``subscriber_count * base_amount_per_subscriber``.
    jackpot_carryover : Decimal
        Unclaimed tier-1 money brought in from the previous cycle.
    tier1_pool_raw : Decimal
        Tier-1 share of the base pool plus the carryover, before the cap.
    cap_excess : Decimal
        Amount above ``jackpot_cap`` moved from tier 1 to tier 2.
    tier1_pool, tier2_pool, tier3_pool : Decimal
        Final pools after applying the cap.
    jackpot_cap : Decimal
        Cap that was applied.
    """

    base_pool: Decimal
    jackpot_carryover: Decimal
    tier1_pool_raw: Decimal
    cap_excess: Decimal
    tier1_pool: Decimal
    tier2_pool: Decimal
    tier3_pool: Decimal
    jackpot_cap: Decimal

    @property
    def cap_reached(self) -> bool:
        return self.cap_excess > ZERO

    @property
    def total_available_pool(self) -> Decimal:
        return self.tier1_pool + self.tier2_pool + self.tier3_pool

    def pool_for_tier(self, tier: int) -> Decimal:
        try:
            return {1: self.tier1_pool, 2: self.tier2_pool, 3: self.tier3_pool}[tier]
        except KeyError as exc:
            raise ValueError(f"Unknown tier {tier}") from exc


def compute_pools(
    active_subscriber_count: int,
    base_amount_per_subscriber: Amount,
    tier_percents: TierPercents,
    jackpot_carryover: Amount = ZERO,
    jackpot_cap: Amount = Decimal("250000"),
) -> PoolBreakdown:
    """Split the cycle's funding into the three tier pools.

    Every intermediate amount is rounded half-up to cents, so the result
    matches what a ledger in whole cents would record.

    Parameters
    ----------
    active_subscriber_count : int
        Subscribers funding this cycle.
    base_amount_per_subscriber : Decimal
        Contribution of each subscriber to the prize pool.
    tier_percents : TierPercents
        Percentage split of the base pool.
    jackpot_carryover : Decimal, default: 0
        Tier-1 money rolled over from the previous cycle.
    jackpot_cap : Decimal, default: 250000
        Maximum tier-1 pool; the excess is added to tier 2.

    Returns
    -------
    PoolBreakdown
        Pools per tier together with the raw tier-1 figure and cap excess.
    """

    if active_subscriber_count < 0:
        raise ValueError("active_subscriber_count must be non-negative")

    per_subscriber = to_money(base_amount_per_subscriber)
    carryover = to_money(jackpot_carryover)
    cap = to_money(jackpot_cap)
    if per_subscriber < 0 or carryover < 0 or cap < 0:
        raise ValueError("Monetary inputs must be non-negative")

    base_pool = to_money(per_subscriber * active_subscriber_count)
    tier1_pool_raw = to_money(percent_of(base_pool, tier_percents.tier1) + carryover)

    if tier1_pool_raw > cap:
        cap_excess = to_money(tier1_pool_raw - cap)
        tier1_pool = cap
    else:
        cap_excess = ZERO
        tier1_pool = tier1_pool_raw

    tier2_pool = to_money(percent_of(base_pool, tier_percents.tier2) + cap_excess)
    tier3_pool = percent_of(base_pool, tier_percents.tier3)

    return PoolBreakdown(
        base_pool=base_pool,
        jackpot_carryover=carryover,
        tier1_pool_raw=tier1_pool_raw,
        cap_excess=cap_excess,
        tier1_pool=tier1_pool,
        tier2_pool=tier2_pool,
        tier3_pool=tier3_pool,
        jackpot_cap=cap,
    )


__all__ = ["TierPercents", "PoolBreakdown", "compute_pools"]
