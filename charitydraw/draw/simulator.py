"""Match participants against winning numbers and price their prizes."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from .money import ZERO, Amount, percent_of, split_evenly
from .pools import PoolBreakdown

TIER_BY_MATCH_COUNT = {5: 1, 4: 2, 3: 3}
DEFAULT_DONATION_PERCENT = Decimal("10")


@dataclass(frozen=True)
class Participant:
    """A subscriber's entry into a draw.

    ``donation_percent`` of any prize is deducted whether or not a
    ``charity_id`` is selected; only a selected charity receives it.
    """

    user_id: int
    scores: tuple[int, ...]
    charity_id: Optional[int] = None
    donation_percent: Decimal = DEFAULT_DONATION_PERCENT


@dataclass(frozen=True)
class MatchDetail:
    """Audit record of one participant's match against the winning numbers."""

    user_id: int
    scores: tuple[int, ...]
    matched_numbers: tuple[int, ...]
    match_count: int
    tier: Optional[int]
    charity_id: Optional[int] = None
    gross_prize: Decimal = ZERO
    charity_amount: Decimal = ZERO

    @property
    def net_payout(self) -> Decimal:
        return self.gross_prize - self.charity_amount

    @property
    def is_winner(self) -> bool:
        return self.tier is not None


@dataclass(frozen=True)
class TierSummary:
    tier: int
    pool: Decimal
    winner_count: int
    payout_per_winner: Decimal

    @property
    def total_paid(self) -> Decimal:
        return self.payout_per_winner * self.winner_count

    @property
    def unclaimed(self) -> Decimal:
        """Pool left unpaid because nobody reached this tier."""
        return self.pool if self.winner_count == 0 else ZERO


@dataclass(frozen=True)
class SimulationResult:
    """Outcome of matching every participant against the winning numbers.

    Attributes
    ----------
    winning_numbers : tuple[int, ...]
        Numbers the participants were matched against.
    tiers : dict[int, TierSummary]
        Winner count and per-winner payout for tiers 1-3.
    details : tuple[MatchDetail, ...]
        One entry per participant, in input order.
    jackpot_rollover : Decimal
        The tier-1 pool when nobody matched five, else zero. Tiers 2 and 3 do
        not roll over.
    """

    winning_numbers: tuple[int, ...]
    tiers: dict[int, TierSummary]
    details: tuple[MatchDetail, ...]
    jackpot_rollover: Decimal
    pools: PoolBreakdown = field(repr=False)

    @property
    def winners(self) -> tuple[MatchDetail, ...]:
        return tuple(d for d in self.details if d.is_winner)

    @property
    def total_participants(self) -> int:
        return len(self.details)

    @property
    def total_winners(self) -> int:
        return sum(t.winner_count for t in self.tiers.values())

    def winner_count(self, tier: int) -> int:
        return self.tiers[tier].winner_count

    def payout(self, tier: int) -> Decimal:
        return self.tiers[tier].payout_per_winner


def match_numbers(scores: Iterable[int], winning_numbers: Iterable[int]) -> tuple[int, ...]:
    """Return the distinct winning numbers present in ``scores``, ascending.

    A value repeated in ``scores`` counts once.
    """

    return tuple(sorted(set(scores) & set(winning_numbers)))


def tier_for_match_count(count: int) -> Optional[int]:
    return TIER_BY_MATCH_COUNT.get(count)


def charity_share(gross_prize: Amount, donation_percent: Amount) -> Decimal:
    """Return the charity deduction from a gross prize, rounded to cents."""

    pct = Decimal(donation_percent)
    if pct < 0 or pct > 100:
        raise ValueError("donation_percent must be between 0 and 100")
    return percent_of(gross_prize, pct)


def simulate(
    participants: Sequence[Participant],
    winning_numbers: Sequence[int],
    pools: PoolBreakdown,
) -> SimulationResult:
    """Classify participants into tiers and compute what each winner receives.

    Each tier's pool is split evenly across its winners and rounded to cents;
    the rounding remainder stays in the pool. A participant's charity share is
    deducted from their gross prize.

    Parameters
    ----------
    participants : Sequence[Participant]
        Every eligible entry for the cycle.
    winning_numbers : Sequence[int]
        Numbers drawn by :func:`charitydraw.draw.analyzer.analyze`.
    pools : PoolBreakdown
        Tier pools from :func:`charitydraw.draw.pools.compute_pools`.

    Returns
    -------
    SimulationResult
        Per-participant details and per-tier aggregates.
    """

    winning = tuple(sorted(set(winning_numbers)))

    matched: list[tuple[Participant, tuple[int, ...], Optional[int]]] = []
    counts = {1: 0, 2: 0, 3: 0}
    for participant in participants:
        numbers = match_numbers(participant.scores, winning)
        tier = tier_for_match_count(len(numbers))
        if tier is not None:
            counts[tier] += 1
        matched.append((participant, numbers, tier))

    tiers = {
        tier: TierSummary(
            tier=tier,
            pool=pools.pool_for_tier(tier),
            winner_count=counts[tier],
            payout_per_winner=split_evenly(pools.pool_for_tier(tier), counts[tier]),
        )
        for tier in (1, 2, 3)
    }

    details: list[MatchDetail] = []
    for participant, numbers, tier in matched:
        gross = tiers[tier].payout_per_winner if tier is not None else ZERO
        charity_amount = ZERO
        if tier is not None:
            charity_amount = charity_share(gross, participant.donation_percent)
        details.append(
            MatchDetail(
                user_id=participant.user_id,
                scores=tuple(participant.scores),
                matched_numbers=numbers,
                match_count=len(numbers),
                tier=tier,
                charity_id=participant.charity_id,
                gross_prize=gross,
                charity_amount=charity_amount,
            )
        )

    jackpot_rollover = tiers[1].pool if counts[1] == 0 else ZERO
    return SimulationResult(
        winning_numbers=winning,
        tiers=tiers,
        details=tuple(details),
        jackpot_rollover=jackpot_rollover,
        pools=pools,
    )


__all__ = [
    "Participant",
    "MatchDetail",
    "TierSummary",
    "SimulationResult",
    "match_numbers",
    "tier_for_match_count",
    "charity_share",
    "simulate",
]
