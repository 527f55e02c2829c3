"""Draw Lifecycle Manager: the ``open -> completed -> published`` state machine."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .draw.analyzer import AnalysisResult, analyze_participants
from .draw.cycle_label import canonical_month_year, is_future_cycle, next_month_year
from .draw.money import to_money
from .draw.pools import PoolBreakdown, TierPercents, compute_pools
from .draw.simulator import Participant, SimulationResult, simulate
from .errors import (
    AlreadyFinalized,
    AnalysisRequired,
    CycleConflict,
    DrawEngineError,
    FutureCycleLocked,
    InsufficientDistinctScores,
    InvalidTransition,
    RecordNotFound,
    SettlementExists,
    UnverifiedWinnersRemain,
)
from .models import DrawCycle, DrawSettings, DrawStatus, VerificationStatus, WinnerEntry
from .repository import DrawRepository

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = (
    "base_amount_per_subscriber",
    "tier1_percent",
    "tier2_percent",
    "tier3_percent",
    "jackpot_cap",
    "score_range_min",
    "score_range_max",
)
MONEY_SETTINGS = ("base_amount_per_subscriber", "jackpot_cap")


def _whole_number_setting(name: str, value) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a whole number")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a whole number, got {value!r}") from exc
    if number != value and not isinstance(value, str):
        raise ValueError(f"{name} must be a whole number, got {value!r}")
    return number


@dataclass(frozen=True)
class DrawPreview:
    """Unpersisted outcome of :meth:`DrawLifecycleManager.run_analysis`.

    Attributes
    ----------
    draw_id : int
        Cycle the preview was computed for.
    draw_version : int
        Row version of the cycle at preview time. A preview taken before a
        reset cannot be finalized afterwards.
    analysis : AnalysisResult
        Winning numbers and the score frequency they came from.
    pools : PoolBreakdown
        Tier pools including the jackpot carryover read at preview time.
    simulation : SimulationResult
        Tier classification and prize amounts for every participant.
    subscriber_count : int
        Eligible subscribers funding the pool.
    """

    draw_id: int
    draw_version: int
    month_year: str
    analysis: AnalysisResult
    pools: PoolBreakdown
    simulation: SimulationResult
    subscriber_count: int
    participants: tuple[Participant, ...] = field(repr=False)

    @property
    def winning_numbers(self) -> tuple[int, ...]:
        return self.analysis.winning_numbers


@dataclass(frozen=True)
class PublishOutcome:
    draw: DrawCycle
    next_cycle: Optional[DrawCycle]
    next_cycle_error: Optional[str] = None
    expired_subscriptions: int = 0


@dataclass(frozen=True)
class ResetOutcome:
    draw: DrawCycle
    winners_deleted: int
    donations_deleted: int
    subscriptions_reactivated: int
    successor_deleted: Optional[str] = None


class DrawLifecycleManager:
    """Run, finalize, verify, publish and reset monthly draw cycles.

    Previews are kept per draw on the manager instance, so a manager should
    live as long as the admin session that runs the analysis and finalizes it.
    Nothing is committed here; the caller owns the transaction.
    """

    def __init__(
        self,
        session: Session,
        *,
        repository: Optional[DrawRepository] = None,
        clock: Optional[Callable[[], date]] = None,
    ) -> None:
        """Bind the manager to ``session``.

        Parameters
        ----------
        session : Session
            Active SQLAlchemy session used for every read and write.
        repository : Optional[DrawRepository], default: None
            Persistence collaborator; one over ``session`` is built if omitted.
        clock : Optional[Callable[[], date]], default: None
            Returns today's date for the future-cycle check. Defaults to
            :meth:`datetime.date.today`.
        """

        self._session = session
        self._repo = repository or DrawRepository(session)
        self._clock = clock or date.today
        self._previews: dict[int, DrawPreview] = {}

    @property
    def repository(self) -> DrawRepository:
        return self._repo

    # -------- cycles --------
    def current_cycle(self) -> Optional[DrawCycle]:
        """Return the open or completed cycle, re-read from the database."""
        return self._repo.current_cycle()

    def create_cycle(self, month_year: str, *, actor_id: Optional[str] = None) -> DrawCycle:
        """Return the cycle labelled ``month_year``, creating it if needed.

        Raises
        ------
        ValueError
            If ``month_year`` is not a valid label.
        CycleConflict
            If a different cycle is still open or awaiting publication.
        """
        label = canonical_month_year(month_year)
        existing = DrawCycle.get_by_month_year(self._session, label)
        if existing is not None:
            return existing

        blocking = self._repo.active_cycles_excluding(label)
        if blocking:
            raise CycleConflict(
                f"Cannot open {label}: {blocking[0].month_year} is still {blocking[0].status.value}"
            )

        draw, _ = self._repo.create_cycle(label, actor_id=actor_id)
        logger.info(f"Opened draw cycle {label} (id={draw.id})")
        return draw

    def _resolve_draw(self, draw_id: Optional[int]) -> DrawCycle:
        if draw_id is not None:
            return self._repo.get_draw(draw_id)
        draw = self._repo.current_cycle()
        if draw is None:
            raise RecordNotFound("draw_cycles", "current")
        return draw

    def get_preview(self, draw_id: int) -> Optional[DrawPreview]:
        return self._previews.get(draw_id)

    def discard_preview(self, draw_id: int) -> None:
        self._previews.pop(draw_id, None)

    # -------- analysis --------
    def run_analysis(
        self,
        range_min: Optional[int] = None,
        range_max: Optional[int] = None,
        draw_id: Optional[int] = None,
    ) -> DrawPreview:
        """Compute the draw outcome against live data without persisting it.

        Parameters
        ----------
        range_min, range_max : Optional[int]
            Inclusive score range. Missing bounds fall back to the draw
            settings.
        draw_id : Optional[int]
            Cycle to analyse; defaults to the current cycle.

        Returns
        -------
        DrawPreview
            The preview, also cached for :meth:`finalize_draft`.

        Raises
        ------
        AlreadyFinalized
            If the cycle is no longer open.
        FutureCycleLocked
            If the cycle's month has not started.
        NoValidScores
            If no eligible score lies in the range.
        InsufficientDistinctScores
            If fewer than five distinct scores lie in the range.
        """
        draw = self._resolve_draw(draw_id)
        if draw.status is not DrawStatus.OPEN:
            raise AlreadyFinalized(draw.id)
        if is_future_cycle(draw.month_year, self._clock()):
            raise FutureCycleLocked(draw.month_year)

        settings = self._repo.fetch_draw_settings()
        low = settings.score_range_min if range_min is None else range_min
        high = settings.score_range_max if range_max is None else range_max

        participants = self._repo.fetch_active_scores(draw)
        analysis = analyze_participants(participants, low, high)
        if not analysis.is_complete:
            raise InsufficientDistinctScores(low, high, analysis.unique_scores)

        subscriber_count = self._repo.fetch_active_subscriber_count(draw)
        pools = compute_pools(
            subscriber_count,
            settings.base_amount_per_subscriber,
            TierPercents(settings.tier1_percent, settings.tier2_percent, settings.tier3_percent),
            jackpot_carryover=self._repo.jackpot_amount(),
            jackpot_cap=settings.jackpot_cap,
        )
        simulation = simulate(participants, analysis.winning_numbers, pools)

        preview = DrawPreview(
            draw_id=draw.id,
            draw_version=draw.version,
            month_year=draw.month_year,
            analysis=analysis,
            pools=pools,
            simulation=simulation,
            subscriber_count=subscriber_count,
            participants=tuple(participants),
        )
        self._previews[draw.id] = preview
        logger.debug(
            f"Preview for {draw.month_year}: numbers={list(analysis.winning_numbers)} "
            f"winners={simulation.total_winners} pool={pools.total_available_pool}"
        )
        return preview

    def finalize_draft(
        self, draw_id: Optional[int] = None, *, actor_id: Optional[str] = None
    ) -> DrawCycle:
        """Persist the cached preview and move the draw to ``completed``.

        Winner entries, their charity donations and the jackpot tracker are
        written together with the status change.

        Raises
        ------
        AlreadyFinalized
            If the draw is already completed or published.
        AnalysisRequired
            If no preview exists for the draw at its current version.
        PersistenceConflict
            If another writer changed the draw since the preview was taken.
        """
        draw = self._resolve_draw(draw_id)
        if draw.status is not DrawStatus.OPEN:
            raise AlreadyFinalized(draw.id)
        if is_future_cycle(draw.month_year, self._clock()):
            raise FutureCycleLocked(draw.month_year)
        preview = self._previews.get(draw.id)
        if preview is None or preview.draw_version != draw.version:
            raise AnalysisRequired(draw.id)

        pools = preview.pools
        simulation = preview.simulation

        draw.score_range_min = preview.analysis.range_min
        draw.score_range_max = preview.analysis.range_max
        draw.winning_numbers = list(preview.analysis.winning_numbers)
        draw.participants_count = simulation.total_participants
        draw.subscriber_count = preview.subscriber_count
        draw.prize_pool = pools.base_pool
        draw.jackpot_carryover_in = pools.jackpot_carryover
        draw.tier1_pool = pools.tier1_pool
        draw.tier2_pool = pools.tier2_pool
        draw.tier3_pool = pools.tier3_pool
        draw.cap_excess = pools.cap_excess
        draw.jackpot_cap_reached = pools.cap_reached
        draw.jackpot_rollover = simulation.jackpot_rollover
        draw.tier1_winners = simulation.winner_count(1)
        draw.tier2_winners = simulation.winner_count(2)
        draw.tier3_winners = simulation.winner_count(3)
        draw.drawn_at = datetime.now(timezone.utc)
        # Status first so a concurrent finalize fails before any winner row is written.
        self._repo.update_draw_status(draw, DrawStatus.OPEN, DrawStatus.COMPLETED)

        winners = self._repo.persist_draft_winners(draw, simulation)
        self._repo.set_jackpot(simulation.jackpot_rollover, draw.id)
        self._repo.log(
            "draw_finalized",
            "draw_cycles",
            draw.id,
            actor_id=actor_id,
            details={
                "winning_numbers": list(preview.analysis.winning_numbers),
                "winners": len(winners),
                "jackpot_rollover": str(simulation.jackpot_rollover),
            },
        )
        self._repo.flush()
        self._previews.pop(draw.id, None)

        logger.info(
            f"Finalized draw {draw.month_year}: {len(winners)} winner(s), "
            f"rollover {simulation.jackpot_rollover}"
        )
        return draw

    # -------- verification and publication --------
    def verify_winner(
        self,
        winner_id: int,
        status: Union[VerificationStatus, str],
        actor_id: Optional[str] = None,
    ) -> WinnerEntry:
        """Record an admin's verification decision for a winner.

        Only winners of a ``completed`` draw can change verification status.
        """
        new_status = VerificationStatus(status)
        winner = self._repo.get_winner(winner_id)
        if winner.draw.status is not DrawStatus.COMPLETED:
            raise InvalidTransition(
                f"Winner {winner_id} belongs to a {winner.draw.status.value} draw"
            )
        previous = winner.verification_status
        self._repo.update_winner_verification(winner, new_status, actor_id)
        self._repo.log(
            "winner_verification",
            "winner_entries",
            winner.id,
            actor_id=actor_id,
            details={"from": previous.value, "to": new_status.value},
        )
        self._repo.flush()
        logger.info(f"Winner {winner.id} verification {previous.value} -> {new_status.value}")
        return winner

    def publish(
        self, draw_id: Optional[int] = None, *, actor_id: Optional[str] = None
    ) -> PublishOutcome:
        """Publish a completed draw whose winners are all verified.

        Monthly subscriptions bought for the draw are expired. The next
        month's cycle is then opened on a best-effort basis: if that fails the
        publish still stands and the error is reported on the outcome.

        Raises
        ------
        InvalidTransition
            If the draw is not ``completed``.
        UnverifiedWinnersRemain
            If any winner is not ``verified``.
        """
        draw = self._resolve_draw(draw_id)
        if draw.status is not DrawStatus.COMPLETED:
            raise InvalidTransition(
                f"Draw {draw.id} is {draw.status.value}; only completed draws can be published"
            )
        unverified = self._repo.unverified_winner_ids(draw.id)
        if unverified:
            raise UnverifiedWinnersRemain(draw.id, unverified)

        draw.published_at = datetime.now(timezone.utc)
        self._repo.update_draw_status(draw, DrawStatus.COMPLETED, DrawStatus.PUBLISHED)
        expired = self._repo.expire_subscriptions_for(draw)
        self._repo.log(
            "draw_published",
            "draw_cycles",
            draw.id,
            actor_id=actor_id,
            details={"expired_subscriptions": expired},
        )
        self._repo.flush()
        logger.info(f"Published draw {draw.month_year}; expired {expired} subscription(s)")

        next_label = next_month_year(draw.month_year)
        next_cycle: Optional[DrawCycle] = None
        error: Optional[str] = None
        try:
            with self._session.begin_nested():
                next_cycle = self.create_cycle(next_label, actor_id=actor_id)
        except (DrawEngineError, SQLAlchemyError) as exc:
            error = str(exc)
            logger.warning(f"Could not open next cycle {next_label} after publishing {draw.month_year}: {exc}")

        return PublishOutcome(
            draw=draw,
            next_cycle=next_cycle,
            next_cycle_error=error,
            expired_subscriptions=expired,
        )

    # -------- reset --------
    def reset(self, draw_id: int, *, actor_id: Optional[str] = None) -> ResetOutcome:
        """Irreversibly discard a draw's results and reopen it.

        Winner entries and donations are deleted, the jackpot tracker is
        restored to the amount the draw consumed, and subscriptions expired by
        its publication are reactivated. When a published draw is reset, its
        untouched successor cycle is deleted.

        Raises
        ------
        InvalidTransition
            If the draw is still open.
        SettlementExists
            If a winner has been paid or a donation bundled into a payout.
        CycleConflict
            If a later cycle has progressed past ``open``.
        """
        draw = self._repo.get_draw(draw_id)
        previous = draw.status
        if previous is DrawStatus.OPEN:
            raise InvalidTransition(f"Draw {draw.id} is open; there is nothing to reset")

        paid = self._repo.paid_winner_count(draw.id)
        linked = self._repo.linked_donation_count(draw.id)
        if paid or linked:
            raise SettlementExists(
                f"Draw {draw.id} has {paid} paid winner(s) and {linked} donation(s) "
                "already in charity payouts"
            )

        successor: Optional[DrawCycle] = None
        others = self._repo.active_cycles_excluding(draw.month_year)
        if previous is DrawStatus.PUBLISHED:
            successor = DrawCycle.get_by_month_year(
                self._session, next_month_year(draw.month_year)
            )
            if successor is not None and (
                successor.status is not DrawStatus.OPEN or successor.winners
            ):
                raise CycleConflict(
                    f"Cannot reset {draw.month_year}: {successor.month_year} is "
                    f"{successor.status.value}"
                )
            others = [c for c in others if successor is None or c.id != successor.id]
        if others:
            raise CycleConflict(
                f"Cannot reset {draw.month_year}: {others[0].month_year} is {others[0].status.value}"
            )

        logger.warning(f"Resetting draw {draw.month_year} (id={draw.id}) from {previous.value}")
        self._repo.set_jackpot(draw.jackpot_carryover_in)
        reactivated = self._repo.reactivate_subscriptions_for(draw)
        successor_label = None
        if successor is not None:
            successor_label = successor.month_year
            self._previews.pop(successor.id, None)
            self._repo.delete_cycle(successor)
        winners_deleted, donations_deleted = self._repo.delete_draw_results(draw)

        draw.clear_results()
        self._repo.update_draw_status(draw, previous, DrawStatus.OPEN)
        self._repo.log(
            "draw_reset",
            "draw_cycles",
            draw.id,
            actor_id=actor_id,
            details={
                "from": previous.value,
                "winners_deleted": winners_deleted,
                "donations_deleted": donations_deleted,
                "subscriptions_reactivated": reactivated,
                "successor_deleted": successor_label,
            },
        )
        self._repo.flush()
        self._previews.pop(draw.id, None)

        return ResetOutcome(
            draw=draw,
            winners_deleted=winners_deleted,
            donations_deleted=donations_deleted,
            subscriptions_reactivated=reactivated,
            successor_deleted=successor_label,
        )

    # -------- settings --------
    def update_draw_settings(self, *, actor_id: Optional[str] = None, **changes) -> DrawSettings:
        """Validate and apply changes to the global draw settings.

        Raises
        ------
        ValueError
            If a field is unknown or the resulting settings are invalid. The
            stored settings are left untouched in that case.
        """
        unknown = set(changes) - set(SETTINGS_FIELDS)
        if unknown:
            raise ValueError(f"Unknown draw settings: {', '.join(sorted(unknown))}")

        settings = self._repo.fetch_draw_settings()
        merged = {name: getattr(settings, name) for name in SETTINGS_FIELDS}
        for name, value in changes.items():
            if name in MONEY_SETTINGS:
                merged[name] = to_money(value)
            else:
                merged[name] = _whole_number_setting(name, value)
        DrawSettings(**merged).validate()

        for name, value in merged.items():
            setattr(settings, name, value)
        self._repo.log(
            "draw_settings_updated",
            "draw_settings",
            settings.id,
            actor_id=actor_id,
            details={k: str(v) if isinstance(v, Decimal) else v for k, v in changes.items()},
        )
        self._repo.flush()
        logger.info(f"Draw settings updated: {sorted(changes)}")
        return settings

    def winners(self, draw_id: int) -> list[WinnerEntry]:
        return self._repo.winners_for_draw(draw_id)


__all__ = [
    "DrawLifecycleManager",
    "DrawPreview",
    "PublishOutcome",
    "ResetOutcome",
]
