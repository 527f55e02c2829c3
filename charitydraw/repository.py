"""Persistence operations used by the lifecycle and settlement services.

All writes go through the caller's :class:`~sqlalchemy.orm.Session`; the
repository flushes so that constraint and version conflicts surface at the
point of the write, but never commits.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .draw.cycle_label import canonical_month_year
from .draw.money import ZERO, to_money
from .draw.simulator import Participant, SimulationResult
from .errors import PersistenceConflict, RecordNotFound
from .models import (
    ActivityLog,
    Charity,
    CharityPayout,
    Donation,
    DonationStatus,
    DrawCycle,
    DrawSettings,
    DrawStatus,
    JackpotTracker,
    PaymentStatus,
    PayoutStatus,
    Subscriber,
    Subscription,
    SubscriptionStatus,
    VerificationStatus,
    WinnerEntry,
)

logger = logging.getLogger(__name__)

SCORES_PER_ENTRY = 5
ACTIVE_DRAW_STATUSES = (DrawStatus.OPEN, DrawStatus.COMPLETED)


class DrawRepository:
    """SQLAlchemy-backed store for draws, winners, donations and payouts."""

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    # -------- helpers --------
    def flush(self) -> None:
        """Flush pending changes, reporting concurrent writes as conflicts."""
        try:
            self._session.flush()
        except StaleDataError as exc:
            raise PersistenceConflict(
                "Record was modified concurrently; reload and retry"
            ) from exc
        except IntegrityError as exc:
            raise PersistenceConflict(f"Write rejected by the database: {exc.orig}") from exc

    def log(
        self,
        action: str,
        subject_table: str,
        subject_id: Optional[int] = None,
        *,
        actor_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> ActivityLog:
        return ActivityLog.record(
            self._session,
            action,
            subject_table,
            subject_id,
            actor_id=actor_id,
            details=details,
        )

    # -------- draw cycles --------
    def get_draw(self, draw_id: int) -> DrawCycle:
        draw = self._session.get(DrawCycle, draw_id, populate_existing=True)
        if draw is None:
            raise RecordNotFound("draw_cycles", draw_id)
        return draw

    def current_cycle(self) -> Optional[DrawCycle]:
        """Return the cycle that is open or awaiting publication, if any."""

        stmt = (
            select(DrawCycle)
            .where(DrawCycle.status.in_(ACTIVE_DRAW_STATUSES))
            .order_by(DrawCycle.id.desc())
            .execution_options(populate_existing=True)
        )
        return self._session.scalars(stmt).first()

    def list_cycles(self, *, statuses: Optional[Sequence[DrawStatus]] = None) -> list[DrawCycle]:
        stmt = select(DrawCycle).order_by(DrawCycle.id.desc())
        if statuses:
            stmt = stmt.where(DrawCycle.status.in_(list(statuses)))
        return list(self._session.scalars(stmt).all())

    def active_cycles_excluding(self, month_year: str) -> list[DrawCycle]:
        stmt = select(DrawCycle).where(
            DrawCycle.status.in_(ACTIVE_DRAW_STATUSES),
            DrawCycle.month_year != month_year,
        )
        return list(self._session.scalars(stmt).all())

    def create_cycle(
        self, month_year: str, *, actor_id: Optional[str] = None
    ) -> tuple[DrawCycle, bool]:
        """Return the cycle for ``month_year``, creating it ``open`` if missing.

        Returns
        -------
        tuple[DrawCycle, bool]
            The cycle and whether it was created by this call.
        """
        label = canonical_month_year(month_year)
        existing = DrawCycle.get_by_month_year(self._session, label)
        if existing is not None:
            return existing, False

        draw = DrawCycle(month_year=label, status=DrawStatus.OPEN)
        self._session.add(draw)
        self.flush()
        self.log(
            "draw_created",
            "draw_cycles",
            draw.id,
            actor_id=actor_id,
            details={"month_year": label},
        )
        return draw, True

    def delete_cycle(self, draw: DrawCycle) -> None:
        self._session.delete(draw)
        self.flush()

    def update_draw_status(
        self,
        draw: DrawCycle,
        expected: DrawStatus,
        new_status: DrawStatus,
    ) -> DrawCycle:
        """Compare-and-set the draw status.

        The version column makes the UPDATE conditional on nobody else having
        written the row since it was loaded.
        """
        if draw.status is not expected:
            raise PersistenceConflict(
                f"Draw {draw.id} is {draw.status.value}, expected {expected.value}"
            )
        draw.status = new_status
        self.flush()
        return draw

    # -------- scores and subscribers --------
    def _eligible_subscribers_stmt(self, draw: DrawCycle):
        return (
            select(Subscriber)
            .join(Subscription, Subscription.subscriber_id == Subscriber.id)
            .where(
                Subscriber.status == "active",
                Subscription.status == SubscriptionStatus.ACTIVE,
                or_(
                    Subscription.assigned_draw_id.is_(None),
                    Subscription.assigned_draw_id == draw.id,
                ),
            )
            .distinct()
            .order_by(Subscriber.id.asc())
        )

    def fetch_active_scores(self, draw: DrawCycle) -> list[Participant]:
        """Return one :class:`Participant` per eligible subscriber.

        Each participant carries their five most recent scores. Subscribers
        without scores are included; they fund the pool but cannot win.
        """
        participants: list[Participant] = []
        for subscriber in self._session.scalars(self._eligible_subscribers_stmt(draw)).all():
            participants.append(
                Participant(
                    user_id=subscriber.id,
                    scores=tuple(subscriber.recent_scores(self._session, SCORES_PER_ENTRY)),
                    charity_id=subscriber.charity_id,
                    donation_percent=Decimal(subscriber.donation_percent),
                )
            )
        return participants

    def fetch_active_subscriber_count(self, draw: DrawCycle) -> int:
        subquery = self._eligible_subscribers_stmt(draw).order_by(None).subquery()
        return int(self._session.scalar(select(func.count()).select_from(subquery)) or 0)

    def expire_subscriptions_for(self, draw: DrawCycle) -> int:
        """Expire monthly subscriptions bought for ``draw``; return how many."""
        result = self._session.execute(
            update(Subscription)
            .where(
                Subscription.plan == "monthly",
                Subscription.assigned_draw_id == draw.id,
                Subscription.status == SubscriptionStatus.ACTIVE,
            )
            .values(
                status=SubscriptionStatus.EXPIRED,
                draws_remaining=0,
                expired_by_draw_id=draw.id,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    def reactivate_subscriptions_for(self, draw: DrawCycle) -> int:
        """Undo :meth:`expire_subscriptions_for`; return how many were restored."""
        result = self._session.execute(
            update(Subscription)
            .where(Subscription.expired_by_draw_id == draw.id)
            .values(
                status=SubscriptionStatus.ACTIVE,
                draws_remaining=1,
                expired_by_draw_id=None,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    # -------- settings and jackpot --------
    def fetch_draw_settings(self) -> DrawSettings:
        return DrawSettings.load(self._session)

    def jackpot_amount(self) -> Decimal:
        return to_money(JackpotTracker.load(self._session).amount)

    def set_jackpot(self, amount: Decimal, draw_id: Optional[int] = None) -> JackpotTracker:
        tracker = JackpotTracker.load(self._session)
        tracker.amount = to_money(amount)
        if draw_id is not None:
            tracker.last_draw_id = draw_id
        self.flush()
        logger.info(f"Jackpot tracker set to {tracker.amount}")
        return tracker

    # -------- winners --------
    def persist_draft_winners(
        self, draw: DrawCycle, simulation: SimulationResult
    ) -> list[WinnerEntry]:
        """Create winner rows and their charity donations for ``draw``."""
        winners: list[WinnerEntry] = []
        for detail in simulation.winners:
            entry = WinnerEntry(
                draw=draw,
                subscriber_id=detail.user_id,
                charity_id=detail.charity_id,
                tier=detail.tier,
                match_count=detail.match_count,
                scores=list(detail.scores),
                matched_numbers=list(detail.matched_numbers),
                gross_prize=detail.gross_prize,
                charity_amount=detail.charity_amount,
            )
            self._session.add(entry)
            winners.append(entry)

            if detail.charity_id is not None and detail.charity_amount > ZERO:
                self._session.add(
                    Donation(
                        charity_id=detail.charity_id,
                        subscriber_id=detail.user_id,
                        draw=draw,
                        amount=detail.charity_amount,
                        source="prize_split",
                        status=DonationStatus.PENDING,
                    )
                )
        self.flush()
        return winners

    def get_winner(self, winner_id: int) -> WinnerEntry:
        winner = self._session.get(WinnerEntry, winner_id, populate_existing=True)
        if winner is None:
            raise RecordNotFound("winner_entries", winner_id)
        return winner

    def get_winners(self, winner_ids: Iterable[int]) -> list[WinnerEntry]:
        ids = list(dict.fromkeys(winner_ids))
        if not ids:
            return []
        stmt = (
            select(WinnerEntry)
            .where(WinnerEntry.id.in_(ids))
            .execution_options(populate_existing=True)
        )
        found = {w.id: w for w in self._session.scalars(stmt).all()}
        missing = [i for i in ids if i not in found]
        if missing:
            raise RecordNotFound("winner_entries", missing[0])
        return [found[i] for i in ids]

    def winners_for_draw(self, draw_id: int) -> list[WinnerEntry]:
        stmt = (
            select(WinnerEntry)
            .where(WinnerEntry.draw_id == draw_id)
            .order_by(WinnerEntry.tier.asc(), WinnerEntry.id.asc())
            .execution_options(populate_existing=True)
        )
        return list(self._session.scalars(stmt).all())

    def unverified_winner_ids(self, draw_id: int) -> list[int]:
        stmt = (
            select(WinnerEntry.id)
            .where(
                WinnerEntry.draw_id == draw_id,
                WinnerEntry.verification_status != VerificationStatus.VERIFIED,
            )
            .order_by(WinnerEntry.id.asc())
        )
        return list(self._session.scalars(stmt).all())

    def update_winner_verification(
        self,
        winner: WinnerEntry,
        status: VerificationStatus,
        actor_id: Optional[str],
    ) -> WinnerEntry:
        winner.verification_status = status
        winner.verified_by = actor_id
        winner.verified_at = datetime.now(timezone.utc)
        self.flush()
        return winner

    def mark_winner_paid(
        self, winner: WinnerEntry, reference: str, actor_id: Optional[str]
    ) -> WinnerEntry:
        winner.payment_status = PaymentStatus.PAID
        winner.payment_reference = reference
        winner.paid_by = actor_id
        winner.paid_at = datetime.now(timezone.utc)
        return winner

    def delete_draw_results(self, draw: DrawCycle) -> tuple[int, int]:
        """Delete winners and donations of ``draw``; return both counts."""
        winners = self._session.execute(
            delete(WinnerEntry)
            .where(WinnerEntry.draw_id == draw.id)
            .execution_options(synchronize_session="fetch")
        ).rowcount or 0
        donations = self._session.execute(
            delete(Donation)
            .where(Donation.draw_id == draw.id)
            .execution_options(synchronize_session="fetch")
        ).rowcount or 0
        self._session.expire(draw, ["winners", "donations"])
        return winners, donations

    def paid_winner_count(self, draw_id: int) -> int:
        stmt = select(func.count(WinnerEntry.id)).where(
            WinnerEntry.draw_id == draw_id,
            WinnerEntry.payment_status == PaymentStatus.PAID,
        )
        return int(self._session.scalar(stmt) or 0)

    def linked_donation_count(self, draw_id: int) -> int:
        stmt = select(func.count(Donation.id)).where(
            Donation.draw_id == draw_id,
            Donation.charity_payout_id.isnot(None),
        )
        return int(self._session.scalar(stmt) or 0)

    # -------- charities and payouts --------
    def get_charity(self, charity_id: int) -> Charity:
        charity = self._session.get(Charity, charity_id)
        if charity is None:
            raise RecordNotFound("charities", charity_id)
        return charity

    def get_payout(self, payout_id: int) -> CharityPayout:
        payout = self._session.get(CharityPayout, payout_id, populate_existing=True)
        if payout is None:
            raise RecordNotFound("charity_payouts", payout_id)
        return payout

    def pending_donations(self, charity_id: Optional[int] = None) -> list[Donation]:
        """Return donations not yet bundled into any payout."""
        stmt = (
            select(Donation)
            .where(
                Donation.status == DonationStatus.PENDING,
                Donation.charity_payout_id.is_(None),
            )
            .order_by(Donation.charity_id.asc(), Donation.id.asc())
        )
        if charity_id is not None:
            stmt = stmt.where(Donation.charity_id == charity_id)
        return list(self._session.scalars(stmt).all())

    def get_donations(self, donation_ids: Iterable[int]) -> list[Donation]:
        ids = list(dict.fromkeys(donation_ids))
        if not ids:
            return []
        found = {
            d.id: d
            for d in self._session.scalars(select(Donation).where(Donation.id.in_(ids))).all()
        }
        missing = [i for i in ids if i not in found]
        if missing:
            raise RecordNotFound("donations", missing[0])
        return [found[i] for i in ids]

    def create_payout(
        self,
        charity_id: int,
        donations: Sequence[Donation],
        *,
        reference: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> CharityPayout:
        """Bundle ``donations`` into a payout; ``paid`` when a reference is given."""
        amount = to_money(sum((Decimal(d.amount) for d in donations), ZERO))
        now = datetime.now(timezone.utc)
        payout = CharityPayout(
            charity_id=charity_id,
            amount=amount,
            status=PayoutStatus.PAID if reference else PayoutStatus.PENDING,
            payout_ref=reference,
            paid_at=now if reference else None,
            admin_id=actor_id,
        )
        self._session.add(payout)
        for donation in donations:
            donation.payout = payout
            if reference:
                donation.status = DonationStatus.PAID
        self.flush()
        return payout

    def mark_payout_paid(
        self, payout: CharityPayout, reference: str, actor_id: Optional[str]
    ) -> CharityPayout:
        payout.status = PayoutStatus.PAID
        payout.payout_ref = reference
        payout.paid_at = datetime.now(timezone.utc)
        if actor_id is not None:
            payout.admin_id = actor_id
        for donation in payout.donations:
            donation.status = DonationStatus.PAID
        self.flush()
        return payout

    def rollback_pending_record(self, payout_id: int) -> bool:
        """Unlink donations from a pending payout and delete it.

        Returns ``False`` when the payout no longer exists. Paid payouts are
        never rolled back.
        """
        payout = self._session.get(CharityPayout, payout_id)
        if payout is None:
            return False
        if payout.status is PayoutStatus.PAID:
            raise PersistenceConflict(f"Charity payout {payout_id} is already paid")
        for donation in list(payout.donations):
            donation.payout = None
            donation.status = DonationStatus.PENDING
        self._session.delete(payout)
        self.flush()
        return True


__all__ = ["DrawRepository", "SCORES_PER_ENTRY"]
