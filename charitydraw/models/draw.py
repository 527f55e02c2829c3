"""Database models for draw cycles, their winners and draw configuration."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates

from .base import Base
from .enums import (
    DrawStatus,
    PaymentStatus,
    VerificationStatus,
    status_column_type,
)
from .id_type import ID_TYPE, MONEY

if TYPE_CHECKING:
    from .settlement import Donation
    from .subscriber import Charity, Subscriber


ZERO = Decimal("0.00")


class DrawSettings(Base):
    """Global prize configuration. A single row is expected."""

    __tablename__ = "draw_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    base_amount_per_subscriber: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("10.00")
    )
    """Share of each subscription that funds the prize pool."""

    tier1_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=40)
    tier2_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=35)
    tier3_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=25)

    jackpot_cap: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("250000.00")
    )
    """Ceiling on the 5-match pool; anything above spills into tier 2."""

    score_range_min: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    score_range_max: Mapped[int] = mapped_column(Integer, nullable=False, default=45)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def validate(self) -> None:
        """Raise ``ValueError`` unless the settings describe a usable draw."""

        percents = (self.tier1_percent, self.tier2_percent, self.tier3_percent)
        if any(p is None or p < 0 for p in percents):
            raise ValueError("Tier percentages must be non-negative")
        if sum(percents) != 100:
            raise ValueError(
                f"Tier percentages must sum to 100, got {sum(percents)}"
            )
        if self.base_amount_per_subscriber is None or self.base_amount_per_subscriber < 0:
            raise ValueError("base_amount_per_subscriber must be non-negative")
        if self.jackpot_cap is None or self.jackpot_cap < 0:
            raise ValueError("jackpot_cap must be non-negative")
        if self.score_range_min > self.score_range_max:
            raise ValueError("score_range_min must not exceed score_range_max")

    @classmethod
    def load(cls, session: Session) -> "DrawSettings":
        """Return the settings row, creating it with defaults on first use."""

        settings = session.scalars(select(cls).order_by(cls.id.asc())).first()
        if settings is None:
            settings = cls(
                base_amount_per_subscriber=Decimal("10.00"),
                tier1_percent=40,
                tier2_percent=35,
                tier3_percent=25,
                jackpot_cap=Decimal("250000.00"),
                score_range_min=1,
                score_range_max=45,
            )
            session.add(settings)
            session.flush()
        return settings


class JackpotTracker(Base):
    """Running tier-1 carryover consumed by the next finalized draw."""

    __tablename__ = "jackpot_tracker"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    amount: Mapped[Decimal] = mapped_column(default=ZERO)
    last_draw_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("draw_cycles.id", ondelete="SET NULL"), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @classmethod
    def load(cls, session: Session) -> "JackpotTracker":
        """Return the tracker row, creating an empty one on first use."""

        tracker = session.scalars(select(cls).order_by(cls.id.asc())).first()
        if tracker is None:
            tracker = cls(amount=ZERO)
            session.add(tracker)
            session.flush()
        return tracker


class DrawCycle(Base):
    """One monthly prize round, keyed by its ``month_year`` label."""

    __tablename__ = "draw_cycles"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    month_year: Mapped[str] = mapped_column(String(32), nullable=False)
    """Calendar label such as ``"January 2025"``."""

    status: Mapped[DrawStatus] = mapped_column(
        status_column_type(DrawStatus, "draw_status"),
        nullable=False,
        default=DrawStatus.OPEN,
    )

    score_range_min: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    score_range_max: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    winning_numbers: Mapped[Optional[list[int]]] = mapped_column(JSON, nullable=True)
    """Ascending winning numbers; ``None`` until finalized."""

    participants_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    subscriber_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    prize_pool: Mapped[Decimal] = mapped_column(default=ZERO)
    """Base pool funded by this cycle's subscribers (before carryover)."""

    jackpot_carryover_in: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=ZERO
    )
    tier1_pool: Mapped[Decimal] = mapped_column(default=ZERO)
    tier2_pool: Mapped[Decimal] = mapped_column(default=ZERO)
    tier3_pool: Mapped[Decimal] = mapped_column(default=ZERO)
    cap_excess: Mapped[Decimal] = mapped_column(default=ZERO)
    jackpot_cap_reached: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    jackpot_rollover: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=ZERO
    )
    """Unclaimed tier-1 pool handed to the next cycle."""

    tier1_winners: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tier2_winners: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tier3_winners: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    drawn_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    published_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    """Row version for optimistic concurrency control."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    winners: Mapped[list["WinnerEntry"]] = relationship(
        back_populates="draw",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="WinnerEntry.id",
    )
    """Winner rows owned by this cycle; removed on reset."""

    donations: Mapped[list["Donation"]] = relationship(
        back_populates="draw",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        UniqueConstraint("month_year", name="uq_draw_cycles_month_year"),
        Index("ix_draw_cycles_status", "status"),
    )

    @property
    def is_published(self) -> bool:
        return self.status is DrawStatus.PUBLISHED

    def clear_results(self) -> None:
        """Return every computed field to its pre-draw value."""

        self.score_range_min = None
        self.score_range_max = None
        self.winning_numbers = None
        self.participants_count = 0
        self.subscriber_count = 0
        self.prize_pool = ZERO
        self.jackpot_carryover_in = ZERO
        self.tier1_pool = ZERO
        self.tier2_pool = ZERO
        self.tier3_pool = ZERO
        self.cap_excess = ZERO
        self.jackpot_cap_reached = False
        self.jackpot_rollover = ZERO
        self.tier1_winners = 0
        self.tier2_winners = 0
        self.tier3_winners = 0
        self.drawn_at = None
        self.published_at = None

    @classmethod
    def get_by_month_year(
        cls, session: Session, month_year: str
    ) -> Optional["DrawCycle"]:
        """Return the cycle labelled ``month_year`` if it exists."""

        return session.scalar(select(cls).where(cls.month_year == month_year))

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<DrawCycle(id={id}, month_year={label}, status={status})>".format(
            id=self.id,
            label=self.month_year,
            status=self.status.value if self.status else None,
        )


class WinnerEntry(Base):
    """A subscriber who matched three or more winning numbers in a draw."""

    __tablename__ = "winner_entries"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)

    draw_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("draw_cycles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subscriber_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("subscribers.id", ondelete="CASCADE"), nullable=False
    )
    charity_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("charities.id", ondelete="SET NULL"), nullable=True
    )

    tier: Mapped[int] = mapped_column(Integer, nullable=False)
    """1 = five matches, 2 = four matches, 3 = three matches."""

    match_count: Mapped[int] = mapped_column(Integer, nullable=False)
    scores: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    """Snapshot of the scores that took part in the draw."""

    matched_numbers: Mapped[list[int]] = mapped_column(
        JSON, nullable=False, default=list
    )

    gross_prize: Mapped[Decimal] = mapped_column(default=ZERO)
    charity_amount: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=ZERO
    )
    net_payout: Mapped[Decimal] = mapped_column(default=ZERO)

    verification_status: Mapped[VerificationStatus] = mapped_column(
        status_column_type(VerificationStatus, "verification_status"),
        nullable=False,
        default=VerificationStatus.PENDING,
    )
    verified_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    verified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    payment_status: Mapped[PaymentStatus] = mapped_column(
        status_column_type(PaymentStatus, "payment_status"),
        nullable=False,
        default=PaymentStatus.UNPAID,
    )
    payment_reference: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    paid_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    draw: Mapped["DrawCycle"] = relationship(back_populates="winners")
    subscriber: Mapped["Subscriber"] = relationship(back_populates="winnings")
    charity: Mapped[Optional["Charity"]] = relationship()

    __table_args__ = (
        UniqueConstraint("draw_id", "subscriber_id", name="uq_winner_entry_per_draw"),
        Index("ix_winner_entries_verification_status", "verification_status"),
    )

    def __init__(
        self,
        *,
        tier: int,
        match_count: int,
        gross_prize: Decimal,
        charity_amount: Decimal = ZERO,
        draw: Optional["DrawCycle"] = None,
        draw_id: Optional[int] = None,
        subscriber_id: Optional[int] = None,
        charity_id: Optional[int] = None,
        scores: Optional[list[int]] = None,
        matched_numbers: Optional[list[int]] = None,
        verification_status: VerificationStatus = VerificationStatus.PENDING,
        payment_status: PaymentStatus = PaymentStatus.UNPAID,
    ) -> None:
        if draw is not None:
            self.draw = draw
        if draw_id is not None:
            self.draw_id = draw_id
        self.subscriber_id = subscriber_id
        self.charity_id = charity_id
        self.tier = tier
        self.match_count = match_count
        self.scores = list(scores or [])
        self.matched_numbers = list(matched_numbers or [])
        self.set_prize(gross_prize, charity_amount)
        self.verification_status = verification_status
        self.payment_status = payment_status

    @validates("tier")
    def _check_tier(self, _key: str, value: int) -> int:
        if value not in (1, 2, 3):
            raise ValueError("tier must be 1, 2 or 3")
        return value

    def set_prize(self, gross_prize: Decimal, charity_amount: Decimal) -> None:
        """Set the prize split, keeping ``net_payout`` derived from the others."""

        gross = Decimal(gross_prize)
        charity = Decimal(charity_amount)
        if charity < 0 or charity > gross:
            raise ValueError("charity_amount must be between 0 and gross_prize")
        self.gross_prize = gross
        self.charity_amount = charity
        self.net_payout = gross - charity

    @property
    def is_paid(self) -> bool:
        return self.payment_status is PaymentStatus.PAID

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<WinnerEntry(id={id}, draw_id={draw}, subscriber_id={sub}, tier={tier})>".format(
            id=self.id,
            draw=self.draw_id,
            sub=self.subscriber_id,
            tier=self.tier,
        )


__all__ = [
    "DrawSettings",
    "JackpotTracker",
    "DrawCycle",
    "WinnerEntry",
]
