"""Subscriber-side records read by the draw engine.

These tables belong to the membership side of the platform. The draw engine
only reads scores and subscriptions, and flips monthly subscriptions to
expired (and back on reset).
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates

from .base import Base
from .enums import SubscriptionStatus, status_column_type
from .id_type import ID_TYPE

if TYPE_CHECKING:
    from .draw import WinnerEntry

SCORE_MIN = 1
SCORE_MAX = 45
DEFAULT_DONATION_PERCENT = Decimal("10")


class Charity(Base):
    """Charity that receives the donation share of prizes."""

    __tablename__ = "charities"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    payment_account_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    """Linked payment-provider account; enables the external settlement path."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    supporters: Mapped[list["Subscriber"]] = relationship(back_populates="charity")

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<Charity(id={self.id}, name={self.name!r})>"


class Subscriber(Base):
    """A paying member who submits scores."""

    __tablename__ = "subscribers"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, index=True, nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    charity_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("charities.id", ondelete="SET NULL"), nullable=True
    )
    donation_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=DEFAULT_DONATION_PERCENT
    )
    """Share of any prize (0-100) pledged to the selected charity."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    charity: Mapped[Optional["Charity"]] = relationship(back_populates="supporters")
    subscriptions: Mapped[list["Subscription"]] = relationship(
        back_populates="subscriber", cascade="all, delete-orphan"
    )
    scores: Mapped[list["Score"]] = relationship(
        back_populates="subscriber", cascade="all, delete-orphan"
    )
    winnings: Mapped[list["WinnerEntry"]] = relationship(back_populates="subscriber")

    @validates("email")
    def _normalize_email(self, _key: str, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        normalized = value.strip().lower()
        return normalized or None

    @validates("donation_percent")
    def _check_donation_percent(self, _key: str, value) -> Decimal:
        pct = Decimal(str(value))
        if pct < 0 or pct > 100:
            raise ValueError("donation_percent must be between 0 and 100")
        return pct

    def recent_scores(self, session: Session, limit: int = 5) -> list[int]:
        """Return the ``limit`` most recently played score values."""

        stmt = (
            select(Score.value)
            .where(Score.subscriber_id == self.id)
            .order_by(Score.played_on.desc(), Score.id.desc())
            .limit(limit)
        )
        return list(session.scalars(stmt).all())


class Subscription(Base):
    """Paid entitlement to take part in draws."""

    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    subscriber_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("subscribers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    plan: Mapped[str] = mapped_column(String(20), nullable=False, default="monthly")
    """``"monthly"`` plans cover one draw; ``"yearly"`` plans renew."""

    status: Mapped[SubscriptionStatus] = mapped_column(
        status_column_type(SubscriptionStatus, "subscription_status"),
        nullable=False,
        default=SubscriptionStatus.ACTIVE,
    )
    assigned_draw_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("draw_cycles.id", ondelete="SET NULL"), nullable=True
    )
    """Draw a monthly plan was bought for; ``None`` means any draw."""

    draws_remaining: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    expired_by_draw_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("draw_cycles.id", ondelete="SET NULL"), nullable=True
    )
    """Draw whose publication expired this subscription, if any."""

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

    subscriber: Mapped["Subscriber"] = relationship(back_populates="subscriptions")


class Score(Base):
    """A single submitted score (Stableford points, 1-45)."""

    __tablename__ = "scores"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    subscriber_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("subscribers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    value: Mapped[int] = mapped_column(Integer, nullable=False)
    played_on: Mapped[date] = mapped_column(
        Date, nullable=False, default=lambda: datetime.now(timezone.utc).date()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    subscriber: Mapped["Subscriber"] = relationship(back_populates="scores")

    @validates("value")
    def _check_value(self, _key: str, value: int) -> int:
        return validate_score(value)


def validate_score(value) -> int:
    """Return ``value`` as an int if it is a valid score, else raise.

    Raises
    ------
    ValueError
        If the value is not an integer within ``SCORE_MIN..SCORE_MAX``.
    """

    if isinstance(value, bool):
        raise ValueError("Score must be a number")
    try:
        score = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError("Score must be a number") from exc
    if score != value and not isinstance(value, str):
        raise ValueError("Score must be a whole number")
    if score < SCORE_MIN:
        raise ValueError(f"Score must be at least {SCORE_MIN}")
    if score > SCORE_MAX:
        raise ValueError(f"Score cannot exceed {SCORE_MAX}")
    return score


__all__ = [
    "Charity",
    "Subscriber",
    "Subscription",
    "Score",
    "validate_score",
    "SCORE_MIN",
    "SCORE_MAX",
    "DEFAULT_DONATION_PERCENT",
]
