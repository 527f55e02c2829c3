"""Charity donation and payout records."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from .enums import DonationStatus, PayoutStatus, status_column_type
from .id_type import ID_TYPE, MONEY

if TYPE_CHECKING:
    from .draw import DrawCycle
    from .subscriber import Charity


class Donation(Base):
    """Charity share of a single prize, awaiting settlement."""

    __tablename__ = "donations"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    charity_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("charities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    subscriber_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("subscribers.id", ondelete="SET NULL"), nullable=True
    )
    draw_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("draw_cycles.id", ondelete="CASCADE"), nullable=True, index=True
    )
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False, default="prize_split")
    status: Mapped[DonationStatus] = mapped_column(
        status_column_type(DonationStatus, "donation_status"),
        nullable=False,
        default=DonationStatus.PENDING,
    )
    charity_payout_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE,
        ForeignKey("charity_payouts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    """Payout this donation has been bundled into, if any."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    charity: Mapped["Charity"] = relationship()
    draw: Mapped[Optional["DrawCycle"]] = relationship(back_populates="donations")
    payout: Mapped[Optional["CharityPayout"]] = relationship(back_populates="donations")


class CharityPayout(Base):
    """A bundle of donations settled to one charity."""

    __tablename__ = "charity_payouts"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    charity_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("charities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    status: Mapped[PayoutStatus] = mapped_column(
        status_column_type(PayoutStatus, "payout_status"),
        nullable=False,
        default=PayoutStatus.PENDING,
    )
    payout_ref: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    admin_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
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

    charity: Mapped["Charity"] = relationship()
    donations: Mapped[list["Donation"]] = relationship(back_populates="payout")

    @property
    def source_donation_ids(self) -> set[int]:
        return {donation.id for donation in self.donations}

    @property
    def is_paid(self) -> bool:
        return self.status is PayoutStatus.PAID

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<CharityPayout(id={id}, charity_id={charity}, amount={amount}, status={status})>".format(
            id=self.id,
            charity=self.charity_id,
            amount=self.amount,
            status=self.status.value if self.status else None,
        )


__all__ = ["Donation", "CharityPayout"]
