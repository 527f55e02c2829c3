"""Status variants shared by the draw and settlement models."""

from __future__ import annotations

import enum

from sqlalchemy import Enum


class DrawStatus(str, enum.Enum):
    OPEN = "open"
    COMPLETED = "completed"
    PUBLISHED = "published"


class VerificationStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"


class PayoutStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"


class DonationStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


def status_column_type(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Return a VARCHAR-backed column type that stores the enum *values*."""

    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )


__all__ = [
    "DrawStatus",
    "VerificationStatus",
    "PaymentStatus",
    "PayoutStatus",
    "DonationStatus",
    "SubscriptionStatus",
    "status_column_type",
]
