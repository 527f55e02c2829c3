from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .enums import (  # noqa: F401
    DonationStatus,
    DrawStatus,
    PaymentStatus,
    PayoutStatus,
    SubscriptionStatus,
    VerificationStatus,
)
from .subscriber import Charity, Score, Subscriber, Subscription  # noqa: F401
from .draw import DrawCycle, DrawSettings, JackpotTracker, WinnerEntry  # noqa: F401
from .settlement import CharityPayout, Donation  # noqa: F401
from .audit import ActivityLog  # noqa: F401

__all__ = [
    "Base",
    "DrawStatus",
    "VerificationStatus",
    "PaymentStatus",
    "PayoutStatus",
    "DonationStatus",
    "SubscriptionStatus",
    "Charity",
    "Subscriber",
    "Subscription",
    "Score",
    "DrawSettings",
    "JackpotTracker",
    "DrawCycle",
    "WinnerEntry",
    "Donation",
    "CharityPayout",
    "ActivityLog",
]
