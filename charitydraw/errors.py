"""Exceptions raised by the draw and settlement services.

Every error is raised before any state is mutated, except
:class:`ExternalPaymentFailure`, which is raised after the pending record that
preceded the failed provider call has been rolled back.
"""

from __future__ import annotations

from typing import Optional


class DrawEngineError(Exception):
    """Base class for all draw/settlement errors."""


class NoValidScores(DrawEngineError):
    """No submitted score falls inside the requested range."""

    def __init__(self, range_min: int, range_max: int) -> None:
        super().__init__(f"No valid scores in range {range_min}-{range_max}")
        self.range_min = range_min
        self.range_max = range_max


class InsufficientDistinctScores(NoValidScores):
    """Fewer than five distinct scores, so a five-match tier is unreachable."""

    def __init__(self, range_min: int, range_max: int, distinct: int) -> None:
        DrawEngineError.__init__(
            self,
            f"Only {distinct} distinct scores in range {range_min}-{range_max}; "
            "five are needed to draw",
        )
        self.range_min = range_min
        self.range_max = range_max
        self.distinct = distinct


class FutureCycleLocked(DrawEngineError):
    """The cycle's month has not started yet."""

    def __init__(self, month_year: str) -> None:
        super().__init__(f"Draw for {month_year} is locked until that month starts")
        self.month_year = month_year


class AlreadyFinalized(DrawEngineError):
    """The draw already has persisted results; reset it first."""

    def __init__(self, draw_id: int) -> None:
        super().__init__(f"Draw {draw_id} is already finalized; reset it first")
        self.draw_id = draw_id


class UnverifiedWinnersRemain(DrawEngineError):
    """At least one winner of the draw is not verified."""

    def __init__(self, draw_id: int, winner_ids: list[int]) -> None:
        super().__init__(
            f"Draw {draw_id} has {len(winner_ids)} winner(s) not verified"
        )
        self.draw_id = draw_id
        self.winner_ids = winner_ids


class MissingReference(DrawEngineError, ValueError):
    """A manual settlement was attempted without a payment reference."""

    def __init__(self) -> None:
        super().__init__("A non-empty payment reference is required")


class ExternalPaymentFailure(DrawEngineError):
    """The payment provider could not start a payment session."""

    def __init__(self, message: str, *, record_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.record_id = record_id


class ExternalTimeout(ExternalPaymentFailure):
    """The payment provider did not answer within the configured timeout."""


class PersistenceConflict(DrawEngineError):
    """A concurrent writer changed the record first."""


class InvalidTransition(DrawEngineError):
    """The requested operation is not allowed in the record's current state."""


class AnalysisRequired(DrawEngineError):
    """Finalize was requested without a preview for the same draw."""

    def __init__(self, draw_id: int) -> None:
        super().__init__(f"Run an analysis for draw {draw_id} before finalizing")
        self.draw_id = draw_id


class CycleConflict(DrawEngineError):
    """Another cycle is still open or awaiting publication."""


class SettlementExists(DrawEngineError):
    """Money has already moved for records that an operation would delete."""


class RecordNotFound(DrawEngineError, LookupError):
    """A referenced record does not exist."""

    def __init__(self, table: str, record_id) -> None:
        super().__init__(f"{table} record {record_id!r} not found")
        self.table = table
        self.record_id = record_id


__all__ = [
    "DrawEngineError",
    "NoValidScores",
    "InsufficientDistinctScores",
    "FutureCycleLocked",
    "AlreadyFinalized",
    "UnverifiedWinnersRemain",
    "MissingReference",
    "ExternalPaymentFailure",
    "ExternalTimeout",
    "PersistenceConflict",
    "InvalidTransition",
    "AnalysisRequired",
    "CycleConflict",
    "SettlementExists",
    "RecordNotFound",
]
