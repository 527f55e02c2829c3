"""Score pool analysis: turn submitted scores into winning numbers."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Optional

from ..errors import NoValidScores

WINNING_NUMBER_COUNT = 5
LEAST_POPULAR_COUNT = 3
MOST_POPULAR_COUNT = 2


@dataclass(frozen=True)
class ScoreRangePreset:
    label: str
    range_min: int
    range_max: int


SCORE_RANGE_PRESETS: tuple[ScoreRangePreset, ...] = (
    ScoreRangePreset("Full Range (1-45)", 1, 45),
    ScoreRangePreset("Common (5-45)", 5, 45),
    ScoreRangePreset("Typical (10-40)", 10, 40),
    ScoreRangePreset("Conservative (15-38)", 15, 38),
    ScoreRangePreset("Narrow (18-36)", 18, 36),
)


def get_preset(label: str) -> ScoreRangePreset:
    """Return the preset whose label is ``label``."""
    for preset in SCORE_RANGE_PRESETS:
        if preset.label == label:
            return preset
    raise KeyError(f"Unknown score range preset '{label}'")


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of analysing a score pool.

    Attributes
    ----------
    winning_numbers : tuple[int, ...]
        Selected numbers in ascending order, without duplicates. Normally five
        long; shorter when fewer than five distinct scores were submitted.
    least_popular : tuple[int, ...]
        The (up to) three least frequent values, least frequent first.
    most_popular : tuple[int, ...]
        The (up to) two most frequent values, most frequent first.
    frequency : dict[int, int]
        Occurrences of every distinct in-range score.
    total_entries : int
        Number of in-range scores considered.
    range_min, range_max : int
        Inclusive range the scores were filtered to.
    """

    winning_numbers: tuple[int, ...]
    least_popular: tuple[int, ...]
    most_popular: tuple[int, ...]
    frequency: dict[int, int]
    total_entries: int
    range_min: int
    range_max: int

    @property
    def unique_scores(self) -> int:
        return len(self.frequency)

    @property
    def is_complete(self) -> bool:
        """``True`` when a full set of five winning numbers was drawn."""
        return len(self.winning_numbers) == WINNING_NUMBER_COUNT


def rank_by_popularity(frequency: dict[int, int]) -> list[int]:
    """Return distinct values from least to most frequent.

    Values with equal frequency are ordered by ascending value, which keeps the
    ranking (and therefore the draw) deterministic.
    """

    return [value for value, _ in sorted(frequency.items(), key=lambda kv: (kv[1], kv[0]))]


def analyze(
    scores: Iterable[int],
    range_min: int = 1,
    range_max: int = 45,
) -> AnalysisResult:
    """Select winning numbers from a pool of submitted scores.

    The three least popular and the two most popular in-range values are
    combined and sorted ascending. The function is pure: identical inputs
    always yield identical results.

    Parameters
    ----------
    scores : Iterable[int]
        Every score submitted by eligible subscribers for the cycle.
    range_min, range_max : int
        Inclusive bounds; scores outside are ignored.

    Returns
    -------
    AnalysisResult
        The selection and the frequency table it was derived from.

    Raises
    ------
    ValueError
        If ``range_min`` exceeds ``range_max``.
    NoValidScores
        If no score falls inside the range.
    """

    if range_min > range_max:
        raise ValueError("range_min must not exceed range_max")

    valid = [int(s) for s in scores if range_min <= s <= range_max]
    if not valid:
        raise NoValidScores(range_min, range_max)

    frequency = dict(Counter(valid))
    ranked = rank_by_popularity(frequency)

    least_popular = ranked[:LEAST_POPULAR_COUNT]
    # Most popular comes from whatever the least-popular pick left over so a
    # small pool never yields the same number twice.
    remaining = ranked[LEAST_POPULAR_COUNT:]
    most_popular = list(reversed(remaining[-MOST_POPULAR_COUNT:]))

    winning_numbers = tuple(sorted(least_popular + most_popular))
    return AnalysisResult(
        winning_numbers=winning_numbers,
        least_popular=tuple(least_popular),
        most_popular=tuple(most_popular),
        frequency=dict(sorted(frequency.items())),
        total_entries=len(valid),
        range_min=range_min,
        range_max=range_max,
    )


def analyze_participants(
    participants: Iterable[object],
    range_min: int = 1,
    range_max: int = 45,
    *,
    scores_attr: str = "scores",
) -> AnalysisResult:
    """Flatten the ``scores`` of each participant and run :func:`analyze`."""

    pool: list[int] = []
    for participant in participants:
        values: Optional[Iterable[int]] = getattr(participant, scores_attr, None)
        if values:
            pool.extend(values)
    return analyze(pool, range_min, range_max)


__all__ = [
    "AnalysisResult",
    "ScoreRangePreset",
    "SCORE_RANGE_PRESETS",
    "WINNING_NUMBER_COUNT",
    "analyze",
    "analyze_participants",
    "get_preset",
    "rank_by_popularity",
]
