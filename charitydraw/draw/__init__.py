"""Pure draw computations: score analysis, prize pools and payouts."""

from .analyzer import (
    SCORE_RANGE_PRESETS,
    AnalysisResult,
    ScoreRangePreset,
    analyze,
    analyze_participants,
    get_preset,
)
from .cycle_label import (
    canonical_month_year,
    format_month_year,
    is_future_cycle,
    next_month_year,
    parse_month_year,
)
from .pools import PoolBreakdown, TierPercents, compute_pools
from .simulator import (
    MatchDetail,
    Participant,
    SimulationResult,
    TierSummary,
    match_numbers,
    simulate,
)

__all__ = [
    "AnalysisResult",
    "ScoreRangePreset",
    "SCORE_RANGE_PRESETS",
    "analyze",
    "analyze_participants",
    "get_preset",
    "canonical_month_year",
    "format_month_year",
    "is_future_cycle",
    "next_month_year",
    "parse_month_year",
    "PoolBreakdown",
    "TierPercents",
    "compute_pools",
    "MatchDetail",
    "Participant",
    "SimulationResult",
    "TierSummary",
    "match_numbers",
    "simulate",
]
