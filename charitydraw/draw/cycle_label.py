"""Helpers for the ``"January 2025"`` style labels that key draw cycles."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

LABEL_FORMAT = "%B %Y"


def _normalize_label(label: str) -> str:
    """Trim and collapse whitespace in a raw month-year label.

    Parameters
    ----------
    label : str
        Raw label captured from an admin or the database.
    """

    if label is None:
        raise ValueError("month-year label must not be None")
    if not isinstance(label, str):
        raise TypeError("month-year label must be a string")
    normalized = " ".join(label.split())
    if not normalized:
        raise ValueError("month-year label must not be empty")
    return normalized


def parse_month_year(label: str) -> date:
    """Return the first day of the month named by ``label``.

    Parameters
    ----------
    label : str
        Calendar label such as ``"January 2025"``; matching is
        case-insensitive.

    Returns
    -------
    date
        ``date(year, month, 1)``.

    Raises
    ------
    ValueError
        If the label is not a full English month name followed by a year.
    """

    normalized = _normalize_label(label)
    try:
        parsed = datetime.strptime(normalized, LABEL_FORMAT)
    except ValueError as exc:
        raise ValueError(f"Invalid month-year label: {label!r}") from exc
    return parsed.date().replace(day=1)


def format_month_year(value: date) -> str:
    """Return the canonical label for the month containing ``value``."""

    return value.strftime(LABEL_FORMAT)


def canonical_month_year(label: str) -> str:
    """Return ``label`` re-rendered in canonical form (``"january 2025"`` -> ``"January 2025"``)."""

    return format_month_year(parse_month_year(label))


def next_month_year(label: str) -> str:
    """Return the label of the month following ``label``."""

    first = parse_month_year(label)
    if first.month == 12:
        following = first.replace(year=first.year + 1, month=1)
    else:
        following = first.replace(month=first.month + 1)
    return format_month_year(following)


def is_future_cycle(label: str, today: Optional[date] = None) -> bool:
    """Return ``True`` when the month named by ``label`` starts after ``today``'s month."""

    reference = (today or date.today()).replace(day=1)
    return parse_month_year(label) > reference


__all__ = [
    "parse_month_year",
    "format_month_year",
    "canonical_month_year",
    "next_month_year",
    "is_future_cycle",
]
