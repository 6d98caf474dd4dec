"""
Expansion of blackout rules onto concrete dates.

A rule always blocks its anchor date. Recurring rules additionally block
later dates, bounded by ``occurrence_count`` (which includes the anchor):

- daily:   ``elapsed_days < occurrence_count``
- weekly:  ``elapsed_days % 7 == 0`` and ``elapsed_days // 7 < occurrence_count``
- monthly: same day of month and ``0 < months_between < occurrence_count``

Monthly rules anchored on a day that a shorter month lacks (e.g. the 31st)
skip that month. The skipped month still counts toward ``occurrence_count``.
"""

from datetime import date
from typing import Iterable, List

from .intervals import TimeRange
from .models import BlackoutRule, Recurrence


def blocked_interval_on(rule: BlackoutRule, candidate: date) -> TimeRange | None:
    """
    Return the interval the rule blocks on ``candidate``, or None.
    """
    if candidate == rule.anchor_date:
        return rule.time_range

    if not rule.is_recurring:
        return None

    elapsed_days = candidate.toordinal() - rule.anchor_date.toordinal()
    if elapsed_days <= 0:
        return None

    if _matches(rule, candidate, elapsed_days):
        return rule.time_range
    return None


def blocked_intervals_on(rules: Iterable[BlackoutRule], candidate: date) -> List[TimeRange]:
    """Collect the intervals of every rule that blocks time on ``candidate``."""
    blocked: List[TimeRange] = []
    for rule in rules:
        interval = blocked_interval_on(rule, candidate)
        if interval is not None:
            blocked.append(interval)
    return blocked


def _matches(rule: BlackoutRule, candidate: date, elapsed_days: int) -> bool:
    count = rule.occurrence_count

    if rule.recurrence is Recurrence.DAILY:
        return elapsed_days < count

    if rule.recurrence is Recurrence.WEEKLY:
        return elapsed_days % 7 == 0 and elapsed_days // 7 < count

    if rule.recurrence is Recurrence.MONTHLY:
        if candidate.day != rule.anchor_date.day:
            return False
        months = _months_between(rule.anchor_date, candidate)
        return 0 < months < count

    if rule.recurrence is Recurrence.NONE:
        return False

    raise ValueError(f"Unhandled recurrence: {rule.recurrence!r}")


def _months_between(start: date, end: date) -> int:
    """Whole calendar months from ``start`` to ``end`` (same day of month assumed)."""
    return (end.year - start.year) * 12 + (end.month - start.month)
