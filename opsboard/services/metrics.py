"""
Aggregation primitives for dashboard metrics.

Percentages are whole numbers rounded half-up (0.5 -> 1), matching how the
dashboard has always displayed them. Division by zero yields 0.
"""

import math
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, List, Sequence

from opsboard.models.enums import InsightTrending, TrendDirection


@dataclass(frozen=True)
class Driver:
    """An issue tag ranked by how many flagged entities mention it."""
    issue: str
    impact: int
    frequency: int


@dataclass(frozen=True)
class Insight:
    title: str
    description: str
    impact: int
    trending: InsightTrending


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def round_to(value: float, places: int = 2) -> float:
    factor = 10 ** places
    return math.floor(value * factor + 0.5) / factor


def percentage(part: int, total: int) -> int:
    """``round(part / total * 100)``; 0 when ``total`` is 0."""
    if total <= 0:
        return 0
    return round_half_up(part / total * 100)


def rank_drivers(flagged_issue_lists: Sequence[Iterable[str]]) -> List[Driver]:
    """
    Rank issue tags among flagged entities.

    Each element of ``flagged_issue_lists`` is the issue set of one flagged
    entity; a tag counts once per entity. Impact is the share of flagged
    entities mentioning the tag. Ties keep first-seen order.
    """
    flagged_count = len(flagged_issue_lists)
    if flagged_count == 0:
        return []

    counts: Counter = Counter()
    for issues in flagged_issue_lists:
        counts.update(dict.fromkeys(issues, 1))

    drivers = [
        Driver(issue=issue, impact=percentage(count, flagged_count), frequency=count)
        for issue, count in counts.items()
    ]
    # sorted() is stable, so equal frequencies keep first-seen order
    return sorted(drivers, key=lambda d: -d.frequency)


def main_issue(drivers: Sequence[Driver], metric_label: str) -> Insight:
    """Narrative summary of the rank-1 driver for ``metric_label`` (e.g. "frustration")."""
    if not drivers:
        return Insight(
            title='No Issues Identified',
            description=f"No {metric_label} patterns have been detected in the analyzed conversations.",
            impact=0,
            trending=InsightTrending.STABLE,
        )
    top = drivers[0]
    return Insight(
        title=top.issue,
        description=(
            f"This issue appears in {top.frequency} conversations and has a "
            f"{top.impact}% impact on overall {metric_label} levels."
        ),
        impact=top.impact,
        trending=InsightTrending.UP,
    )


def trend_direction(current: float, previous: float) -> TrendDirection:
    if current > previous:
        return TrendDirection.INCREASING
    if current < previous:
        return TrendDirection.DECREASING
    return TrendDirection.STABLE
