"""
Dashboard analytics over feedback visits

Everything is recomputed from the feedback documents on each call. The
functions here take normalized feedback documents (see
storage.normalize_document) so they can be exercised without a database.
"""

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from schemas import (
    RATING_CATEGORIES,
    AnalyticsData,
    CategoryRating,
    TrendPoint,
    VolumeBucket,
)

PERIOD_DAYS = {"week": 7, "month": 30}


def round_half_up(value: float, places: int = 0) -> float:
    """
    Round half-up on the shortest decimal repr: 4.65 -> 4.7, 2.5 -> 3.

    Ties are decided on the printed value, not the binary one, so 0.15
    gives 0.2 where JavaScript's toFixed(1) gives 0.1.
    """
    exponent = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(exponent, rounding=ROUND_HALF_UP))


def window_start(period: str, now: datetime) -> datetime:
    if period not in PERIOD_DAYS:
        raise ValueError(f"Unknown analytics period: {period}")
    return now - timedelta(days=PERIOD_DAYS[period])


def category_label(category: str) -> str:
    """foodQuality -> 'food quality'"""
    words = []
    current = ""
    for char in category:
        if char.isupper() and current:
            words.append(current)
            current = char
        else:
            current += char
    if current:
        words.append(current)
    return " ".join(words).lower()


def visit_average(ratings: Dict[str, float]) -> Optional[float]:
    values = [ratings[c] for c in RATING_CATEGORIES if ratings.get(c) is not None]
    if not values:
        return None
    return sum(values) / len(values)


def category_means(visits: Iterable[dict]) -> Dict[str, float]:
    """Mean per category; absent values are skipped, empty categories are 0."""
    totals = {c: 0.0 for c in RATING_CATEGORIES}
    counts = {c: 0 for c in RATING_CATEGORIES}
    for visit in visits:
        ratings = visit.get("ratings") or {}
        for category in RATING_CATEGORIES:
            value = ratings.get(category)
            if value is None:
                continue
            totals[category] += value
            counts[category] += 1
    return {c: (totals[c] / counts[c] if counts[c] else 0.0) for c in RATING_CATEGORIES}


def top_category(means: Dict[str, float]) -> str:
    # strict comparison keeps the first declared category on ties
    best = RATING_CATEGORIES[0]
    best_value = -1.0
    for category in RATING_CATEGORIES:
        if means[category] > best_value:
            best, best_value = category, means[category]
    return best


def _in_window(documents: Iterable[dict], since: datetime) -> Tuple[List[dict], int]:
    """Flatten in-window visits; also count contacted documents contributing to them."""
    visits: List[dict] = []
    contacted = 0
    for doc in documents:
        recent = [v for v in doc.get("visits", []) if v["createdAt"] >= since]
        if not recent:
            continue
        visits.extend(recent)
        if doc.get("contactedAt"):
            contacted += 1
    return visits, contacted


def daily_trends(visits: Iterable[dict]) -> List[TrendPoint]:
    by_date: Dict[str, List[dict]] = {}
    for visit in visits:
        by_date.setdefault(visit["createdAt"].strftime("%Y-%m-%d"), []).append(visit)

    trends = []
    for date in sorted(by_date):
        means = category_means(by_date[date])
        trends.append(TrendPoint(date=date, **{c: round_half_up(means[c], 1) for c in RATING_CATEGORIES}))
    return trends


def summarize(documents: Iterable[dict], since: datetime) -> AnalyticsData:
    """Build the dashboard analytics for all visits created at or after `since`."""
    visits, contacted = _in_window(documents, since)
    total = len(visits)

    means = category_means(visits)
    overall = sum(means.values()) / len(RATING_CATEGORIES)
    response_rate = int(round_half_up(contacted / total * 100)) if total > 0 else 0

    return AnalyticsData(
        totalFeedback=total,
        averageRating=round_half_up(overall, 1),
        responseRate=response_rate,
        topCategory=category_label(top_category(means)),
        weeklyTrends=daily_trends(visits),
        categoryPerformance=[CategoryRating(category=c, rating=means[c]) for c in RATING_CATEGORIES],
        feedbackVolume=[
            VolumeBucket(name="Contacted", value=contacted),
            VolumeBucket(name="Pending", value=total - contacted),
        ],
    )
