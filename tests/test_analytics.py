"""Tests for dashboard analytics."""

from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId

import analytics
from validation import validate_submission

NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


def make_visit(created_at, **ratings):
    return {
        "location": "Shree Rath",
        "dineType": "dine_in",
        "ratings": ratings,
        "createdAt": created_at,
        "dateKey": created_at.strftime("%Y-%m-%d"),
    }


@pytest.fixture
def week_of_visits():
    """Seven in-window visits, one per day from 2026-03-04, plus one stale visit."""
    visits = []
    for i in range(7):
        visits.append(make_visit(
            datetime(2026, 3, 4 + i, 9, 0, 0, tzinfo=timezone.utc),
            foodQuality=4,
            foodTaste=3,
            staffBehavior=5 if i < 4 else 3,
            hygiene=5 if i % 2 == 0 else 4,
            ambience=2,
            serviceSpeed=i % 5 + 1,
        ))
    stale = make_visit(datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc),
                       foodQuality=1, foodTaste=1, staffBehavior=1, hygiene=1, ambience=1, serviceSpeed=1)
    return [
        {"_id": ObjectId(), "visits": visits[:4], "contactedAt": NOW},
        {"_id": ObjectId(), "visits": [stale] + visits[4:], "contactedAt": None},
    ]


def test_week_summary_matches_hand_computed_means(week_of_visits):
    result = analytics.summarize(week_of_visits, analytics.window_start("week", NOW))

    assert result.totalFeedback == 7
    performance = {row.category: row.rating for row in result.categoryPerformance}
    assert performance["foodQuality"] == pytest.approx(4.0)
    assert performance["foodTaste"] == pytest.approx(3.0)
    assert performance["staffBehavior"] == pytest.approx(29 / 7)
    assert performance["hygiene"] == pytest.approx(32 / 7)
    assert performance["ambience"] == pytest.approx(2.0)
    assert performance["serviceSpeed"] == pytest.approx(18 / 7)
    assert [row.category for row in result.categoryPerformance] == list(analytics.RATING_CATEGORIES)

    assert result.averageRating == 3.4
    assert result.topCategory == "hygiene"


def test_contacted_counts_documents_not_visits(week_of_visits):
    result = analytics.summarize(week_of_visits, analytics.window_start("week", NOW))

    assert result.responseRate == 14
    volume = {bucket.name: bucket.value for bucket in result.feedbackVolume}
    assert volume == {"Contacted": 1, "Pending": 6}


def test_daily_trends_sorted_and_rounded(week_of_visits):
    result = analytics.summarize(week_of_visits, analytics.window_start("week", NOW))

    assert [t.date for t in result.weeklyTrends] == [
        "2026-03-04", "2026-03-05", "2026-03-06", "2026-03-07",
        "2026-03-08", "2026-03-09", "2026-03-10",
    ]
    first = result.weeklyTrends[0]
    assert (first.staffBehavior, first.hygiene, first.serviceSpeed) == (5.0, 5.0, 1.0)


def test_trend_groups_multiple_visits_on_one_day():
    day = datetime(2026, 3, 9, 10, 0, 0, tzinfo=timezone.utc)
    docs = [
        {"_id": ObjectId(), "visits": [make_visit(day, foodQuality=5, foodTaste=4, staffBehavior=4,
                                                  hygiene=4, ambience=4, serviceSpeed=4)]},
        {"_id": ObjectId(), "visits": [make_visit(day + timedelta(hours=3), foodQuality=4, foodTaste=4,
                                                  staffBehavior=4, hygiene=4, ambience=4, serviceSpeed=3)]},
    ]

    trends = analytics.summarize(docs, analytics.window_start("week", NOW)).weeklyTrends

    assert len(trends) == 1
    assert trends[0].foodQuality == 4.5
    assert trends[0].serviceSpeed == 3.5


def test_missing_rating_values_are_excluded():
    day = datetime(2026, 3, 9, tzinfo=timezone.utc)
    visits = [make_visit(day, foodQuality=4), make_visit(day, foodQuality=2, ambience=5)]

    means = analytics.category_means(visits)

    assert means["foodQuality"] == 3.0
    assert means["ambience"] == 5.0
    assert means["hygiene"] == 0.0


def test_empty_window():
    result = analytics.summarize([], analytics.window_start("month", NOW))

    assert result.totalFeedback == 0
    assert result.averageRating == 0.0
    assert result.responseRate == 0
    assert result.topCategory == "food quality"
    assert result.weeklyTrends == []


def test_top_category_tie_keeps_declared_order():
    means = {c: 4.0 for c in analytics.RATING_CATEGORIES}
    means["serviceSpeed"] = 4.5
    means["hygiene"] = 4.5
    assert analytics.top_category(means) == "hygiene"


@pytest.mark.parametrize("category,label", [
    ("foodQuality", "food quality"),
    ("staffBehavior", "staff behavior"),
    ("hygiene", "hygiene"),
    ("serviceSpeed", "service speed"),
])
def test_category_label(category, label):
    assert analytics.category_label(category) == label


def test_round_half_up():
    assert analytics.round_half_up(4.65, 1) == 4.7
    assert analytics.round_half_up(2.5) == 3.0
    assert analytics.round_half_up(28 / 6, 1) == 4.7
    # decided on the decimal repr, not the binary value
    assert analytics.round_half_up(0.15, 1) == 0.2


def test_unknown_period_rejected():
    with pytest.raises(ValueError):
        analytics.window_start("year", NOW)


class TestStoreAnalytics:
    def test_single_example_visit(self, store, valid_payload):
        store.create_feedback(validate_submission(valid_payload))

        result = store.get_analytics("week")

        assert result.totalFeedback == 1
        assert result.averageRating == 4.7
        assert result.topCategory == "food quality"
        assert result.weeklyTrends[0].date == "2026-03-10"

    def test_window_depends_on_period(self, store, clock, valid_payload):
        store.create_feedback(validate_submission(valid_payload))
        clock.advance(days=10)

        assert store.get_analytics("week").totalFeedback == 0
        assert store.get_analytics("month").totalFeedback == 1

    def test_response_rate_mixes_document_and_visit_counts(self, store, clock, valid_payload):
        first = store.create_feedback(validate_submission(valid_payload))
        clock.advance(days=1)
        store.create_feedback(validate_submission(valid_payload))
        store.mark_contacted(first["feedback"]["_id"], "Ravi")

        result = store.get_analytics("week")

        assert result.totalFeedback == 2
        assert result.responseRate == 50
        assert [(b.name, b.value) for b in result.feedbackVolume] == [("Contacted", 1), ("Pending", 1)]
