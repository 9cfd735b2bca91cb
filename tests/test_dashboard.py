from __future__ import annotations

from datetime import datetime

import pytest

from kosakata.services.dashboard import DashboardService
from kosakata.services.storage import ContentRepository

NOW = datetime(2025, 10, 15, 14, 30)


def _seed_visits(repository: ContentRepository) -> dict:
    animals = repository.add_topic("Animals")
    fruits = repository.add_topic("Fruits")
    ana = repository.add_learner("Ana", "Bandung")
    budi = repository.add_learner("Budi", "Bandung")
    citra = repository.add_learner("Citra", "Jakarta")
    for learner, topic, moment in (
        (ana, animals, datetime(2025, 10, 14, 9, 0)),
        (ana, animals, datetime(2025, 10, 14, 9, 5)),
        (budi, fruits, datetime(2025, 10, 15, 8, 0)),
        (citra, animals, datetime(2025, 10, 2, 8, 0)),
        (citra, animals, datetime(2025, 6, 1, 8, 0)),
        (budi, None, datetime(2022, 3, 1, 8, 0)),
    ):
        repository.add_visitor_log(learner, topic, moment)
    return {"animals": animals, "fruits": fruits}


def test_daily_stats_fill_the_whole_week(repository: ContentRepository) -> None:
    _seed_visits(repository)
    service = DashboardService(repository, clock=lambda: NOW)

    stats = service.stats(visitors_period="daily", unique_visitors_period="daily")

    assert stats["totalVisitors"] == 3
    assert stats["totalUniqueVisitors"] == 2
    assert [item["label"] for item in stats["visitorDistribution"]] == [
        "9 Okt",
        "10 Okt",
        "11 Okt",
        "12 Okt",
        "13 Okt",
        "14 Okt",
        "15 Okt",
    ]
    assert [item["count"] for item in stats["visitorDistribution"]] == [0, 0, 0, 0, 0, 2, 1]
    assert [item["count"] for item in stats["uniqueVisitorDistribution"]] == [0, 0, 0, 0, 0, 1, 1]


def test_weekly_stats_are_labelled_within_the_month(repository: ContentRepository) -> None:
    _seed_visits(repository)
    service = DashboardService(repository, clock=lambda: NOW)

    stats = service.stats(visitors_period="weekly")

    assert stats["visitorDistribution"] == [
        {"label": "Oktober-Minggu 1", "count": 1},
        {"label": "Oktober-Minggu 2", "count": 0},
        {"label": "Oktober-Minggu 3", "count": 3},
    ]


def test_default_monthly_stats_and_rankings(repository: ContentRepository) -> None:
    topics = _seed_visits(repository)
    service = DashboardService(repository, clock=lambda: NOW)

    stats = service.stats()

    assert stats["totalVisitors"] == 5
    assert stats["totalUniqueVisitors"] == 3
    assert [item["label"] for item in stats["visitorDistribution"]] == [
        "Mei 2025",
        "Juni 2025",
        "Juli 2025",
        "Agustus 2025",
        "September 2025",
        "Oktober 2025",
    ]
    assert [item["count"] for item in stats["visitorDistribution"]] == [0, 1, 0, 0, 0, 4]
    assert stats["favoriteTopic"] == {"topicId": topics["animals"], "name": "Animals", "count": 4}
    assert [item["name"] for item in stats["topicDistribution"]] == ["Animals", "Fruits"]
    assert stats["cityDistribution"] == [
        {"label": "Bandung", "count": 2},
        {"label": "Jakarta", "count": 1},
    ]
    assert stats["mostfrequentcity"] == {"label": "Bandung", "count": 2}
    assert stats["totalTopics"] == 2
    assert stats["totalAdmins"] == 1


def test_yearly_city_period_is_independent(repository: ContentRepository) -> None:
    _seed_visits(repository)
    service = DashboardService(repository, clock=lambda: NOW)

    stats = service.stats(visitors_period="yearly", city_period="daily", topic_period="daily")

    assert [item["count"] for item in stats["visitorDistribution"]] == [0, 1, 0, 0, 5]
    assert stats["cityDistribution"] == [{"label": "Bandung", "count": 2}]
    assert stats["favoriteTopic"]["count"] == 2


def test_empty_database_returns_empty_rankings(repository: ContentRepository) -> None:
    stats = DashboardService(repository, clock=lambda: NOW).stats(visitors_period="daily")

    assert stats["totalVisitors"] == 0
    assert stats["favoriteTopic"] == {}
    assert stats["mostfrequentcity"] == {}
    assert len(stats["visitorDistribution"]) == 7


def test_invalid_period_is_rejected(repository: ContentRepository) -> None:
    with pytest.raises(ValueError):
        DashboardService(repository, clock=lambda: NOW).stats(city_period="hourly")
