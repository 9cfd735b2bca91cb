"""Visitor statistics for the admin dashboard."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict

from .periods import DEFAULT_PERIOD, date_range, merge_with_complete_range, validate_period
from .storage import ContentRepository

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class DashboardService:
    """Compose the dashboard payload from independent per-metric queries.

    Each metric has its own period, so the visitor chart can show the last
    seven days while the city ranking covers the last five years.
    """

    def __init__(self, repository: ContentRepository, *, clock: Clock = datetime.now) -> None:
        self._repository = repository
        self._clock = clock

    def stats(
        self,
        *,
        visitors_period: str = DEFAULT_PERIOD,
        unique_visitors_period: str = DEFAULT_PERIOD,
        city_period: str = DEFAULT_PERIOD,
        topic_period: str = DEFAULT_PERIOD,
    ) -> Dict[str, Any]:
        for period in (visitors_period, unique_visitors_period, city_period, topic_period):
            validate_period(period)

        today = self._clock()
        visitors_range = date_range(visitors_period, today)
        unique_range = date_range(unique_visitors_period, today)
        city_range = date_range(city_period, today)
        topic_range = date_range(topic_period, today)

        repository = self._repository
        visitor_distribution = merge_with_complete_range(
            repository.visits_by_bucket(visitors_period, *visitors_range),
            visitors_period,
            today,
        )
        unique_distribution = merge_with_complete_range(
            repository.unique_visitors_by_bucket(unique_visitors_period, *unique_range),
            unique_visitors_period,
            today,
        )
        topic_distribution = repository.topic_visit_distribution(*topic_range)
        city_distribution = repository.city_distribution(*city_range, limit=5)

        LOGGER.debug(
            "Dashboard stats computed for %s (visitors=%s unique=%s city=%s topic=%s)",
            today.date().isoformat(),
            visitors_period,
            unique_visitors_period,
            city_period,
            topic_period,
        )
        return {
            "totalVisitors": repository.count_visits(*visitors_range),
            "totalUniqueVisitors": repository.count_unique_visitors(*unique_range),
            "visitorDistribution": visitor_distribution,
            "uniqueVisitorDistribution": unique_distribution,
            "favoriteTopic": topic_distribution[0] if topic_distribution else {},
            "topicDistribution": topic_distribution,
            "cityDistribution": city_distribution,
            "mostfrequentcity": city_distribution[0] if city_distribution else {},
            "totalTopics": repository.count_topics(),
            "totalAdmins": repository.count_admins(),
        }


__all__ = ["Clock", "DashboardService"]
