from __future__ import annotations

from datetime import timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from flashstats.config.settings import Settings, get_settings
from flashstats.models.statistics import AccuracyStats, AccuracyTrend
from flashstats.services.aggregate_store import AggregateStore
from flashstats.utils.time import UTC, today_in


def trend_between(
    current: Optional[float], previous: Optional[float], threshold: float
) -> Optional[AccuracyTrend]:
    """Classify the change from ``previous`` to ``current``; None when either side has no reviews."""
    if current is None or previous is None:
        return None
    delta = current - previous
    if delta > threshold:
        return AccuracyTrend.IMPROVING
    if delta < -threshold:
        return AccuracyTrend.DECLINING
    return AccuracyTrend.STABLE


class AccuracyService:
    def __init__(self, store: AggregateStore, settings: Optional[Settings] = None) -> None:
        self.store = store
        self.settings = settings or get_settings()

    def with_trend(
        self, user_id: int, period_days: Optional[int] = None, zone: ZoneInfo = UTC
    ) -> AccuracyStats:
        period = period_days or self.settings.accuracy_period_days
        today = today_in(zone)
        current_start = today - timedelta(days=period - 1)
        previous_end = current_start - timedelta(days=1)
        previous_start = previous_end - timedelta(days=period - 1)

        current = self.store.accuracy_counts(user_id, current_start, today)
        previous = self.store.accuracy_counts(user_id, previous_start, previous_end)
        return AccuracyStats(
            rate=current.rate,
            trend=trend_between(current.rate, previous.rate, self.settings.accuracy_trend_threshold),
            period_days=period,
            easy_count=current.easy_count,
            hard_count=current.hard_count,
            again_count=current.again_count,
        )
