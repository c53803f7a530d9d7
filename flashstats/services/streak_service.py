"""
Study streaks computed from the set of days that have a daily aggregate row.

The two pure functions below are the only streak algorithm in the code base:
the live path (``StreakService``) and the aggregate backfill script both use
them, so current/longest values cannot drift between the two.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import TYPE_CHECKING, Iterable, Sequence
from zoneinfo import ZoneInfo

from flashstats.models.statistics import StreakStats
from flashstats.utils.time import today_in

if TYPE_CHECKING:
    from flashstats.services.aggregate_store import AggregateStore

ONE_DAY = timedelta(days=1)


def current_streak(dates_desc: Sequence[date], today: date) -> int:
    """
    Count consecutive study days ending today.

    Args:
        dates_desc: Distinct study dates, most recent first.
        today: The reference day in the user's timezone.

    Returns:
        0 when ``today`` has no study activity, otherwise the length of the
        run of consecutive days that ends on ``today``.
    """
    if today not in dates_desc:
        return 0
    streak = 0
    expected = today
    for study_date in dates_desc:
        if study_date > expected:
            # rows dated after "today" (written from a timezone ahead of this one)
            continue
        if study_date != expected:
            break
        streak += 1
        expected -= ONE_DAY
    return streak


def longest_streak(dates: Iterable[date]) -> int:
    """Length of the longest run of consecutive days, in any order of input."""
    ordered = sorted(set(dates), reverse=True)
    if not ordered:
        return 0
    longest = run = 1
    for previous, current in zip(ordered, ordered[1:]):
        run = run + 1 if previous - current == ONE_DAY else 1
        longest = max(longest, run)
    return longest


class StreakService:
    def __init__(self, store: "AggregateStore") -> None:
        self.store = store

    def calculate(self, user_id: int, zone: ZoneInfo) -> StreakStats:
        """
        Current and longest streak for ``user_id`` as seen from ``zone``.

        The returned longest streak is never lower than the one already
        persisted for the user, so it does not shrink if old daily rows are
        purged.
        """
        dates = self.store.get_study_dates(user_id)
        if not dates:
            return StreakStats(current=0, longest=0, last_study_date=None)
        current = current_streak(dates, today_in(zone))
        stored_longest = self.store.get_user_stats(user_id).longest_streak
        return StreakStats(
            current=current,
            longest=max(longest_streak(dates), stored_longest, current),
            last_study_date=dates[0],
        )
