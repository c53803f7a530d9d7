from __future__ import annotations

import datetime as dt
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from flashstats.models.base import CamelModel


class AccuracyTrend(str, Enum):
    IMPROVING = "IMPROVING"
    STABLE = "STABLE"
    DECLINING = "DECLINING"


class StreakStats(CamelModel):
    current: int
    longest: int
    last_study_date: Optional[date] = None


class TodayStats(CamelModel):
    cards_studied: int
    time_minutes: int
    sessions_completed: int


class DayStats(CamelModel):
    date: dt.date
    cards_studied: int
    studied: bool


class WeekStats(CamelModel):
    days: List[DayStats]
    total_cards_studied: int
    days_studied: int


class AllTimeStats(CamelModel):
    total_cards_studied: int
    total_time_minutes: int
    total_decks: int
    total_sessions: int


class CardProgressStats(CamelModel):
    mastered: int
    learning: int
    new: int
    total: int


class AccuracyStats(CamelModel):
    rate: Optional[float] = None
    trend: Optional[AccuracyTrend] = None
    period_days: int
    easy_count: int
    hard_count: int
    again_count: int


class DeckProgressStats(CamelModel):
    id: int
    name: str
    mastered_cards: int
    total_cards: int
    progress_percent: int
    last_studied_at: Optional[datetime] = None


class StatisticsOverview(CamelModel):
    streak: StreakStats
    today: TodayStats
    week: WeekStats
    all_time: AllTimeStats
    card_progress: CardProgressStats
    accuracy: AccuracyStats
    top_decks: List[DeckProgressStats]


class UserTotals(CamelModel):
    current_streak: int = 0
    longest_streak: int = 0
    last_study_date: Optional[date] = None
    total_cards_studied: int = 0
    total_study_time_minutes: int = 0
    total_sessions: int = 0


class DailyTotals(CamelModel):
    study_date: date
    cards_studied: int = 0
    time_minutes: int = 0
    sessions_completed: int = 0
    easy_count: int = 0
    hard_count: int = 0
    again_count: int = 0


class RatingCounts(CamelModel):
    easy_count: int = 0
    hard_count: int = 0
    again_count: int = 0

    @property
    def total(self) -> int:
        return self.easy_count + self.hard_count + self.again_count

    @property
    def rate(self) -> Optional[float]:
        if self.total == 0:
            return None
        return (self.easy_count + self.hard_count) / self.total


class DeckBreakdown(CamelModel):
    deck_id: int
    deck_name: str
    card_progress: CardProgressStats
    progress_percent: int
    last_studied_at: Optional[datetime] = None
