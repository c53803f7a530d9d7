from __future__ import annotations

from datetime import timedelta
from typing import Optional
from zoneinfo import ZoneInfo

import structlog
from fastapi import HTTPException, status
from sqlmodel import Session as DBSession

from flashstats.config.settings import Settings, get_settings
from flashstats.models.statistics import (
    AllTimeStats,
    DayStats,
    DeckBreakdown,
    StatisticsOverview,
    StreakStats,
    TodayStats,
    WeekStats,
)
from flashstats.models.study import ReviewEvent, SessionCompletionEvent
from flashstats.services.accuracy_service import AccuracyService
from flashstats.services.aggregate_store import AggregateStore, progress_percent
from flashstats.services.deck_directory import DeckDirectory
from flashstats.services.mastery_service import MasteryService
from flashstats.services.streak_service import StreakService
from flashstats.utils.time import UTC, as_utc, today_in

logger = structlog.get_logger(__name__)

WEEK_DAYS = 7


class StatisticsService:
    """Entry point for recording study events and reading the statistics overview.

    Write methods join the caller's transaction and never commit on their own.
    """

    def __init__(self, session: DBSession, settings: Optional[Settings] = None) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.directory = DeckDirectory(session)
        self.store = AggregateStore(session, self.directory)
        self.mastery = MasteryService(session, self.settings)
        self.streaks = StreakService(self.store)
        self.accuracy = AccuracyService(self.store, self.settings)

    def get_overview(self, user_id: int, zone: ZoneInfo = UTC) -> StatisticsOverview:
        today = today_in(zone)
        week_start = today - timedelta(days=WEEK_DAYS - 1)
        daily = {row.study_date: row for row in self.store.get_daily_stats(user_id, week_start, today)}

        days = []
        for offset in range(WEEK_DAYS):
            day = week_start + timedelta(days=offset)
            cards = daily[day].cards_studied if day in daily else 0
            days.append(DayStats(date=day, cards_studied=cards, studied=day in daily))
        week = WeekStats(
            days=days,
            total_cards_studied=sum(day.cards_studied for day in days),
            days_studied=sum(1 for day in days if day.studied),
        )

        todays_row = daily.get(today)
        today_stats = TodayStats(
            cards_studied=todays_row.cards_studied if todays_row else 0,
            time_minutes=todays_row.time_minutes if todays_row else 0,
            sessions_completed=todays_row.sessions_completed if todays_row else 0,
        )

        totals = self.store.get_user_stats(user_id)
        all_time = AllTimeStats(
            total_cards_studied=totals.total_cards_studied,
            total_time_minutes=totals.total_study_time_minutes,
            total_decks=self.directory.count_decks(user_id),
            total_sessions=totals.total_sessions,
        )

        overview = StatisticsOverview(
            streak=self.streaks.calculate(user_id, zone),
            today=today_stats,
            week=week,
            all_time=all_time,
            card_progress=self.store.mastery_breakdown(self.directory.card_ids_of_user(user_id)),
            accuracy=self.accuracy.with_trend(user_id, zone=zone),
            top_decks=self.store.top_decks(user_id, self.settings.top_decks_limit),
        )
        logger.debug("overview_built", user_id=user_id, timezone=str(zone))
        return overview

    def calculate_streak(self, user_id: int, zone: ZoneInfo = UTC) -> StreakStats:
        return self.streaks.calculate(user_id, zone)

    def record_session_completion(self, event: SessionCompletionEvent) -> StreakStats:
        return self.store.apply_session_completion(event)

    def record_card_review(self, event: ReviewEvent) -> None:
        self.mastery.record_review(event.card_id, event.rating, event.reviewed_at)

    def deck_progress(self, user_id: int, deck_id: int) -> DeckBreakdown:
        deck = self.directory.find_deck(user_id, deck_id)
        if not deck:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Deck not found")
        card_ids = [card.id for card in self.directory.cards_of_deck(deck.id)]
        breakdown = self.store.mastery_breakdown(card_ids)
        return DeckBreakdown(
            deck_id=deck.id,
            deck_name=deck.name,
            card_progress=breakdown,
            progress_percent=progress_percent(breakdown.mastered, breakdown.total),
            last_studied_at=as_utc(deck.last_studied_at) if deck.last_studied_at else None,
        )
