from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional

import structlog
from sqlalchemy import case, func, update
from sqlmodel import Session as DBSession, select

from flashstats.db.base import upsert_statement
from flashstats.db.schemas import CardProgress, DailyStudyStats, UserStatistics
from flashstats.models.statistics import (
    CardProgressStats,
    DailyTotals,
    DeckProgressStats,
    RatingCounts,
    StreakStats,
    UserTotals,
)
from flashstats.models.study import MasteryLevel, SessionCompletionEvent
from flashstats.services.deck_directory import DeckDirectory
from flashstats.services.streak_service import StreakService
from flashstats.utils.time import UTC, as_utc, local_date, resolve_timezone, utc_now

logger = structlog.get_logger(__name__)


class AggregateStore:
    """Cumulative (``user_statistics``) and per-day (``daily_study_stats``) totals.

    Counter writes are add-in-place SQL updates so that concurrent session
    completions for the same user and day accumulate instead of overwriting.
    """

    def __init__(self, session: DBSession, directory: Optional[DeckDirectory] = None) -> None:
        self.session = session
        self.directory = directory or DeckDirectory(session)

    # Writes
    def apply_session_completion(self, event: SessionCompletionEvent) -> StreakStats:
        zone = resolve_timezone(event.timezone) or UTC
        study_date = self.add_session_totals(event)
        streak = StreakService(self).calculate(event.user_id, zone)
        self.save_streak(event.user_id, streak.current, streak.longest)
        logger.info(
            "session_completion_applied",
            user_id=event.user_id,
            deck_id=event.deck_id,
            study_date=study_date.isoformat(),
            cards_studied=event.cards_studied,
            duration_minutes=event.duration_minutes,
            current_streak=streak.current,
        )
        return streak

    def add_session_totals(self, event: SessionCompletionEvent) -> date:
        """Accumulate one completed session into the user and daily totals, without touching streaks."""
        study_date = local_date(event.completed_at, resolve_timezone(event.timezone) or UTC)
        self._add_to_user_totals(event, study_date)
        self._add_to_daily_totals(event, study_date)
        return study_date

    def ensure_user_stats(self, user_id: int) -> None:
        connection = self.session.connection()
        table = UserStatistics.__table__
        statement = (
            upsert_statement(connection, table)
            .values(
                user_id=user_id,
                current_streak=0,
                longest_streak=0,
                total_cards_studied=0,
                total_study_time_minutes=0,
                total_sessions=0,
                updated_at=utc_now(),
            )
            .on_conflict_do_nothing(index_elements=[table.c.user_id])
        )
        connection.execute(statement)

    def save_streak(self, user_id: int, current: int, longest: int) -> None:
        table = UserStatistics.__table__
        statement = (
            update(table)
            .where(table.c.user_id == user_id)
            .values(
                current_streak=current,
                longest_streak=case(
                    (table.c.longest_streak < longest, longest),
                    else_=table.c.longest_streak,
                ),
                updated_at=utc_now(),
            )
        )
        self.session.connection().execute(statement)

    def _add_to_user_totals(self, event: SessionCompletionEvent, study_date: date) -> None:
        self.ensure_user_stats(event.user_id)
        table = UserStatistics.__table__
        statement = (
            update(table)
            .where(table.c.user_id == event.user_id)
            .values(
                total_cards_studied=table.c.total_cards_studied + event.cards_studied,
                total_study_time_minutes=table.c.total_study_time_minutes + event.duration_minutes,
                total_sessions=table.c.total_sessions + 1,
                last_study_date=study_date,
                updated_at=utc_now(),
            )
        )
        self.session.connection().execute(statement)

    def _add_to_daily_totals(self, event: SessionCompletionEvent, study_date: date) -> None:
        connection = self.session.connection()
        table = DailyStudyStats.__table__
        statement = upsert_statement(connection, table).values(
            user_id=event.user_id,
            study_date=study_date,
            cards_studied=event.cards_studied,
            time_minutes=event.duration_minutes,
            sessions_completed=1,
            easy_count=event.easy_count,
            hard_count=event.hard_count,
            again_count=event.again_count,
            updated_at=utc_now(),
        )
        excluded = statement.excluded
        statement = statement.on_conflict_do_update(
            index_elements=[table.c.user_id, table.c.study_date],
            set_={
                "cards_studied": table.c.cards_studied + excluded.cards_studied,
                "time_minutes": table.c.time_minutes + excluded.time_minutes,
                "sessions_completed": table.c.sessions_completed + excluded.sessions_completed,
                "easy_count": table.c.easy_count + excluded.easy_count,
                "hard_count": table.c.hard_count + excluded.hard_count,
                "again_count": table.c.again_count + excluded.again_count,
                "updated_at": excluded.updated_at,
            },
        )
        connection.execute(statement)

    # Reads
    def get_user_stats(self, user_id: int) -> UserTotals:
        statement = (
            select(UserStatistics)
            .where(UserStatistics.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        row = self.session.exec(statement).first()
        if not row:
            return UserTotals()
        return UserTotals.model_validate(row)

    def get_daily_stats(self, user_id: int, start: date, end: date) -> List[DailyTotals]:
        statement = (
            select(DailyStudyStats)
            .where(DailyStudyStats.user_id == user_id)
            .where(DailyStudyStats.study_date >= start)
            .where(DailyStudyStats.study_date <= end)
            .order_by(DailyStudyStats.study_date)
            .execution_options(populate_existing=True)
        )
        return [DailyTotals.model_validate(row) for row in self.session.exec(statement).all()]

    def get_study_dates(self, user_id: int) -> List[date]:
        """Distinct days with a daily row, most recent first."""
        statement = (
            select(DailyStudyStats.study_date)
            .where(DailyStudyStats.user_id == user_id)
            .distinct()
            .order_by(DailyStudyStats.study_date.desc())
        )
        return list(self.session.exec(statement).all())

    def accuracy_counts(self, user_id: int, start: date, end: date) -> RatingCounts:
        statement = (
            select(
                func.coalesce(func.sum(DailyStudyStats.easy_count), 0),
                func.coalesce(func.sum(DailyStudyStats.hard_count), 0),
                func.coalesce(func.sum(DailyStudyStats.again_count), 0),
            )
            .where(DailyStudyStats.user_id == user_id)
            .where(DailyStudyStats.study_date >= start)
            .where(DailyStudyStats.study_date <= end)
        )
        easy, hard, again = self.session.exec(statement).one()
        return RatingCounts(easy_count=int(easy), hard_count=int(hard), again_count=int(again))

    def mastery_breakdown(self, card_ids: Iterable[int]) -> CardProgressStats:
        """Count cards per mastery level; cards without a progress row are NEW."""
        ids = list(card_ids)
        if not ids:
            return CardProgressStats(mastered=0, learning=0, new=0, total=0)
        statement = (
            select(CardProgress.mastery_level, func.count())
            .where(CardProgress.card_id.in_(ids))
            .group_by(CardProgress.mastery_level)
        )
        counts = {level: count for level, count in self.session.exec(statement).all()}
        mastered = counts.get(MasteryLevel.MASTERED.value, 0)
        learning = counts.get(MasteryLevel.LEARNING.value, 0)
        return CardProgressStats(
            mastered=mastered,
            learning=learning,
            new=len(ids) - (mastered + learning),
            total=len(ids),
        )

    def top_decks(self, user_id: int, limit: int) -> List[DeckProgressStats]:
        decks = self.directory.recently_studied_decks(user_id, limit)
        results: List[DeckProgressStats] = []
        for deck in decks:
            card_ids = [card.id for card in self.directory.cards_of_deck(deck.id)]
            breakdown = self.mastery_breakdown(card_ids)
            results.append(
                DeckProgressStats(
                    id=deck.id,
                    name=deck.name,
                    mastered_cards=breakdown.mastered,
                    total_cards=breakdown.total,
                    progress_percent=progress_percent(breakdown.mastered, breakdown.total),
                    last_studied_at=as_utc(deck.last_studied_at) if deck.last_studied_at else None,
                )
            )
        return results


def progress_percent(mastered: int, total: int) -> int:
    if total <= 0:
        return 0
    return (mastered * 100) // total
