from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Set

import structlog
from sqlalchemy import delete, func
from sqlmodel import Session as DBSession, select

from flashstats.config.settings import Settings, get_settings
from flashstats.db.schemas import (
    Card,
    CardProgress,
    CardReview,
    DailyStudyStats,
    Deck,
    StudySession,
    UserStatistics,
)
from flashstats.models.study import Rating, SessionCompletionEvent
from flashstats.services.aggregate_store import AggregateStore
from flashstats.services.mastery_service import MasteryService
from flashstats.services.streak_service import current_streak, longest_streak
from flashstats.utils.time import as_utc, resolve_timezone, today_in, whole_minutes_between

logger = structlog.get_logger(__name__)


@dataclass
class BackfillReport:
    reviews_replayed: int = 0
    sessions_replayed: int = 0
    users: int = 0
    decks: int = 0


class BackfillService:
    """Rebuilds every derived statistics table from persisted sessions and reviews.

    Reviews are replayed through the same mastery upsert as live traffic and
    streaks come from the same streak functions, so a rebuilt database matches
    one that recorded the events live (up to the timezone chosen here).
    """

    def __init__(self, session: DBSession, settings: Optional[Settings] = None) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.store = AggregateStore(session)
        self.mastery = MasteryService(session, self.settings)

    def rebuild(self, timezone: str = "UTC", dry_run: bool = False) -> BackfillReport:
        zone = resolve_timezone(timezone)
        if zone is None:
            raise ValueError(f"Unknown timezone: {timezone}")
        report = BackfillReport()
        self._clear_derived_tables()
        report.reviews_replayed = self._replay_reviews()

        rating_counts = self._rating_counts_by_session()
        users: Set[int] = set()
        last_studied: Dict[int, datetime] = {}
        statement = (
            select(StudySession, Deck)
            .join(Deck, Deck.id == StudySession.deck_id)
            .where(StudySession.completed_at.is_not(None))
            .order_by(StudySession.completed_at, StudySession.id)
        )
        for study_session, deck in self.session.exec(statement).all():
            counts = rating_counts.get(study_session.id, {})
            study_session.cards_easy = counts.get(Rating.EASY, 0)
            study_session.cards_hard = counts.get(Rating.HARD, 0)
            study_session.cards_again = counts.get(Rating.AGAIN, 0)
            study_session.cards_studied = sum(counts.values())
            self.session.add(study_session)

            completed_at = as_utc(study_session.completed_at)
            self.store.add_session_totals(
                SessionCompletionEvent(
                    user_id=deck.user_id,
                    deck_id=deck.id,
                    cards_studied=study_session.cards_studied,
                    easy_count=study_session.cards_easy,
                    hard_count=study_session.cards_hard,
                    again_count=study_session.cards_again,
                    duration_minutes=max(1, whole_minutes_between(study_session.started_at, completed_at)),
                    completed_at=completed_at,
                    timezone=timezone,
                )
            )
            users.add(deck.user_id)
            last_studied[deck.id] = completed_at
            report.sessions_replayed += 1

        today = today_in(zone)
        for user_id in sorted(users):
            dates = self.store.get_study_dates(user_id)
            self.store.save_streak(user_id, current_streak(dates, today), longest_streak(dates))
        for deck_id, completed_at in last_studied.items():
            self.store.directory.set_deck_last_studied(deck_id, completed_at)
        report.users = len(users)
        report.decks = len(last_studied)

        if dry_run:
            self.session.rollback()
        else:
            self.session.commit()
        logger.info(
            "statistics_backfilled",
            timezone=timezone,
            dry_run=dry_run,
            reviews=report.reviews_replayed,
            sessions=report.sessions_replayed,
            users=report.users,
        )
        return report

    def _clear_derived_tables(self) -> None:
        connection = self.session.connection()
        for model in (CardProgress, DailyStudyStats, UserStatistics):
            connection.execute(delete(model.__table__))

    def _replay_reviews(self) -> int:
        statement = (
            select(CardReview)
            .join(Card, Card.id == CardReview.card_id)
            .order_by(CardReview.reviewed_at, CardReview.id)
        )
        replayed = 0
        for review in self.session.exec(statement).all():
            rating = Rating.parse(review.rating)
            if rating is None:
                continue
            self.mastery.record_review(review.card_id, rating, review.reviewed_at)
            replayed += 1
        return replayed

    def _rating_counts_by_session(self) -> Dict[int, Dict[Rating, int]]:
        statement = select(CardReview.session_id, CardReview.rating, func.count()).group_by(
            CardReview.session_id, CardReview.rating
        )
        counts: Dict[int, Dict[Rating, int]] = defaultdict(dict)
        for session_id, raw_rating, count in self.session.exec(statement).all():
            rating = Rating.parse(raw_rating)
            if rating is not None:
                counts[session_id][rating] = count
        return counts
