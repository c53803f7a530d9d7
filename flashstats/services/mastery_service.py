from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, Optional

import structlog
from sqlalchemy import and_, case
from sqlmodel import Session as DBSession, select

from flashstats.config.settings import Settings, get_settings
from flashstats.db.base import upsert_statement
from flashstats.db.schemas import CardProgress
from flashstats.models.study import MasteryLevel, Rating
from flashstats.utils.time import as_utc, utc_now

logger = structlog.get_logger(__name__)


class MasteryService:
    """Per-card mastery state, one ``card_progress`` row per reviewed card.

    Every review is applied with a single ``INSERT ... ON CONFLICT DO UPDATE``
    so that concurrent reviews of the same card cannot lose counter updates.
    The statement is not idempotent: applying the same review twice counts it
    twice, so callers must deliver each review at most once.
    """

    def __init__(self, session: DBSession, settings: Optional[Settings] = None) -> None:
        self.session = session
        self.settings = settings or get_settings()

    def record_review(self, card_id: int, rating: Rating, reviewed_at: datetime) -> None:
        rating = Rating(rating)
        threshold = self.settings.mastery_easy_streak
        is_easy = rating is Rating.EASY
        now = utc_now()
        connection = self.session.connection()
        table = CardProgress.__table__

        first_level = MasteryLevel.MASTERED if is_easy and threshold <= 1 else MasteryLevel.LEARNING
        statement = upsert_statement(connection, table).values(
            card_id=card_id,
            consecutive_easy_count=1 if is_easy else 0,
            total_reviews=1,
            total_easy=1 if rating is Rating.EASY else 0,
            total_hard=1 if rating is Rating.HARD else 0,
            total_again=1 if rating is Rating.AGAIN else 0,
            last_rating=rating.value,
            last_reviewed_at=as_utc(reviewed_at),
            mastery_level=first_level.value,
            created_at=now,
            updated_at=now,
        )
        excluded = statement.excluded
        was_easy = excluded.last_rating == Rating.EASY.value
        statement = statement.on_conflict_do_update(
            index_elements=[table.c.card_id],
            set_={
                "consecutive_easy_count": case(
                    (was_easy, table.c.consecutive_easy_count + 1),
                    else_=0,
                ),
                "total_reviews": table.c.total_reviews + 1,
                "total_easy": table.c.total_easy + excluded.total_easy,
                "total_hard": table.c.total_hard + excluded.total_hard,
                "total_again": table.c.total_again + excluded.total_again,
                "last_rating": excluded.last_rating,
                "last_reviewed_at": excluded.last_reviewed_at,
                "mastery_level": case(
                    (
                        and_(was_easy, table.c.consecutive_easy_count + 1 >= threshold),
                        MasteryLevel.MASTERED.value,
                    ),
                    else_=MasteryLevel.LEARNING.value,
                ),
                "updated_at": excluded.updated_at,
            },
        )
        connection.execute(statement)
        logger.debug("review_recorded", card_id=card_id, rating=rating.value)

    def get_progress(self, card_id: int) -> Optional[CardProgress]:
        statement = (
            select(CardProgress)
            .where(CardProgress.card_id == card_id)
            .execution_options(populate_existing=True)
        )
        return self.session.exec(statement).first()

    def progress_for_cards(self, card_ids: Iterable[int]) -> Dict[int, CardProgress]:
        ids = list(card_ids)
        if not ids:
            return {}
        statement = (
            select(CardProgress)
            .where(CardProgress.card_id.in_(ids))
            .execution_options(populate_existing=True)
        )
        return {row.card_id: row for row in self.session.exec(statement).all()}
