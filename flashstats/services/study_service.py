from __future__ import annotations

import random
from typing import Optional

import structlog
from fastapi import HTTPException, status
from sqlmodel import Session as DBSession, select

from flashstats.config.settings import Settings, get_settings
from flashstats.db.schemas import CardReview, Deck, StudySession
from flashstats.models.study import (
    Rating,
    ReviewEvent,
    ReviewResponse,
    SessionCompletionEvent,
    SessionSummary,
    SessionType,
    StartSessionResponse,
    StudyCard,
)
from flashstats.services.statistics_service import StatisticsService
from flashstats.utils.time import as_utc, utc_now, whole_minutes_between

logger = structlog.get_logger(__name__)


class StudyService:
    def __init__(self, session: DBSession, settings: Optional[Settings] = None) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.statistics = StatisticsService(session, self.settings)
        self.directory = self.statistics.directory

    def start_session(
        self, user_id: int, deck_id: int, session_type: SessionType = SessionType.STUDY
    ) -> StartSessionResponse:
        deck = self.directory.find_deck(user_id, deck_id)
        if not deck:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Deck not found")
        cards = self.directory.cards_of_deck(deck.id)
        if not cards:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Deck has no cards")
        random.shuffle(cards)

        study_session = StudySession(deck_id=deck.id, session_type=session_type.value, started_at=utc_now())
        self.session.add(study_session)
        self.session.commit()
        self.session.refresh(study_session)
        logger.info("study_session_started", user_id=user_id, deck_id=deck.id, session_id=study_session.id)
        return StartSessionResponse(
            session_id=study_session.id,
            deck_id=deck.id,
            deck_name=deck.name,
            session_type=session_type,
            cards=[StudyCard(id=card.id, front_text=card.front_text, back_text=card.back_text or "") for card in cards],
            total_cards=len(cards),
            started_at=as_utc(study_session.started_at),
        )

    def submit_review(self, user_id: int, session_id: int, card_id: int, rating: Rating) -> ReviewResponse:
        study_session, _ = self._get_owned_session(user_id, session_id)
        if study_session.completed_at is not None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Session already completed")
        if not self.directory.card_exists(card_id, study_session.deck_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Card not found")

        review = CardReview(session_id=study_session.id, card_id=card_id, rating=rating.value, reviewed_at=utc_now())
        self.session.add(review)
        self.session.flush()
        self.statistics.record_card_review(ReviewEvent(card_id, rating, review.reviewed_at))
        self.session.commit()
        self.session.refresh(review)
        return ReviewResponse(
            id=review.id,
            session_id=review.session_id,
            card_id=review.card_id,
            rating=Rating(review.rating),
            reviewed_at=as_utc(review.reviewed_at),
        )

    def complete_session(self, user_id: int, session_id: int, timezone: str = "UTC") -> SessionSummary:
        study_session, deck = self._get_owned_session(user_id, session_id)
        if study_session.completed_at is not None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Session already completed")

        reviews = self.session.exec(select(CardReview).where(CardReview.session_id == study_session.id)).all()
        easy = sum(1 for review in reviews if review.rating == Rating.EASY.value)
        hard = sum(1 for review in reviews if review.rating == Rating.HARD.value)
        again = sum(1 for review in reviews if review.rating == Rating.AGAIN.value)

        completed_at = utc_now()
        study_session.completed_at = completed_at
        study_session.cards_studied = len(reviews)
        study_session.cards_easy = easy
        study_session.cards_hard = hard
        study_session.cards_again = again
        self.session.add(study_session)
        self.session.flush()

        self.statistics.record_session_completion(
            SessionCompletionEvent(
                user_id=user_id,
                deck_id=deck.id,
                cards_studied=len(reviews),
                easy_count=easy,
                hard_count=hard,
                again_count=again,
                duration_minutes=max(1, whole_minutes_between(study_session.started_at, completed_at)),
                completed_at=completed_at,
                timezone=timezone,
            )
        )
        self.directory.set_deck_last_studied(deck.id, completed_at)
        self.session.commit()
        logger.info("study_session_completed", user_id=user_id, deck_id=deck.id, session_id=study_session.id)
        return SessionSummary(
            session_id=study_session.id,
            deck_id=deck.id,
            deck_name=deck.name,
            total_cards=len(reviews),
            easy_count=easy,
            hard_count=hard,
            again_count=again,
            missed_count=hard + again,
            started_at=as_utc(study_session.started_at),
            completed_at=completed_at,
        )

    def _get_owned_session(self, user_id: int, session_id: int) -> tuple[StudySession, Deck]:
        study_session = self.session.get(StudySession, session_id)
        deck = self.directory.find_deck(user_id, study_session.deck_id) if study_session else None
        if not study_session or not deck:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Study session not found")
        return study_session, deck
