from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

import structlog
from fastapi import HTTPException, status
from sqlmodel import Session as DBSession

from flashstats.config.settings import Settings, get_settings
from flashstats.db.schemas import CardReview, StudySession
from flashstats.models.study import Rating, ReviewEvent, SessionCompletionEvent, SessionType
from flashstats.models.sync import (
    CardDownloadInfo,
    CardProgressSnapshot,
    DeckDownloadInfo,
    DeckDownloadResponse,
    OfflineCardReview,
    OfflineStudySession,
    SessionSyncResult,
    SyncStatus,
    SyncStudyProgressRequest,
    SyncStudyProgressResponse,
    SyncSummary,
)
from flashstats.services.idempotency import IdempotencyStore, sync_key
from flashstats.services.statistics_service import StatisticsService
from flashstats.utils.time import as_utc, utc_now, whole_minutes_between

logger = structlog.get_logger(__name__)


class SyncService:
    """Replays study sessions recorded on an offline client.

    Each session in a batch is synced, skipped as a duplicate, or rejected on
    its own; one bad session never fails the batch. The whole batch is one
    transaction, and idempotency entries are only written once it commits.
    """

    def __init__(
        self,
        session: DBSession,
        store: IdempotencyStore,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.session = session
        self.store = store
        self.settings = settings or get_settings()
        self.clock = clock
        self.statistics = StatisticsService(session, self.settings)
        self.directory = self.statistics.directory

    def sync_batch(self, user_id: int, request: SyncStudyProgressRequest) -> SyncStudyProgressResponse:
        now = self.clock()
        pending: Dict[str, int] = {}
        results: List[SessionSyncResult] = []
        for item in request.sessions:
            result = self._sync_session(user_id, request.client_id, request.timezone, item, now, pending)
            if result.status is SyncStatus.FAILED:
                logger.info(
                    "session_sync_failed",
                    user_id=user_id,
                    client_id=request.client_id,
                    client_session_id=item.client_session_id,
                    error=result.error,
                )
            results.append(result)

        self.session.commit()
        for key, server_session_id in pending.items():
            self.store.set(key, server_session_id, self.settings.idempotency_ttl_seconds)

        summary = SyncSummary(
            total=len(results),
            synced=sum(1 for r in results if r.status is SyncStatus.SYNCED),
            skipped=sum(1 for r in results if r.status is SyncStatus.SKIPPED),
            failed=sum(1 for r in results if r.status is SyncStatus.FAILED),
        )
        logger.info(
            "sync_batch_completed",
            user_id=user_id,
            client_id=request.client_id,
            total=summary.total,
            synced=summary.synced,
            skipped=summary.skipped,
            failed=summary.failed,
        )
        return SyncStudyProgressResponse(synced_at=now, results=results, summary=summary)

    def _sync_session(
        self,
        user_id: int,
        client_id: str,
        timezone_name: str,
        item: OfflineStudySession,
        now: datetime,
        pending: Dict[str, int],
    ) -> SessionSyncResult:
        key = sync_key(client_id, item.client_session_id)
        prior = pending.get(key)
        if prior is None:
            prior = self.store.get(key)
        if prior is not None:
            return SessionSyncResult(
                client_session_id=item.client_session_id,
                status=SyncStatus.SKIPPED,
                server_session_id=prior,
            )

        started_at = as_utc(item.started_at)
        completed_at = as_utc(item.completed_at)
        if started_at > now or completed_at > now:
            return self._failed(item, "Timestamps cannot be in the future")
        if started_at < now - timedelta(days=self.settings.sync_max_session_age_days):
            return self._failed(item, f"Session is older than {self.settings.sync_max_session_age_days} days")

        if not self.directory.find_deck(user_id, item.deck_id):
            return self._failed(item, "Deck not found or not owned")

        session_type = SessionType.parse(item.session_type)
        if session_type is None:
            return self._failed(item, f"Invalid session type: {item.session_type}")

        rated = [(review, Rating.parse(review.rating)) for review in item.reviews]
        rated = [(review, rating) for review, rating in rated if rating is not None]
        if item.reviews and not rated:
            return self._failed(item, "All reviews have invalid ratings")
        # reviews of cards deleted since the download, or of cards outside this deck, are dropped
        applicable = [
            (review, rating) for review, rating in rated if self.directory.card_exists(review.card_id, item.deck_id)
        ]
        if rated and not applicable:
            return self._failed(item, "No valid reviews")

        server_session_id = self._apply(user_id, client_id, timezone_name, item, session_type, applicable)
        pending[key] = server_session_id
        logger.info(
            "session_synced",
            user_id=user_id,
            client_id=client_id,
            client_session_id=item.client_session_id,
            server_session_id=server_session_id,
            reviews_synced=len(applicable),
        )
        return SessionSyncResult(
            client_session_id=item.client_session_id,
            status=SyncStatus.SYNCED,
            server_session_id=server_session_id,
            reviews_synced=len(applicable),
        )

    def _apply(
        self,
        user_id: int,
        client_id: str,
        timezone_name: str,
        item: OfflineStudySession,
        session_type: SessionType,
        reviews: List[Tuple[OfflineCardReview, Rating]],
    ) -> int:
        counts = {rating: 0 for rating in Rating}
        for _, rating in reviews:
            counts[rating] += 1

        study_session = StudySession(
            deck_id=item.deck_id,
            session_type=session_type.value,
            started_at=as_utc(item.started_at),
            completed_at=as_utc(item.completed_at),
            cards_studied=len(reviews),
            cards_easy=counts[Rating.EASY],
            cards_hard=counts[Rating.HARD],
            cards_again=counts[Rating.AGAIN],
            client_id=client_id,
            client_session_id=item.client_session_id,
        )
        self.session.add(study_session)
        self.session.flush()

        for review, rating in reviews:
            reviewed_at = as_utc(review.reviewed_at)
            self.session.add(
                CardReview(
                    session_id=study_session.id,
                    card_id=review.card_id,
                    rating=rating.value,
                    reviewed_at=reviewed_at,
                )
            )
            self.statistics.record_card_review(ReviewEvent(review.card_id, rating, reviewed_at))
        self.session.flush()

        self.statistics.record_session_completion(
            SessionCompletionEvent(
                user_id=user_id,
                deck_id=item.deck_id,
                cards_studied=len(reviews),
                easy_count=counts[Rating.EASY],
                hard_count=counts[Rating.HARD],
                again_count=counts[Rating.AGAIN],
                duration_minutes=max(1, whole_minutes_between(item.started_at, item.completed_at)),
                completed_at=item.completed_at,
                timezone=timezone_name,
            )
        )
        self.directory.set_deck_last_studied(item.deck_id, item.completed_at)
        return study_session.id

    @staticmethod
    def _failed(item: OfflineStudySession, error: str) -> SessionSyncResult:
        return SessionSyncResult(client_session_id=item.client_session_id, status=SyncStatus.FAILED, error=error)

    def download_deck(self, user_id: int, deck_id: int) -> DeckDownloadResponse:
        deck = self.directory.find_deck(user_id, deck_id)
        if not deck:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Deck not found")
        cards = self.directory.cards_of_deck(deck.id)
        progress = self.statistics.mastery.progress_for_cards(card.id for card in cards)
        updated_at = as_utc(deck.updated_at)
        return DeckDownloadResponse(
            deck=DeckDownloadInfo(
                id=deck.id,
                name=deck.name,
                description=deck.description,
                card_count=len(cards),
                last_studied_at=as_utc(deck.last_studied_at) if deck.last_studied_at else None,
                updated_at=updated_at,
                version=updated_at.isoformat(),
            ),
            cards=[
                CardDownloadInfo(
                    id=card.id,
                    front_text=card.front_text,
                    back_text=card.back_text,
                    created_at=as_utc(card.created_at),
                    updated_at=as_utc(card.updated_at),
                )
                for card in cards
            ],
            progress={
                card_id: CardProgressSnapshot(
                    last_reviewed_at=as_utc(row.last_reviewed_at) if row.last_reviewed_at else None,
                    last_rating=row.last_rating,
                    total_reviews=row.total_reviews,
                )
                for card_id, row in progress.items()
            },
            downloaded_at=self.clock(),
        )
