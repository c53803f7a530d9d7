from fastapi import APIRouter, Depends

from flashstats.api.dependencies import get_current_user_id, get_idempotency_store, get_session
from flashstats.api.errors import SyncRequestError
from flashstats.config.settings import get_settings
from flashstats.models.sync import DeckDownloadResponse, SyncStudyProgressRequest, SyncStudyProgressResponse
from flashstats.services.idempotency import IdempotencyStore
from flashstats.services.sync_service import SyncService
from flashstats.utils.time import resolve_timezone


def get_sync_service(
    db=Depends(get_session),
    store: IdempotencyStore = Depends(get_idempotency_store),
) -> SyncService:
    return SyncService(db, store)


router = APIRouter(tags=["sync"])


@router.post("/sync/study-progress", response_model=SyncStudyProgressResponse)
def sync_study_progress(
    payload: SyncStudyProgressRequest,
    user_id: int = Depends(get_current_user_id),
    service: SyncService = Depends(get_sync_service),
) -> SyncStudyProgressResponse:
    max_sessions = get_settings().sync_max_sessions
    if not payload.sessions:
        raise SyncRequestError("No sessions provided", "EMPTY_SESSIONS")
    if len(payload.sessions) > max_sessions:
        raise SyncRequestError(f"Maximum {max_sessions} sessions per request", "TOO_MANY_SESSIONS")
    if resolve_timezone(payload.timezone) is None:
        raise SyncRequestError("Invalid timezone", "INVALID_TIMEZONE")
    return service.sync_batch(user_id, payload)


@router.get("/decks/{deck_id}/download", response_model=DeckDownloadResponse)
def download_deck(
    deck_id: int,
    user_id: int = Depends(get_current_user_id),
    service: SyncService = Depends(get_sync_service),
) -> DeckDownloadResponse:
    return service.download_deck(user_id, deck_id)


__all__ = ["router"]
