from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends

from flashstats.api.dependencies import get_current_user_id, get_session, get_timezone
from flashstats.models.study import (
    ReviewRequest,
    ReviewResponse,
    SessionSummary,
    StartSessionRequest,
    StartSessionResponse,
)
from flashstats.services.study_service import StudyService


def get_study_service(db=Depends(get_session)) -> StudyService:
    return StudyService(db)


router = APIRouter(tags=["study"])


@router.post("/decks/{deck_id}/study", response_model=StartSessionResponse, status_code=201)
def start_session(
    deck_id: int,
    payload: Optional[StartSessionRequest] = None,
    user_id: int = Depends(get_current_user_id),
    service: StudyService = Depends(get_study_service),
) -> StartSessionResponse:
    payload = payload or StartSessionRequest()
    return service.start_session(user_id, deck_id, payload.session_type)


@router.post("/study/{session_id}/reviews", response_model=ReviewResponse, status_code=201)
def submit_review(
    session_id: int,
    payload: ReviewRequest,
    user_id: int = Depends(get_current_user_id),
    service: StudyService = Depends(get_study_service),
) -> ReviewResponse:
    return service.submit_review(user_id, session_id, payload.card_id, payload.rating)


@router.post("/study/{session_id}/complete", response_model=SessionSummary)
def complete_session(
    session_id: int,
    zone: ZoneInfo = Depends(get_timezone),
    user_id: int = Depends(get_current_user_id),
    service: StudyService = Depends(get_study_service),
) -> SessionSummary:
    return service.complete_session(user_id, session_id, zone.key)


__all__ = ["router"]
