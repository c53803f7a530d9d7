from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends

from flashstats.api.dependencies import get_current_user_id, get_session, get_timezone
from flashstats.models.statistics import DeckBreakdown, StatisticsOverview
from flashstats.services.statistics_service import StatisticsService


def get_statistics_service(db=Depends(get_session)) -> StatisticsService:
    return StatisticsService(db)


router = APIRouter(prefix="/statistics", tags=["statistics"])


@router.get("/overview", response_model=StatisticsOverview)
def get_overview(
    zone: ZoneInfo = Depends(get_timezone),
    user_id: int = Depends(get_current_user_id),
    service: StatisticsService = Depends(get_statistics_service),
) -> StatisticsOverview:
    return service.get_overview(user_id, zone)


@router.get("/decks/{deck_id}", response_model=DeckBreakdown)
def get_deck_progress(
    deck_id: int,
    user_id: int = Depends(get_current_user_id),
    service: StatisticsService = Depends(get_statistics_service),
) -> DeckBreakdown:
    return service.deck_progress(user_id, deck_id)


__all__ = ["router"]
