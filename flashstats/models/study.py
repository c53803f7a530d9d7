from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional

from flashstats.models.base import CamelModel


class Rating(str, Enum):
    EASY = "EASY"
    HARD = "HARD"
    AGAIN = "AGAIN"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Rating"]:
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class SessionType(str, Enum):
    STUDY = "STUDY"
    FLASH_REVIEW = "FLASH_REVIEW"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["SessionType"]:
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class MasteryLevel(str, Enum):
    NEW = "NEW"
    LEARNING = "LEARNING"
    MASTERED = "MASTERED"


@dataclass(frozen=True)
class ReviewEvent:
    card_id: int
    rating: Rating
    reviewed_at: datetime


@dataclass(frozen=True)
class SessionCompletionEvent:
    user_id: int
    deck_id: int
    cards_studied: int
    easy_count: int
    hard_count: int
    again_count: int
    duration_minutes: int
    completed_at: datetime
    timezone: str = "UTC"


class StudyCard(CamelModel):
    id: int
    front_text: str
    back_text: str = ""


class StartSessionRequest(CamelModel):
    session_type: SessionType = SessionType.STUDY


class StartSessionResponse(CamelModel):
    session_id: int
    deck_id: int
    deck_name: str
    session_type: SessionType
    cards: List[StudyCard]
    total_cards: int
    started_at: datetime


class ReviewRequest(CamelModel):
    card_id: int
    rating: Rating


class ReviewResponse(CamelModel):
    id: int
    session_id: int
    card_id: int
    rating: Rating
    reviewed_at: datetime


class SessionSummary(CamelModel):
    session_id: int
    deck_id: int
    deck_name: str
    total_cards: int
    easy_count: int
    hard_count: int
    again_count: int
    missed_count: int
    started_at: datetime
    completed_at: datetime
