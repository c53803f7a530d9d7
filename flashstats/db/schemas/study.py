from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class StudySession(SQLModel, table=True):
    __tablename__ = "study_sessions"

    id: Optional[int] = Field(default=None, primary_key=True)
    deck_id: int = Field(foreign_key="decks.id", index=True)
    session_type: str = Field(default="STUDY", index=True)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = Field(default=None, index=True)
    cards_studied: int = Field(default=0)
    cards_easy: int = Field(default=0)
    cards_hard: int = Field(default=0)
    cards_again: int = Field(default=0)
    # origin of sessions uploaded by the offline sync endpoint
    client_id: Optional[str] = Field(default=None, index=True)
    client_session_id: Optional[str] = Field(default=None)


class CardReview(SQLModel, table=True):
    __tablename__ = "card_reviews"

    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: int = Field(foreign_key="study_sessions.id", index=True)
    card_id: int = Field(foreign_key="cards.id", index=True)
    rating: str
    reviewed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
