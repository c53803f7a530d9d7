from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class CardProgress(SQLModel, table=True):
    __tablename__ = "card_progress"
    __table_args__ = (UniqueConstraint("card_id", name="ux_card_progress_card"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    card_id: int = Field(foreign_key="cards.id", index=True)
    consecutive_easy_count: int = Field(default=0)
    total_reviews: int = Field(default=0)
    total_easy: int = Field(default=0)
    total_hard: int = Field(default=0)
    total_again: int = Field(default=0)
    last_rating: Optional[str] = Field(default=None)
    last_reviewed_at: Optional[datetime] = Field(default=None)
    mastery_level: str = Field(default="NEW", index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class UserStatistics(SQLModel, table=True):
    __tablename__ = "user_statistics"
    __table_args__ = (UniqueConstraint("user_id", name="ux_user_statistics_user"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    current_streak: int = Field(default=0)
    longest_streak: int = Field(default=0)
    last_study_date: Optional[date] = Field(default=None)
    total_cards_studied: int = Field(default=0)
    total_study_time_minutes: int = Field(default=0)
    total_sessions: int = Field(default=0)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DailyStudyStats(SQLModel, table=True):
    __tablename__ = "daily_study_stats"
    __table_args__ = (UniqueConstraint("user_id", "study_date", name="ux_daily_study_stats_user_date"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    study_date: date = Field(index=True)
    cards_studied: int = Field(default=0)
    time_minutes: int = Field(default=0)
    sessions_completed: int = Field(default=0)
    easy_count: int = Field(default=0)
    hard_count: int = Field(default=0)
    again_count: int = Field(default=0)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
