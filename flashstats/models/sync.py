from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import Field

from flashstats.models.base import CamelModel


class SyncStatus(str, Enum):
    SYNCED = "SYNCED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class OfflineCardReview(CamelModel):
    card_id: int
    rating: str
    reviewed_at: datetime


class OfflineStudySession(CamelModel):
    client_session_id: str
    deck_id: int
    session_type: str
    started_at: datetime
    completed_at: datetime
    reviews: List[OfflineCardReview] = Field(default_factory=list)


class SyncStudyProgressRequest(CamelModel):
    client_id: str
    timezone: str = "UTC"
    sessions: List[OfflineStudySession] = Field(default_factory=list)


class SessionSyncResult(CamelModel):
    client_session_id: str
    status: SyncStatus
    server_session_id: Optional[int] = None
    reviews_synced: int = 0
    error: Optional[str] = None


class SyncSummary(CamelModel):
    total: int
    synced: int
    skipped: int
    failed: int


class SyncStudyProgressResponse(CamelModel):
    synced_at: datetime
    results: List[SessionSyncResult]
    summary: SyncSummary


class DeckDownloadInfo(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    card_count: int
    last_studied_at: Optional[datetime] = None
    updated_at: datetime
    version: str


class CardDownloadInfo(CamelModel):
    id: int
    front_text: str
    back_text: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class CardProgressSnapshot(CamelModel):
    last_reviewed_at: Optional[datetime] = None
    last_rating: Optional[str] = None
    total_reviews: int = 0


class DeckDownloadResponse(CamelModel):
    deck: DeckDownloadInfo
    cards: List[CardDownloadInfo]
    progress: Dict[int, CardProgressSnapshot]
    downloaded_at: datetime
