from collections.abc import Generator
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import Header, HTTPException, Query, status
from sqlmodel import Session

from flashstats.api.errors import InvalidTimezoneError
from flashstats.config.settings import get_settings
from flashstats.db.base import get_engine
from flashstats.services.idempotency import IdempotencyStore, InMemoryIdempotencyStore
from flashstats.utils.time import resolve_timezone


def get_session() -> Generator[Session, None, None]:
    """Provide a database session for request scope."""
    engine = get_engine()
    with Session(engine) as session:
        yield session


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> int:
    """Resolve the calling user; an authentication layer replaces this dependency."""
    if not x_user_id or not x_user_id.strip().isdigit():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing or invalid X-User-Id header")
    return int(x_user_id)


@lru_cache
def get_idempotency_store() -> IdempotencyStore:
    settings = get_settings()
    return InMemoryIdempotencyStore(
        max_entries=settings.idempotency_max_entries,
        default_ttl=settings.idempotency_ttl_seconds,
    )


def get_timezone(timezone: str = Query(default="UTC")) -> ZoneInfo:
    zone = resolve_timezone(timezone)
    if zone is None:
        raise InvalidTimezoneError()
    return zone
