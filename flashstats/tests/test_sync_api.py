from datetime import datetime, timedelta, timezone
from typing import Generator, List, Optional
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine, select

from flashstats.api.dependencies import get_idempotency_store, get_session
from flashstats.db.schemas import Card, CardProgress, CardReview, DailyStudyStats, Deck, StudySession, UserStatistics
from flashstats.main import app
from flashstats.services.idempotency import InMemoryIdempotencyStore, sync_key
from flashstats.utils.time import local_date

HEADERS = {"X-User-Id": "1"}


@pytest.fixture(name="session")
def session_fixture() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="store")
def store_fixture() -> InMemoryIdempotencyStore:
    return InMemoryIdempotencyStore(max_entries=100, default_ttl=3600)


@pytest.fixture(name="client")
def client_fixture(session: Session, store: InMemoryIdempotencyStore) -> Generator[TestClient, None, None]:
    def override_get_session() -> Generator[Session, None, None]:
        yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_idempotency_store] = lambda: store
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()


def _seed_deck(session: Session, user_id: int = 1, cards: int = 3) -> tuple[Deck, List[Card]]:
    deck = Deck(user_id=user_id, name=f"Deck of user {user_id}", description="offline deck")
    session.add(deck)
    session.commit()
    session.refresh(deck)
    seeded = [Card(deck_id=deck.id, front_text=f"front {i}", back_text=f"back {i}") for i in range(cards)]
    session.add_all(seeded)
    session.commit()
    for card in seeded:
        session.refresh(card)
    return deck, seeded


def _session_payload(
    client_session_id: str,
    deck_id: int,
    reviews: Optional[list] = None,
    session_type: str = "STUDY",
    started_at: Optional[datetime] = None,
    completed_at: Optional[datetime] = None,
) -> dict:
    now = datetime.now(timezone.utc)
    completed_at = completed_at or now - timedelta(minutes=5)
    started_at = started_at or completed_at - timedelta(minutes=15)
    return {
        "clientSessionId": client_session_id,
        "deckId": deck_id,
        "sessionType": session_type,
        "startedAt": started_at.isoformat(),
        "completedAt": completed_at.isoformat(),
        "reviews": reviews or [],
    }


def _review(card_id: int, rating: str) -> dict:
    return {
        "cardId": card_id,
        "rating": rating,
        "reviewedAt": (datetime.now(timezone.utc) - timedelta(minutes=10)).isoformat(),
    }


def test_sync_requires_user(client: TestClient) -> None:
    response = client.post("/sync/study-progress", json={"clientId": "device-1", "sessions": []})
    assert response.status_code == 401


def test_sync_single_session(client: TestClient, session: Session) -> None:
    deck, cards = _seed_deck(session)
    payload = {
        "clientId": "device-1",
        "sessions": [
            _session_payload(
                "s-1",
                deck.id,
                reviews=[_review(cards[0].id, "EASY"), _review(cards[1].id, "hard"), _review(cards[2].id, "Again")],
            )
        ],
    }

    response = client.post("/sync/study-progress", json=payload, headers=HEADERS)
    assert response.status_code == 200
    data = response.json()
    assert data["summary"] == {"total": 1, "synced": 1, "skipped": 0, "failed": 0}
    result = data["results"][0]
    assert result["status"] == "SYNCED"
    assert result["reviewsSynced"] == 3
    assert result["error"] is None

    stored = session.get(StudySession, result["serverSessionId"])
    assert stored.client_id == "device-1"
    assert stored.client_session_id == "s-1"
    assert (stored.cards_studied, stored.cards_easy, stored.cards_hard, stored.cards_again) == (3, 1, 1, 1)
    assert len(session.exec(select(CardReview).where(CardReview.session_id == stored.id)).all()) == 3

    daily = session.exec(select(DailyStudyStats).where(DailyStudyStats.user_id == 1)).all()
    assert len(daily) == 1
    assert daily[0].time_minutes == 15
    assert daily[0].sessions_completed == 1
    session.refresh(deck)
    assert deck.last_studied_at is not None


def test_resync_is_skipped_without_double_counting(client: TestClient, session: Session) -> None:
    deck, cards = _seed_deck(session)
    payload = {
        "clientId": "device-1",
        "sessions": [_session_payload("s-1", deck.id, reviews=[_review(cards[0].id, "EASY")])],
    }

    first = client.post("/sync/study-progress", json=payload, headers=HEADERS).json()
    second = client.post("/sync/study-progress", json=payload, headers=HEADERS).json()

    assert second["results"][0]["status"] == "SKIPPED"
    assert second["results"][0]["serverSessionId"] == first["results"][0]["serverSessionId"]
    assert second["summary"] == {"total": 1, "synced": 0, "skipped": 1, "failed": 0}
    assert len(session.exec(select(StudySession)).all()) == 1
    progress = session.exec(select(CardProgress).where(CardProgress.card_id == cards[0].id)).one()
    assert progress.total_reviews == 1
    daily = session.exec(select(DailyStudyStats)).one()
    assert daily.sessions_completed == 1
    totals = session.exec(select(UserStatistics).where(UserStatistics.user_id == 1)).one()
    assert totals.total_sessions == 1
    assert totals.total_cards_studied == 1


def test_reviews_of_cards_outside_the_session_deck_are_dropped(client: TestClient, session: Session) -> None:
    deck, cards = _seed_deck(session)
    _, other_cards = _seed_deck(session, user_id=2)
    _, sibling_cards = _seed_deck(session, cards=1)
    payload = {
        "clientId": "device-1",
        "sessions": [
            _session_payload("s-foreign-card", deck.id, reviews=[_review(other_cards[0].id, "AGAIN")]),
            _session_payload(
                "s-mixed-decks",
                deck.id,
                reviews=[_review(cards[0].id, "EASY"), _review(sibling_cards[0].id, "HARD")],
            ),
        ],
    }

    data = client.post("/sync/study-progress", json=payload, headers=HEADERS).json()
    foreign, mixed = data["results"]
    assert foreign["status"] == "FAILED"
    assert foreign["error"] == "No valid reviews"
    assert mixed["status"] == "SYNCED"
    assert mixed["reviewsSynced"] == 1

    progressed = {row.card_id for row in session.exec(select(CardProgress)).all()}
    assert progressed == {cards[0].id}
    reviewed = {row.card_id for row in session.exec(select(CardReview)).all()}
    assert reviewed == {cards[0].id}


def test_same_client_session_id_from_another_client_is_synced(client: TestClient, session: Session) -> None:
    deck, _ = _seed_deck(session)
    for client_id in ("device-1", "device-2"):
        payload = {"clientId": client_id, "sessions": [_session_payload("s-1", deck.id)]}
        data = client.post("/sync/study-progress", json=payload, headers=HEADERS).json()
        assert data["results"][0]["status"] == "SYNCED"
    assert len(session.exec(select(StudySession)).all()) == 2


def test_partial_success_batch(client: TestClient, session: Session, store: InMemoryIdempotencyStore) -> None:
    deck, cards = _seed_deck(session)
    foreign_deck, _ = _seed_deck(session, user_id=2)
    now = datetime.now(timezone.utc)
    sessions = [
        _session_payload("s-ok", deck.id, reviews=[_review(cards[0].id, "EASY")]),
        _session_payload("s-ok", deck.id, reviews=[_review(cards[0].id, "EASY")]),
        _session_payload("s-future", deck.id, completed_at=now + timedelta(hours=1)),
        _session_payload("s-old", deck.id, started_at=now - timedelta(days=31), completed_at=now - timedelta(days=30, hours=23)),
        _session_payload("s-foreign", foreign_deck.id),
        _session_payload("s-type", deck.id, session_type="CRAM"),
        _session_payload("s-ratings", deck.id, reviews=[_review(cards[0].id, "PERFECT")]),
        _session_payload("s-missing-card", deck.id, reviews=[_review(9999, "EASY")]),
        _session_payload(
            "s-mixed",
            deck.id,
            reviews=[_review(cards[1].id, "HARD"), _review(9999, "EASY"), _review(cards[2].id, "MAYBE")],
        ),
        _session_payload("s-flash", deck.id, session_type="flash_review"),
    ]

    response = client.post("/sync/study-progress", json={"clientId": "device-1", "sessions": sessions}, headers=HEADERS)
    assert response.status_code == 200
    data = response.json()
    by_id = {}
    for result in data["results"]:
        by_id.setdefault(result["clientSessionId"], []).append(result)

    synced, duplicate = by_id["s-ok"]
    assert synced["status"] == "SYNCED"
    assert duplicate["status"] == "SKIPPED"
    assert duplicate["serverSessionId"] == synced["serverSessionId"]
    assert by_id["s-future"][0]["error"] == "Timestamps cannot be in the future"
    assert by_id["s-old"][0]["error"] == "Session is older than 30 days"
    assert by_id["s-foreign"][0]["error"] == "Deck not found or not owned"
    assert by_id["s-type"][0]["error"] == "Invalid session type: CRAM"
    assert by_id["s-ratings"][0]["error"] == "All reviews have invalid ratings"
    assert by_id["s-missing-card"][0]["error"] == "No valid reviews"
    assert by_id["s-mixed"][0]["status"] == "SYNCED"
    assert by_id["s-mixed"][0]["reviewsSynced"] == 1
    assert by_id["s-flash"][0]["status"] == "SYNCED"
    assert by_id["s-flash"][0]["reviewsSynced"] == 0
    assert data["summary"] == {"total": 10, "synced": 3, "skipped": 1, "failed": 6}

    assert store.get(sync_key("device-1", "s-ok")) == synced["serverSessionId"]
    assert store.get(sync_key("device-1", "s-future")) is None
    flash = session.get(StudySession, by_id["s-flash"][0]["serverSessionId"])
    assert flash.session_type == "FLASH_REVIEW"


def test_failed_session_can_be_retried(client: TestClient, session: Session) -> None:
    deck, _ = _seed_deck(session)
    bad = {"clientId": "device-1", "sessions": [_session_payload("s-1", deck.id, session_type="CRAM")]}
    good = {"clientId": "device-1", "sessions": [_session_payload("s-1", deck.id)]}

    assert client.post("/sync/study-progress", json=bad, headers=HEADERS).json()["summary"]["failed"] == 1
    assert client.post("/sync/study-progress", json=good, headers=HEADERS).json()["summary"]["synced"] == 1


def test_sync_assigns_days_in_request_timezone(client: TestClient, session: Session) -> None:
    deck, _ = _seed_deck(session)
    completed_at = datetime.now(timezone.utc) - timedelta(hours=2)
    payload = {
        "clientId": "device-1",
        "timezone": "Asia/Tokyo",
        "sessions": [_session_payload("s-1", deck.id, completed_at=completed_at)],
    }

    assert client.post("/sync/study-progress", json=payload, headers=HEADERS).status_code == 200
    daily = session.exec(select(DailyStudyStats)).one()
    assert daily.study_date == local_date(completed_at, ZoneInfo("Asia/Tokyo"))


@pytest.mark.parametrize(
    ("sessions", "timezone_name", "code"),
    [
        (0, "UTC", "EMPTY_SESSIONS"),
        (51, "UTC", "TOO_MANY_SESSIONS"),
        (1, "Not/AZone", "INVALID_TIMEZONE"),
    ],
)
def test_invalid_envelopes_are_rejected(
    client: TestClient, session: Session, sessions: int, timezone_name: str, code: str
) -> None:
    deck, _ = _seed_deck(session)
    payload = {
        "clientId": "device-1",
        "timezone": timezone_name,
        "sessions": [_session_payload(f"s-{i}", deck.id) for i in range(sessions)],
    }

    response = client.post("/sync/study-progress", json=payload, headers=HEADERS)
    assert response.status_code == 400
    assert response.json()["code"] == code
    assert session.exec(select(StudySession)).all() == []


def test_download_deck(client: TestClient, session: Session) -> None:
    deck, cards = _seed_deck(session)
    foreign_deck, _ = _seed_deck(session, user_id=2)
    payload = {
        "clientId": "device-1",
        "sessions": [_session_payload("s-1", deck.id, reviews=[_review(cards[1].id, "EASY")])],
    }
    client.post("/sync/study-progress", json=payload, headers=HEADERS)

    response = client.get(f"/decks/{deck.id}/download", headers=HEADERS)
    assert response.status_code == 200
    data = response.json()
    assert data["deck"]["name"] == deck.name
    assert data["deck"]["description"] == "offline deck"
    assert data["deck"]["cardCount"] == 3
    assert data["deck"]["lastStudiedAt"] is not None
    assert [card["id"] for card in data["cards"]] == [card.id for card in cards]
    assert list(data["progress"]) == [str(cards[1].id)]
    assert data["progress"][str(cards[1].id)]["lastRating"] == "EASY"
    assert data["progress"][str(cards[1].id)]["totalReviews"] == 1

    assert client.get(f"/decks/{foreign_deck.id}/download", headers=HEADERS).status_code == 404
