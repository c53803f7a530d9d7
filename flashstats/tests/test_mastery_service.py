from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from flashstats.db.schemas import Card, Deck
from flashstats.models.study import MasteryLevel, Rating
from flashstats.services.mastery_service import MasteryService


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


def _seed_card(session: Session) -> Card:
    deck = Deck(user_id=1, name="French verbs")
    session.add(deck)
    session.commit()
    session.refresh(deck)
    card = Card(deck_id=deck.id, front_text="être", back_text="to be")
    session.add(card)
    session.commit()
    session.refresh(card)
    return card


def _review(service: MasteryService, card_id: int, *ratings: Rating) -> None:
    start = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
    for offset, rating in enumerate(ratings):
        service.record_review(card_id, rating, start + timedelta(minutes=offset))
    service.session.commit()


def test_first_review_creates_learning_progress(session: Session) -> None:
    card = _seed_card(session)
    service = MasteryService(session)
    _review(service, card.id, Rating.HARD)

    progress = service.get_progress(card.id)
    assert progress is not None
    assert progress.mastery_level == MasteryLevel.LEARNING.value
    assert progress.consecutive_easy_count == 0
    assert progress.total_reviews == 1
    assert progress.total_hard == 1
    assert progress.last_rating == "HARD"


def test_three_consecutive_easy_reviews_master_the_card(session: Session) -> None:
    card = _seed_card(session)
    service = MasteryService(session)

    _review(service, card.id, Rating.EASY, Rating.EASY)
    assert service.get_progress(card.id).mastery_level == MasteryLevel.LEARNING.value

    _review(service, card.id, Rating.EASY)
    progress = service.get_progress(card.id)
    assert progress.mastery_level == MasteryLevel.MASTERED.value
    assert progress.consecutive_easy_count == 3
    assert progress.total_easy == 3


def test_non_easy_review_resets_consecutive_count(session: Session) -> None:
    card = _seed_card(session)
    service = MasteryService(session)
    _review(service, card.id, Rating.EASY, Rating.EASY, Rating.EASY, Rating.AGAIN)

    progress = service.get_progress(card.id)
    assert progress.mastery_level == MasteryLevel.LEARNING.value
    assert progress.consecutive_easy_count == 0
    assert progress.total_reviews == progress.total_easy + progress.total_hard + progress.total_again == 4
    assert progress.last_rating == "AGAIN"
    assert progress.last_reviewed_at.replace(tzinfo=timezone.utc) == datetime(2024, 5, 1, 9, 3, tzinfo=timezone.utc)


def test_unreviewed_cards_have_no_progress(session: Session) -> None:
    card = _seed_card(session)
    other = Card(deck_id=card.deck_id, front_text="avoir")
    session.add(other)
    session.commit()
    session.refresh(other)
    service = MasteryService(session)
    _review(service, card.id, Rating.EASY)

    assert service.get_progress(other.id) is None
    progress = service.progress_for_cards([card.id, other.id])
    assert list(progress) == [card.id]
    assert service.progress_for_cards([]) == {}
