from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import Session as DBSession, select

from flashstats.db.schemas import Card, Deck
from flashstats.utils.time import as_utc


class DeckDirectory:
    """Deck and card lookups owned by the surrounding CRUD layer."""

    def __init__(self, session: DBSession) -> None:
        self.session = session

    def find_deck(self, user_id: int, deck_id: int) -> Optional[Deck]:
        deck = self.session.get(Deck, deck_id)
        if not deck or deck.user_id != user_id:
            return None
        return deck

    def cards_of_deck(self, deck_id: int) -> List[Card]:
        statement = select(Card).where(Card.deck_id == deck_id).order_by(Card.id)
        return list(self.session.exec(statement).all())

    def card_exists(self, card_id: int, deck_id: Optional[int] = None) -> bool:
        """True when the card exists and, if ``deck_id`` is given, belongs to that deck."""
        card = self.session.get(Card, card_id)
        if not card:
            return False
        return deck_id is None or card.deck_id == deck_id

    def set_deck_last_studied(self, deck_id: int, timestamp: datetime) -> None:
        deck = self.session.get(Deck, deck_id)
        if not deck:
            return
        deck.last_studied_at = as_utc(timestamp)
        self.session.add(deck)
        self.session.flush()

    def count_decks(self, user_id: int) -> int:
        statement = select(func.count()).select_from(Deck).where(Deck.user_id == user_id)
        return int(self.session.exec(statement).one())

    def recently_studied_decks(self, user_id: int, limit: int) -> List[Deck]:
        statement = (
            select(Deck)
            .where(Deck.user_id == user_id)
            .where(Deck.last_studied_at.is_not(None))
            .order_by(Deck.last_studied_at.desc(), Deck.id)
            .limit(limit)
        )
        return list(self.session.exec(statement).all())

    def card_ids_of_user(self, user_id: int) -> List[int]:
        statement = (
            select(Card.id)
            .join(Deck, Deck.id == Card.deck_id)
            .where(Deck.user_id == user_id)
            .order_by(Card.id)
        )
        return list(self.session.exec(statement).all())
