from .deck import Deck, Card
from .study import StudySession, CardReview
from .statistics import CardProgress, UserStatistics, DailyStudyStats

__all__ = [
    "Deck",
    "Card",
    "StudySession",
    "CardReview",
    "CardProgress",
    "UserStatistics",
    "DailyStudyStats",
]
