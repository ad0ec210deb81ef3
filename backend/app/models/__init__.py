"""Database models package."""

from app.models.announcement import Announcement
from app.models.custom_game import CustomGame, CustomGameMap, CustomGameReview, CustomGameVote
from app.models.review import ReviewRule, ReviewTask, ReviewVote
from app.models.run import (
    CustomGamePlayerStats,
    CustomGameRun,
    CustomGameRunEvent,
    CustomGameRunPlayer,
)

__all__ = [
    "Announcement",
    "CustomGame",
    "CustomGameMap",
    "CustomGameReview",
    "CustomGameVote",
    "ReviewRule",
    "ReviewTask",
    "ReviewVote",
    "CustomGameRun",
    "CustomGameRunPlayer",
    "CustomGameRunEvent",
    "CustomGamePlayerStats",
]
