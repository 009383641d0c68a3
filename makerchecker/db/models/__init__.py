"""Database models for makerchecker."""

from makerchecker.db.models.request import MakerCheckerRequest

__all__ = [
    "MakerCheckerRequest",
]
