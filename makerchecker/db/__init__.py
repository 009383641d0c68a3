"""Database layer for makerchecker."""

from makerchecker.db.base import Base
from makerchecker.db.session import create_session_factory, init_db

__all__ = ["Base", "create_session_factory", "init_db"]
