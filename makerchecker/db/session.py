"""Engine and session factory helpers."""

from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from makerchecker.db.base import Base


def create_session_factory(
    database_url: Optional[str] = None,
    *,
    engine: Optional[Engine] = None,
    echo: bool = False,
) -> sessionmaker:
    """Build a session factory bound to ``database_url`` or an existing engine.

    Falls back to the configured ``MAKERCHECKER_DATABASE_URL`` when neither is
    given.
    """
    if engine is None:
        if database_url is None:
            from makerchecker.core.config import get_settings

            settings = get_settings()
            database_url = settings.database_url
            echo = echo or settings.database_echo
        engine = create_engine(database_url, echo=echo, future=True)

    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create the request table (and any application models on the same Base)."""
    import makerchecker.db.models  # noqa: F401  register mappers

    Base.metadata.create_all(bind=engine)
