"""Pytest configuration and shared fixtures."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from makerchecker.common.config import MakerCheckerConfig
from makerchecker.core.requests import (
    ActionRegistry,
    EventBus,
    EventKind,
    HookStore,
    MakerChecker,
    get_hook_store,
)
from makerchecker.db.session import create_session_factory, init_db

from tests.support.models import Admin, Article, User


@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every session in a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    session = create_session_factory(engine=engine)()
    yield session
    session.close()


@pytest.fixture
def user(session):
    user = User(name="maker")
    session.add(user)
    session.commit()
    return user


@pytest.fixture
def other_user(session):
    user = User(name="checker")
    session.add(user)
    session.commit()
    return user


@pytest.fixture
def admin(session):
    admin = Admin(name="admin")
    session.add(admin)
    session.commit()
    return admin


@pytest.fixture
def article(session):
    article = Article(title="Original", description="Original body")
    session.add(article)
    session.commit()
    return article


@pytest.fixture
def config():
    """Default engine configuration: no allow-lists, no expiry, no uniqueness."""
    return MakerCheckerConfig()


@pytest.fixture
def registry():
    """Fresh action registry with the test models registered."""
    registry = ActionRegistry()
    registry.register_model(Article)
    registry.register_model(User)
    return registry


@pytest.fixture
def hook_store(registry):
    return HookStore(registry)


@pytest.fixture
def global_hook_store():
    """The process-wide hook store, emptied after the test."""
    store = get_hook_store()
    yield store
    store.clear()


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def recorded_events(events):
    """Every event emitted on the bus, in order."""
    recorded = []
    for kind in EventKind:
        events.listen(kind, recorded.append)
    return recorded


@pytest.fixture
def make_maker_checker(session, registry, hook_store, events):
    """Factory for a facade with custom configuration."""
    def factory(**config_values):
        return MakerChecker(
            session,
            MakerCheckerConfig(**config_values),
            registry=registry,
            hook_store=hook_store,
            events=events,
        )
    return factory


@pytest.fixture
def maker_checker(session, config, registry, hook_store, events):
    return MakerChecker(
        session, config, registry=registry, hook_store=hook_store, events=events
    )
