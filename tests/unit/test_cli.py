"""Tests for the makerchecker command line interface."""

import logging
from datetime import timedelta

import pytest
from sqlalchemy import create_engine

from makerchecker.cli import main
from makerchecker.core.requests import MakerChecker
from makerchecker.common.config import MakerCheckerConfig
from makerchecker.db.models.request import MakerCheckerRequest, utcnow
from makerchecker.db.session import create_session_factory, init_db

from tests.support.models import Article, User


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers main() attached so they do not outlive captured streams."""
    yield
    root = logging.getLogger("makerchecker")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


@pytest.fixture
def database(tmp_path, registry):
    """File-backed database with one overdue and one fresh request."""
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    engine = create_engine(url)
    init_db(engine)

    session = create_session_factory(engine=engine)()
    user = User(name="maker")
    session.add(user)
    session.commit()

    maker_checker = MakerChecker(session, MakerCheckerConfig(), registry=registry)
    overdue = maker_checker.request().made_by(user).to_create(Article, {"title": "old"}).save()
    maker_checker.request().made_by(user).to_create(Article, {"title": "new"}).save()
    overdue.made_at = utcnow() - timedelta(hours=3)
    session.commit()
    session.close()

    yield url, engine
    engine.dispose()


def _write_config(tmp_path, content):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(content)
    return str(config_file)


class TestExpireOverdue:
    """Tests for the expire-overdue command."""

    def test_expires_overdue_requests(self, tmp_path, database, capsys):
        url, engine = database
        config_path = _write_config(tmp_path, "request_expiration_in_minutes: 60\n")

        exit_code = main(["--config", config_path, "--database-url", url, "expire-overdue"])

        assert exit_code == 0
        assert "Expired 1 requests" in capsys.readouterr().out

        session = create_session_factory(engine=engine)()
        try:
            statuses = sorted(r.status for r in session.query(MakerCheckerRequest))
        finally:
            session.close()
        assert statuses == ["expired", "pending"]

    def test_no_window_configured(self, tmp_path, database, capsys):
        """Test that a missing window is reported, not raised."""
        url, _ = database
        config_path = _write_config(tmp_path, "ensure_requests_are_unique: true\n")

        exit_code = main(["--config", config_path, "--database-url", url, "expire-overdue"])

        assert exit_code == 1
        assert "no expiration window configured" in capsys.readouterr().err

    def test_missing_config_file_uses_defaults(self, tmp_path, database):
        url, _ = database

        exit_code = main([
            "--config", str(tmp_path / "missing.yaml"),
            "--database-url", url,
            "expire-overdue",
        ])

        assert exit_code == 1


class TestMain:
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "expire-overdue" in capsys.readouterr().out
