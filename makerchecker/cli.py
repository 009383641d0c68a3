"""
Command line interface for makerchecker.

Usage:
    makerchecker expire-overdue
    makerchecker --config ./makerchecker.yaml --database-url sqlite:///app.db expire-overdue

Meant to be run on a schedule (cron, systemd timer). Exit status is 0 when
the sweep ran and 1 when no expiration window is configured.
"""

import argparse
import sys

from .common.config import MakerCheckerConfig, load_typed_config
from .common.logger import configure_logging, get_logger
from .core.config import get_settings
from .core.requests import MakerChecker
from .db.session import create_session_factory

logger = get_logger("cli")


def _load_engine_config(config_path: str) -> MakerCheckerConfig:
    try:
        return load_typed_config(config_path)
    except FileNotFoundError:
        logger.warning(f"Configuration file not found: {config_path}; using defaults")
        return MakerCheckerConfig()


def cmd_expire_overdue(args) -> int:
    """Expire pending requests that outlived the configured window."""
    config = _load_engine_config(args.config)
    session_factory = create_session_factory(args.database_url)

    session = session_factory()
    try:
        result = MakerChecker(session, config).expire_overdue_requests()
    finally:
        session.close()

    if result.misconfigured:
        print(
            "Error: no expiration window configured "
            "(set request_expiration_in_minutes)",
            file=sys.stderr,
        )
        return 1

    print(f"Expired {result.expired} requests")
    return 0


def main(argv=None) -> int:
    settings = get_settings()

    parser = argparse.ArgumentParser(
        prog="makerchecker",
        description="Maintenance commands for maker-checker requests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        default=settings.config_path,
        help="Path to the makerchecker YAML configuration",
    )
    parser.add_argument(
        "--database-url",
        default=settings.database_url,
        help="SQLAlchemy database URL",
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")
    subparsers.add_parser(
        "expire-overdue", help="Expire pending requests older than the expiration window"
    )

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    configure_logging(settings, level=args.log_level)

    if args.command == "expire-overdue":
        return cmd_expire_overdue(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
