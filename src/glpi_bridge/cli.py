"""Command line interface for the GLPI bridge."""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from .api_clients.glpi import GlpiClient
from .auth.session_handler import close_session_provider, get_session_provider
from .database import DatabaseService, close_database, init_database
from .exceptions import GlpiError, SyncEngineError, ValidationError
from .main import build_sync_engine, main as serve_main
from .utils.logging import get_logger, setup_logging


logger = get_logger("glpi_bridge.cli")


async def run_sync(
    dry_run: bool = False,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    atomic: bool = False
) -> dict:
    """Run one user sync against the configured GLPI and local database."""
    db_service = DatabaseService(init_database(create_tables=True))
    client = GlpiClient.from_settings(get_session_provider())

    try:
        engine = build_sync_engine(client, db_service)
        report = await engine.run(dry_run=dry_run, limit=limit, offset=offset, atomic=atomic)
        return report.to_dict()
    finally:
        await client.close()
        await close_session_provider()
        close_database()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="glpi-bridge",
        description="Mirror GLPI users locally and expose a simplified GLPI API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s sync-users --dry-run           # Classify remote users without writing
  %(prog)s sync-users --limit 20          # Sync the first 20 remote users
  %(prog)s sync-users --atomic            # Commit the whole batch in one transaction
  %(prog)s serve                          # Start the HTTP server
  %(prog)s init-db                        # Create database tables
        """
    )
    parser.add_argument(
        "--log-level",
        help="Override the configured log level"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync-users", help="Synchronize GLPI users into the local database")
    sync_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would change without writing"
    )
    sync_parser.add_argument(
        "--limit",
        type=int,
        help="Number of remote users to fetch (GLPI returns only the first 50 when omitted)"
    )
    sync_parser.add_argument("--offset", type=int, help="Index of the first remote user")
    sync_parser.add_argument(
        "--atomic",
        action="store_true",
        help="Write the whole batch in a single transaction"
    )

    subparsers.add_parser("serve", help="Run the HTTP server")
    subparsers.add_parser("init-db", help="Create database tables")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    if args.log_level:
        setup_logging(log_level=args.log_level)
    else:
        setup_logging()

    if args.command == "init-db":
        init_database(create_tables=True)
        close_database()
        print("Database tables created")
        return 0

    if args.command == "serve":
        try:
            asyncio.run(serve_main())
        except KeyboardInterrupt:
            print("\nShutdown requested by user")
        return 0

    try:
        report = asyncio.run(run_sync(
            dry_run=args.dry_run,
            limit=args.limit,
            offset=args.offset,
            atomic=args.atomic
        ))
    except (GlpiError, SyncEngineError, ValidationError) as e:
        logger.error("User sync failed", error=str(e))
        print(f"Sync failed: {e}", file=sys.stderr)
        return 1

    print(json.dumps(report, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
