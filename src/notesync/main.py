#!/usr/bin/env python
"""Main entry point for the notesync server."""
import argparse
import json
import logging
import os
import sys
from pathlib import Path

from notesync.config import NotesyncConfig, config
from notesync.exceptions import ConfigurationError, StorageError
from notesync.observability import configure_logging
from notesync.server.mcp_server import NotesMcpServer
from notesync.services.sync_service import SyncService
from notesync.storage.engine import StorageEngine
from notesync.storage.note_repository import NoteRepository
from notesync.storage.sync_tracker import SyncStatusTracker


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Local-first note store with remote sync")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("NOTESYNC_DATABASE_PATH")
    )
    parser.add_argument(
        "--api-url",
        help="Base URL of the remote sync API",
        type=str,
        default=os.environ.get("NOTESYNC_SYNC_API_URL")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("NOTESYNC_LOG_LEVEL", "INFO").upper()
    )
    parser.add_argument(
        "--sync-once",
        help="Run a single sync cycle, print the result as JSON and exit",
        action="store_true",
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)
    if args.api_url:
        config.sync_api_url = args.api_url
    config.log_level = args.log_level
    # Re-run validation over the overridden values
    NotesyncConfig.model_validate(config.model_dump())


def run_sync_once(storage: StorageEngine) -> int:
    """Run one sync cycle against the configured remote.

    Returns:
        Process exit code: 0 if the cycle succeeded, 1 otherwise.
    """
    service = SyncService(
        SyncStatusTracker(storage),
        api_url=config.sync_api_url,
        timeout=config.sync_timeout,
    )
    result = service.sync()
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.success else 1


def main(argv=None):
    """Run the notesync server."""
    args = parse_args(argv)
    try:
        update_config(args)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    # Configure logging (console + persistent file logging with rotation)
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(config.log_dir, level=log_level, console=True)
    except Exception as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    # Open and migrate the database; the app cannot run without the schema
    try:
        storage = StorageEngine.open()
    except StorageError as e:
        logger.error(f"Failed to open database: {e}")
        sys.exit(1)

    with storage:
        try:
            logger.info(f"Using SQLite database: {storage.path}")
            storage.migrate()
            logger.info(
                f"notesync {config.server_version}: database holds "
                f"{NoteRepository(storage).count_notes()} notes"
            )
        except StorageError as e:
            logger.error(f"Failed to initialize database: {e}")
            sys.exit(1)

        if args.sync_once:
            sys.exit(run_sync_once(storage))

        try:
            logger.info("Starting notesync MCP server")
            server = NotesMcpServer(storage)
            server.run()
        except Exception as e:
            logger.error(f"Error running server: {e}")
            sys.exit(1)


if __name__ == "__main__":
    main()
