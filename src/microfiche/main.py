#!/usr/bin/env python
"""Main entry point for Microfiche."""
import argparse
import atexit
import logging
import os
import sys
from pathlib import Path

from microfiche.config import config
from microfiche.exceptions import MicroficheError
from microfiche.models.schema import FicheSchema
from microfiche.observability import configure_logging, metrics
from microfiche.services.fiche_service import open_service


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Microfiche knowledge store")
    parser.add_argument(
        "--file",
        help="Data file to open (CSV, or .db/.sqlite/.sqlite3 for SQLite)",
        type=str,
        default=os.environ.get("MICROFICHE_DATA_FILE")
    )
    parser.add_argument(
        "--schema",
        help="Hierarchy depth",
        choices=[schema.value for schema in FicheSchema],
        default=None
    )
    parser.add_argument(
        "--mode",
        help="Run the interactive shell or the MCP server",
        choices=["shell", "mcp"],
        default="shell"
    )
    parser.add_argument(
        "--validate",
        help="Check the data file for problems and exit",
        action="store_true"
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=config.log_level
    )
    parser.add_argument(
        "--log-dir",
        help="Directory for rotating log files",
        type=str,
        default=None
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.file:
        config.data_file = Path(args.file).expanduser()
    if args.schema:
        config.schema_kind = FicheSchema(args.schema)
    if args.log_dir:
        config.log_dir = Path(args.log_dir).expanduser()


def _save_metrics_on_exit():
    """Save metrics to disk on shutdown."""
    try:
        if metrics.save_metrics():
            logging.getLogger(__name__).info("Metrics saved to disk on shutdown")
    except Exception as e:
        logging.getLogger(__name__).warning(f"Failed to save metrics on shutdown: {e}")


def run_validation(service, path=None) -> int:
    """Print validation warnings for ``path`` or the current file.

    Exit status is 0 when clean, 1 with warnings, 2 if the file cannot be read.
    """
    try:
        warnings = service.validate(path)
    except MicroficheError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 2
    for warning in warnings:
        print(warning)
    if not warnings:
        print("No problems found.")
    return 1 if warnings else 0


def main(argv=None):
    """Run Microfiche."""
    # Parse arguments and update config
    args = parse_args(argv)
    update_config(args)

    # The MCP stdio transport owns stdout; keep console logging off in that mode
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(
            log_dir=config.log_dir, level=log_level, console=args.mode != "mcp"
        )
    except Exception as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    # Register metrics save on shutdown
    atexit.register(_save_metrics_on_exit)

    data_file = config.get_data_file()
    logger.info(f"Using data file: {data_file} (schema: {config.schema_kind.value})")
    service = open_service(data_file, schema=config.schema_kind)

    if args.validate:
        sys.exit(run_validation(service, data_file))

    if args.mode == "mcp":
        # Imported here so the shell does not pay for the MCP stack
        from microfiche.server.mcp_server import MicroficheMcpServer

        try:
            logger.info("Starting Microfiche MCP server")
            MicroficheMcpServer(service=service).run()
        except Exception as e:
            logger.error(f"Error running server: {e}")
            sys.exit(1)
        return

    from microfiche.shell import QueryShell

    try:
        QueryShell(service).run()
    except KeyboardInterrupt:
        print()
    finally:
        service.shutdown()


if __name__ == "__main__":
    main()
