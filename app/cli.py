"""Command-line interface for recording synchronization."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from app.lifecycle import CleanupManager
from app.orchestrator import build_orchestrator
from app.storage import LocalFileSystem
from app.sync import SYNC_MARKER_NAME
from configs.settings import DEFAULT_CONFIG_PATH, load_config
from exceptions import ConfigError
from log_config.logger import get_logger, intercept_standard_logging, setup_file_logging

logger = get_logger(__name__)


def _format_bytes(value: int) -> str:
    size = float(value)
    for unit in ("B", "KiB", "MiB"):
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GiB"


def sync_command(args, config) -> int:
    """Handle sync command: one pass over the recordings root.

    Args:
        args: Parsed command-line arguments
        config: Loaded AppConfig
    """
    cleanup_manager = CleanupManager()
    orchestrator = build_orchestrator(config, cleanup_manager=cleanup_manager)

    try:
        if not orchestrator.uploads_enabled:
            print("Error: uploads are disabled in the configuration", file=sys.stderr)
            return 1

        directories = orchestrator.record_directories()
        quota_before = orchestrator.quota.remaining_bytes
        print(f"Syncing {len(directories)} record directories from {orchestrator.recordings_root}")

        started = time.monotonic()
        orchestrator.sync_now()
        if not orchestrator.engine.wait_until_idle(args.timeout):
            print(f"Error: sync did not finish within {args.timeout}s", file=sys.stderr)
            return 1

        synced = sum(1 for d in directories if orchestrator.engine.is_marked_as_synced(d))
        used = quota_before - orchestrator.quota.remaining_bytes
        print(f"\n✓ Sync complete in {time.monotonic() - started:.1f}s")
        print(f"  Directories synced: {synced}/{len(directories)}")
        print(f"  Quota used: {_format_bytes(max(used, 0))}")
        print(f"  Quota remaining: {_format_bytes(orchestrator.quota.remaining_bytes)}")
        return 0
    finally:
        cleanup_manager.cleanup()


def quota_command(args, config) -> int:
    """Handle quota command."""
    cleanup_manager = CleanupManager()
    orchestrator = build_orchestrator(config, cleanup_manager=cleanup_manager)
    try:
        quota = orchestrator.quota
        print(f"Remaining quota: {_format_bytes(quota.remaining_bytes)} of {_format_bytes(quota.total_budget_bytes)}")
        print(f"Refresh interval: {quota.refresh_interval_s:.0f}s")
        return 0
    finally:
        cleanup_manager.cleanup()


def status_command(args, config) -> int:
    """Handle status command: list record directories."""
    root = Path(config.recording.output_dir)
    if not root.is_dir():
        print(f"No recordings directory at {root}")
        return 0

    fs = LocalFileSystem()
    directories = [p for p in fs.list_directory(root) if p.is_dir()]
    if not directories:
        print(f"No record directories in {root}")
        return 0

    print(f"Record directories in {root}:")
    total = 0
    for directory in directories:
        size = fs.size_of_directory(directory)
        total += size
        marker = "synced" if fs.exists(directory / SYNC_MARKER_NAME) else "pending"
        print(f"  {directory.name:<32} {marker:<8} {_format_bytes(size):>10}")
    print(f"\n  {len(directories)} directories, {_format_bytes(total)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="recsync",
        description="Record directory synchronization",
    )
    parser.add_argument(
        "--log-dir",
        help="Also write rotating log files into this directory",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # sync command
    sync_parser = subparsers.add_parser(
        "sync",
        help="Upload pending record directories once",
    )
    sync_parser.add_argument(
        "--config",
        default=str(DEFAULT_CONFIG_PATH),
        help="Path to configuration file",
    )
    sync_parser.add_argument(
        "--timeout",
        type=float,
        default=600.0,
        help="Seconds to wait for the sync to finish (default: 600)",
    )

    # quota command
    quota_parser = subparsers.add_parser(
        "quota",
        help="Show the remaining upload quota",
    )
    quota_parser.add_argument(
        "--config",
        default=str(DEFAULT_CONFIG_PATH),
        help="Path to configuration file",
    )

    # status command
    status_parser = subparsers.add_parser(
        "status",
        help="List record directories with sync status and size",
    )
    status_parser.add_argument(
        "--config",
        default=str(DEFAULT_CONFIG_PATH),
        help="Path to configuration file",
    )

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    intercept_standard_logging(logging.DEBUG if args.verbose else logging.INFO)
    if args.log_dir:
        setup_file_logging(Path(args.log_dir))

    try:
        config = load_config(Path(args.config))
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    # Route to command handler
    try:
        if args.command == "sync":
            return sync_command(args, config)
        elif args.command == "quota":
            return quota_command(args, config)
        elif args.command == "status":
            return status_command(args, config)
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130
    except Exception as e:
        logger.exception(f"Command {args.command} failed: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
