"""Main entry point for the danmaku-proxy service."""

import argparse
import logging
import sys
from typing import List, Optional

from danmaku_proxy.cache import XmlCacheStore
from danmaku_proxy.config import Settings, get_log_level, get_settings
from danmaku_proxy.exceptions import StorageError
from danmaku_proxy.logging_manager import get_logger
from danmaku_proxy.maintenance import MaintenanceScheduler
from danmaku_proxy.metrics_manager import MetricsManager
from danmaku_proxy.server import start_server


def setup_logging(settings: Settings) -> None:
    """Configure root logging for the application."""
    logging.basicConfig(
        level=get_log_level(settings),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Args:
        argv: Argument list (default: sys.argv[1:])

    Returns:
        argparse.Namespace: Parsed command line arguments
    """
    parser = argparse.ArgumentParser(description="danmaku-proxy - caching redirect proxy for video comment XML")
    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the HTTP proxy (default)")
    serve.add_argument('--host', type=str, help='Override the bind address (HOST)')
    serve.add_argument('--port', type=int, help='Override the bind port (PORT)')
    serve.add_argument('--xml-dir', type=str, help='Override the cache directory (XML_DIR)')

    clean = subparsers.add_parser("clean", help="Run one eviction sweep and exit")
    clean.add_argument('--xml-dir', type=str, help='Override the cache directory (XML_DIR)')

    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] not in ("serve", "clean", "-h", "--help"):
        # Options without a subcommand belong to serve
        argv = ["serve", *argv]
    return parser.parse_args(argv)


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Return a copy of the settings with any CLI overrides applied."""
    overrides = {}
    if getattr(args, "host", None) is not None:
        overrides["HOST"] = args.host
    if getattr(args, "port", None) is not None:
        overrides["PORT"] = args.port
    if getattr(args, "xml_dir", None) is not None:
        overrides["XML_DIR"] = args.xml_dir
    return settings.model_copy(update=overrides) if overrides else settings


def run_cleanup(settings: Settings) -> int:
    """
    Run a single eviction sweep, for use from an external scheduler.

    Returns:
        int: Process exit code (0 on success, 1 if the cache could not be listed)
    """
    logger = get_logger(__name__)
    metrics_manager = MetricsManager()
    scheduler = MaintenanceScheduler(
        store=XmlCacheStore.from_settings(settings),
        interval=0,
        metrics_manager=metrics_manager,
    )
    try:
        report = scheduler.sweep()
    except StorageError as e:
        logger.error(f"Cleanup failed: {e}")
        return 1

    logger.info(f"Cleanup completed: removed {len(report.removed)} of {report.scanned} entries", ":broom:")
    if report.failed:
        logger.warning(f"{len(report.failed)} entries could not be removed", ":warning:")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main application entry point.

    Returns:
        int: Process exit code
    """
    args = parse_arguments(argv)
    settings = apply_overrides(get_settings(), args)
    setup_logging(settings)

    if args.command == "clean":
        return run_cleanup(settings)

    start_server(settings)
    return 0


if __name__ == "__main__":
    sys.exit(main())
