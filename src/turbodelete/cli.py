"""Command-line interface for turbodelete."""

import argparse
import asyncio
import os
import sys

from . import __version__
from .coordinator import DeletionReport, TargetCoordinator
from .engine import TreeDeleter


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="turbodelete",
        description="turbodelete - Fast parallel deletion of files and directory trees",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        epilog='Examples: turbodelete ./node_modules/ | turbodelete file1.txt file2.txt | turbodelete "path with spaces"',
    )

    parser.add_argument(
        "paths",
        nargs="+",
        metavar="PATH",
        help="Files or directories to delete, processed one after another",
    )

    parser.add_argument(
        "--workers",
        type=int,
        default=int(os.getenv("TURBODELETE_WORKERS", "0") or "0") or None,
        help="Worker threads per target (default: number of logical CPUs)",
    )

    parser.add_argument(
        "--batch-size",
        type=int,
        default=int(os.getenv("TURBODELETE_BATCH_SIZE", "5000")),
        help="Maximum removals submitted at once per depth bucket",
    )

    parser.add_argument(
        "--progress-interval",
        type=float,
        default=float(os.getenv("TURBODELETE_PROGRESS_INTERVAL", "30")),
        help="Seconds between progress log records",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=os.getenv("TURBODELETE_LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"turbodelete {__version__}",
    )

    return parser.parse_args(argv)


async def async_main(
    paths: list[str],
    workers: int | None = None,
    batch_size: int = 5000,
    log_level: str = "INFO",
    progress_interval: float = 30,
) -> DeletionReport:
    """
    Async entry point for the deleter.

    Args:
        paths: Targets to delete, in order
        workers: Worker threads per target (default: number of logical CPUs)
        batch_size: Maximum removals submitted at once per depth bucket
        log_level: Logging level
        progress_interval: Seconds between progress log records

    Returns:
        Aggregated report for all targets
    """
    deleter = TreeDeleter(
        workers=workers,
        batch_size=batch_size,
        log_level=log_level,
        progress_interval=progress_interval,
    )
    return await TargetCoordinator(deleter).run(paths)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    args = parse_args(argv)

    try:
        report = asyncio.run(
            async_main(
                paths=args.paths,
                workers=args.workers,
                batch_size=args.batch_size,
                log_level=args.log_level,
                progress_interval=args.progress_interval,
            )
        )
    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(report.exit_code)


if __name__ == "__main__":
    main()
