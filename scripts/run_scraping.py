#!/usr/bin/env python3
"""
CLI script for running the harvester.

This script provides a command-line interface for the two crawl modes:
walking the result pager to store listing summaries, and enriching the
stored listings with their detail pages. It can be run standalone or called
by Airflow.

Usage:
    python run_scraping.py --mode listings
    python run_scraping.py --mode details
    python run_scraping.py --stats

Exit codes:
    0   the run finished (its statistics were logged)
    1   the run ended on a fatal error
    130 interrupted by the user

Author: Leonardo Pacciani-Mori
License: MIT
"""

import sys
from pathlib import Path

# Allow running without package installation
_script_dir = Path(__file__).parent
_project_root = _script_dir.parent
_src_dir = _project_root / "src"
if _src_dir.exists() and str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

import argparse
import logging
from typing import List, Optional

from japanese_real_estate.config.settings import LOG_VERBOSE, SCRAPING_MODE, VALID_MODES


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Args:
        argv: Arguments to parse; sys.argv[1:] by default.

    Returns:
        argparse.Namespace: The parsed arguments.
    """
    parser = argparse.ArgumentParser(
        description="Harvest real estate listings and their detail pages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Walk the result pager, resuming after the last completed page
    python run_scraping.py --mode listings

    # Start the listing crawl again from page 1
    python run_scraping.py --mode listings --reset-state

    # Enrich stored listings with their detail pages
    python run_scraping.py --mode details

    # Show harvest statistics only
    python run_scraping.py --stats
        """
    )

    parser.add_argument(
        "--mode",
        type=str,
        choices=VALID_MODES,
        default=SCRAPING_MODE if SCRAPING_MODE in VALID_MODES else VALID_MODES[0],
        help="Crawl mode (default: SCRAPING_MODE environment variable, or listings)"
    )

    parser.add_argument(
        "--reset-state",
        action="store_true",
        help="Listing mode only: forget the crawl progress and start at page 1"
    )

    # Statistics only mode
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Only show harvest statistics, don't scrape"
    )

    # Verbosity
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=LOG_VERBOSE,
        help="Enable verbose output"
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the harvester CLI.

    Args:
        argv: Arguments to parse; sys.argv[1:] by default.

    Returns:
        int: Exit code (0 for success, non-zero for failure).
    """
    args = parse_arguments(argv)

    # Set up logging
    from japanese_real_estate.config.logging_config import setup_logging, get_logger

    if args.verbose:
        setup_logging(level=logging.DEBUG)
    else:
        setup_logging(level=logging.INFO)

    logger = get_logger(__name__)

    from japanese_real_estate.core.connections import (
        get_harvest_collections,
        mongodb_connection,
    )
    from japanese_real_estate.scraping.harvest import log_harvest_statistics, run_harvest

    try:
        # If stats-only mode, just show statistics and exit
        if args.stats:
            with mongodb_connection() as client:
                log_harvest_statistics(get_harvest_collections(client))
            return 0

        summary = run_harvest(args.mode, reset_state=args.reset_state)

        if summary.fatal_error:
            logger.error(f"Harvest ({args.mode}) ended with a fatal error: {summary.fatal_error}")
            return 1

        logger.info(f"Harvest ({args.mode}) completed successfully!")
        return 0

    except KeyboardInterrupt:
        logger.warning("Harvest interrupted by user")
        return 130

    except Exception as e:
        logger.error(f"Harvest failed with error: {str(e)}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
