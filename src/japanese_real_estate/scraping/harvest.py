"""
Harvest entry points for the Japanese Real Estate harvester.

This module wires the real collaborators (MongoDB collections, the HTTP
fetcher and the request throttle) into the two crawl controllers and
dispatches on the run mode:

    - "listings": walk the result pager and store listing summaries
    - "details": enrich stored listings with their detail pages

It is used by scripts/run_scraping.py and by the Airflow DAG. Every
collaborator can be passed in; whatever is not passed is built from the
configuration settings.

Author: Leonardo Pacciani-Mori
License: MIT
"""

from typing import Any, Dict, Optional, Union

from japanese_real_estate.config.settings import (
    DETAIL_BATCH_SIZE,
    MODE_DETAILS,
    MODE_LISTINGS,
    SCRAPING_BASE_PATH,
    SCRAPING_START_PATH,
    VALID_MODES,
)
from japanese_real_estate.config.logging_config import get_logger
from japanese_real_estate.core.connections import (
    HarvestCollections,
    get_harvest_collections,
    mongodb_connection,
)
from japanese_real_estate.scraping.crawl_state import CrawlStateStore
from japanese_real_estate.scraping.detail_controller import (
    BatchedDetailEnrichmentController,
    DetailEnrichmentSummary,
    unprocessed_filter,
)
from japanese_real_estate.scraping.detail_scraper import DetailPageScraper
from japanese_real_estate.scraping.http_client import HttpFetcher
from japanese_real_estate.scraping.listing_controller import (
    ListingCrawlSummary,
    ResumableListingCrawlController,
)
from japanese_real_estate.scraping.listing_crawler import ListingPageCrawler
from japanese_real_estate.scraping.throttle import Throttle

logger = get_logger(__name__)

HarvestSummary = Union[ListingCrawlSummary, DetailEnrichmentSummary]


def run_listing_crawl(
    collections: HarvestCollections,
    fetcher,
    throttle: Optional[Throttle] = None,
    start_path: str = SCRAPING_START_PATH,
    base_path: str = SCRAPING_BASE_PATH,
    reset_state: bool = False
) -> ListingCrawlSummary:
    """
    Run the resumable listing crawl.

    Args:
        collections: The harvest collections.
        fetcher: Object with fetch(url) -> (content, status).
        throttle: Delay policy between pages.
        start_path: Search result path of the pager.
        base_path: Site root for absolute detail URLs.
        reset_state: Forget the crawl progress and start again at page 1.

    Returns:
        ListingCrawlSummary: Statistics of the run.
    """
    state = CrawlStateStore(collections.state)
    if reset_state:
        state.reset()

    controller = ResumableListingCrawlController(
        ListingPageCrawler(fetcher, base_path),
        collections.listings,
        state,
        throttle=throttle,
        start_path=start_path,
    )
    return controller.run()


def run_detail_enrichment(
    collections: HarvestCollections,
    fetcher,
    throttle: Optional[Throttle] = None,
    batch_size: int = DETAIL_BATCH_SIZE
) -> DetailEnrichmentSummary:
    """
    Run the batched detail enrichment.

    Args:
        collections: The harvest collections.
        fetcher: Object with fetch(url) -> (content, status).
        throttle: Delay policy between detail pages and batches.
        batch_size: Listings selected per query.

    Returns:
        DetailEnrichmentSummary: Statistics of the run.
    """
    controller = BatchedDetailEnrichmentController(
        DetailPageScraper(fetcher),
        collections.listings,
        collections.details,
        throttle=throttle,
        batch_size=batch_size,
    )
    return controller.run()


def _dispatch(mode: str, collections: HarvestCollections, fetcher,
              throttle: Optional[Throttle], reset_state: bool) -> HarvestSummary:
    if mode == MODE_LISTINGS:
        return run_listing_crawl(collections, fetcher, throttle, reset_state=reset_state)
    if mode == MODE_DETAILS:
        return run_detail_enrichment(collections, fetcher, throttle)
    raise ValueError(f"Unknown mode '{mode}'. Expected one of {VALID_MODES}")


def run_harvest(
    mode: str,
    collections: Optional[HarvestCollections] = None,
    fetcher=None,
    throttle: Optional[Throttle] = None,
    reset_state: bool = False
) -> HarvestSummary:
    """
    Run one harvest in the given mode.

    When collections is not given, a MongoDB connection is opened from the
    configuration settings for the duration of the run. When fetcher is not
    given, an HttpFetcher is built and closed afterwards.

    Args:
        mode: "listings" or "details".
        collections: The harvest collections, if already connected.
        fetcher: Object with fetch(url) -> (content, status).
        throttle: Delay policy; a Throttle with the configured window by
            default.
        reset_state: Listing mode only: restart the crawl at page 1.

    Returns:
        ListingCrawlSummary or DetailEnrichmentSummary.

    Raises:
        ValueError: If mode is not a valid mode.

    Example:
        >>> summary = run_harvest("listings")
        >>> summary.last_completed_page
        158
    """
    if mode not in VALID_MODES:
        raise ValueError(f"Invalid mode {mode!r}, expected one of {', '.join(VALID_MODES)}")

    logger.info(f"Starting harvest in {mode} mode")

    owns_fetcher = fetcher is None
    if owns_fetcher:
        fetcher = HttpFetcher()

    try:
        if collections is not None:
            return _dispatch(mode, collections, fetcher, throttle, reset_state)

        with mongodb_connection() as client:
            return _dispatch(
                mode, get_harvest_collections(client), fetcher, throttle, reset_state
            )
    finally:
        if owns_fetcher:
            fetcher.close()


def get_harvest_statistics(collections: HarvestCollections) -> Dict[str, Any]:
    """
    Count the stored listings and details.

    Args:
        collections: The harvest collections.

    Returns:
        dict: total_listings, processed_listings, remaining_listings,
            failed_listings, details and last_completed_page.
    """
    listings = collections.listings
    return {
        'total_listings': listings.count_documents({}),
        'processed_listings': listings.count_documents({"processed": True}),
        'remaining_listings': listings.count_documents(unprocessed_filter()),
        'failed_listings': listings.count_documents({"processing_error": {"$exists": True}}),
        'details': collections.details.count_documents({}),
        'last_completed_page': CrawlStateStore(collections.state).get_last_completed_page(),
    }


def log_harvest_statistics(collections: HarvestCollections) -> Dict[str, Any]:
    """
    Log the harvest statistics and return them.

    Args:
        collections: The harvest collections.

    Returns:
        dict: See get_harvest_statistics().
    """
    stats = get_harvest_statistics(collections)
    total = stats['total_listings']
    progress = stats['processed_listings'] / total * 100 if total else 0.0

    logger.info("=" * 50)
    logger.info("Harvest statistics")
    logger.info(f"Listings stored:      {total}")
    logger.info(f"Listings processed:   {stats['processed_listings']} ({progress:.1f}%)")
    logger.info(f"Listings remaining:   {stats['remaining_listings']}")
    logger.info(f"Listings with errors: {stats['failed_listings']}")
    logger.info(f"Details stored:       {stats['details']}")
    logger.info(f"Last completed page:  {stats['last_completed_page']}")
    logger.info("=" * 50)
    return stats
