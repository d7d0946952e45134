"""
Resumable listing crawl for the Japanese Real Estate harvester.

This module drives the result-page crawler across the pager and stores the
listings it finds. The crawl is resumable and idempotent:

    - The number of pages is read once, from the first result page.
    - The crawl starts at the page after the last completed one recorded in
      the state collection (page 1 on a fresh database).
    - Listings are inserted unordered; a listing whose key is already stored
      is a duplicate-key conflict, which is counted and otherwise ignored.
      The collection's unique _id is the only de-duplication mechanism.
    - After a page is fetched and written, it is recorded as completed,
      as long as no earlier page of the run failed. Once a page fails, the
      rest of the run still stores listings but leaves the recorded page
      alone, so the next run starts again at the failed page.
    - A jittered delay follows the page-count request and every page,
      whether or not it had listings.

Per-page failures are logged and the crawl moves on, with one exception: a
refused connection is taken as a sign that the site is blocking the crawler,
and the run stops at once. Fatal errors (page count unavailable, database
unreachable) are caught at the run boundary, logged and reported in the
returned summary.

Author: Leonardo Pacciani-Mori
License: MIT
"""

import time
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from pymongo.errors import BulkWriteError, ConnectionFailure

from japanese_real_estate.config.settings import SCRAPING_START_PATH
from japanese_real_estate.config.logging_config import get_logger
from japanese_real_estate.scraping.crawl_state import CrawlStateStore
from japanese_real_estate.scraping.http_client import STATUS_CONNECTION_REFUSED
from japanese_real_estate.scraping.listing_crawler import (
    ListingPageCrawler,
    PageCountError,
    listing_page_url,
)
from japanese_real_estate.scraping.record_builder import ListingRecord
from japanese_real_estate.scraping.throttle import Throttle

logger = get_logger(__name__)

DUPLICATE_KEY_ERROR_CODE = 11000

# Page outcome statuses
PAGE_SAVED = "saved"
PAGE_EMPTY = "empty"
PAGE_FAILED = "failed"
PAGE_REFUSED = "refused"


@dataclass
class PageOutcome:
    """Result of processing one result page."""
    page: int
    status: str
    found: int = 0
    inserted: int = 0
    duplicates: int = 0
    message: str = ""
    state_advanced: bool = False


@dataclass
class ListingCrawlSummary:
    """
    Statistics of one listing crawl run.

    Attributes:
        start_page: First page fetched by this run.
        max_page_number: Number of result pages reported by the pager.
        last_completed_page: Last page of the unbroken run of completed
            pages, as recorded at the end of the run (0 if none ever was).
        aborted: True when the run stopped on a refused connection.
        fatal_error: Message of the error that ended the run early, if any.
    """
    start_page: int = 1
    max_page_number: int = 0
    total_items: Optional[int] = None
    pages_visited: int = 0
    pages_saved: int = 0
    pages_empty: int = 0
    pages_failed: int = 0
    listings_found: int = 0
    inserted: int = 0
    duplicates: int = 0
    last_completed_page: int = 0
    aborted: bool = False
    fatal_error: Optional[str] = None
    elapsed_seconds: float = 0.0
    outcomes: List[PageOutcome] = field(default_factory=list)

    def record(self, outcome: PageOutcome) -> None:
        self.outcomes.append(outcome)
        self.pages_visited += 1
        self.listings_found += outcome.found
        self.inserted += outcome.inserted
        self.duplicates += outcome.duplicates
        if outcome.status == PAGE_SAVED:
            self.pages_saved += 1
        elif outcome.status == PAGE_EMPTY:
            self.pages_empty += 1
        else:
            self.pages_failed += 1
        if outcome.state_advanced:
            self.last_completed_page = outcome.page


def save_listings(collection, records: Iterable[ListingRecord]) -> Tuple[int, int]:
    """
    Insert listing records, treating already-stored keys as success.

    The insert is unordered, so every new listing of the batch is written
    even when some of its neighbours are duplicates.

    Args:
        collection: The listings collection.
        records: The records to insert.

    Returns:
        Tuple containing:
            - int: Number of listings inserted.
            - int: Number of duplicate-key conflicts ignored.

    Raises:
        BulkWriteError: If any write error other than a duplicate key
            occurred.
    """
    documents = [record.to_document() for record in records]
    if not documents:
        return 0, 0

    try:
        result = collection.insert_many(documents, ordered=False)
        return len(result.inserted_ids), 0

    except BulkWriteError as e:
        details = e.details or {}
        write_errors = details.get("writeErrors", [])
        unexpected = [
            error for error in write_errors
            if error.get("code") != DUPLICATE_KEY_ERROR_CODE
        ]
        if unexpected or details.get("writeConcernErrors"):
            raise
        return details.get("nInserted", 0), len(write_errors)


class ResumableListingCrawlController:
    """
    Walks the result pager from the resume page to the last page.

    Attributes:
        crawler: ListingPageCrawler fetching and parsing result pages.
        listings: The listings collection.
        state: CrawlStateStore holding the last completed page.
        throttle: Delay policy applied after every page.
        start_path: Search result path; pages are start_path + "&pn=<n>".
    """

    def __init__(
        self,
        crawler: ListingPageCrawler,
        listings,
        state: CrawlStateStore,
        throttle: Optional[Throttle] = None,
        start_path: str = SCRAPING_START_PATH
    ):
        self.crawler = crawler
        self.listings = listings
        self.state = state
        self.throttle = throttle or Throttle()
        self.start_path = start_path

    def process_page(self, page: int, max_page_number: int,
                     advance_state: bool = True) -> PageOutcome:
        """
        Fetch one page, store its listings and record it as completed.

        Args:
            page: Page number to process.
            max_page_number: Last page, for progress messages.
            advance_state: Whether a completed page is written to the crawl
                state. False once an earlier page of the run has failed.

        Returns:
            PageOutcome: saved / empty on success, failed or refused
                otherwise.

        Raises:
            ConnectionFailure: If the database cannot be reached. Other
                per-page errors are returned as a failed outcome.
        """
        logger.info(f"Scraping page {page} of {max_page_number}...")
        url = listing_page_url(self.start_path, page)

        try:
            result = self.crawler.fetch_page(url)

            if not result.fetched:
                message = result.status.get("message", "unknown error")
                if result.status.get("status") == STATUS_CONNECTION_REFUSED:
                    return PageOutcome(page, PAGE_REFUSED, message=message)
                logger.error(f"Error processing page {page}: {message}")
                return PageOutcome(page, PAGE_FAILED, message=message)

            found = len(result.listings)
            inserted, duplicates = save_listings(self.listings, result.listings)
            if found:
                logger.info(f"Saved {inserted} items from page {page}.")
            if duplicates:
                logger.debug(f"Skipped {duplicates} already stored items on page {page}.")

            if advance_state:
                self.state.set_last_completed_page(page)

            status = PAGE_SAVED if found else PAGE_EMPTY
            return PageOutcome(page, status, found, inserted, duplicates,
                               state_advanced=advance_state)

        except ConnectionFailure:
            raise

        except Exception as e:
            logger.error(f"Error processing page {page}: {str(e)}", exc_info=True)
            return PageOutcome(page, PAGE_FAILED, message=str(e))

    def run(self) -> ListingCrawlSummary:
        """
        Run the listing crawl.

        Never raises: fatal errors are logged and reported through the
        summary's fatal_error.

        Returns:
            ListingCrawlSummary: Statistics of the run.
        """
        summary = ListingCrawlSummary()
        start_time = time.monotonic()
        logger.info("Start: Crawler is scraping and saving to the database...")

        try:
            summary.start_page = self.state.get_resume_page()
            summary.last_completed_page = summary.start_page - 1
            summary.total_items, summary.max_page_number = (
                self.crawler.get_page_numbers(self.start_path)
            )
            logger.info(
                f"Processing: total items: {summary.total_items}, "
                f"and max page number: {summary.max_page_number}"
            )

            if summary.start_page > 1:
                logger.info(
                    f"Resuming after page {summary.start_page - 1}, "
                    f"starting at page {summary.start_page}"
                )
            if summary.start_page > summary.max_page_number:
                logger.info(
                    f"All {summary.max_page_number} pages already completed. "
                    f"Reset the crawl state to crawl again."
                )
            else:
                self.throttle.wait()

            for page in range(summary.start_page, summary.max_page_number + 1):
                outcome = self.process_page(
                    page, summary.max_page_number, advance_state=not summary.pages_failed
                )
                summary.record(outcome)
                if outcome.status == PAGE_FAILED and summary.pages_failed == 1:
                    logger.warning(
                        f"Page {page} failed; the crawl state stays at page "
                        f"{summary.last_completed_page} so the next run retries it."
                    )

                if outcome.status == PAGE_REFUSED:
                    logger.error(
                        f"Connection refused on page {page}: {outcome.message}. "
                        f"Stopping crawl; the next run resumes at page {summary.last_completed_page + 1}."
                    )
                    summary.aborted = True
                    break

                self.throttle.wait()

        except PageCountError as e:
            logger.error(f"Error: could not determine the number of pages: {str(e)}")
            summary.fatal_error = str(e)
            summary.aborted = e.status.get("status") == STATUS_CONNECTION_REFUSED

        except Exception as e:
            logger.exception(f"Error: Error scraping and saving to the database: {str(e)}")
            summary.fatal_error = str(e)

        summary.elapsed_seconds = time.monotonic() - start_time
        self._log_summary(summary)
        return summary

    @staticmethod
    def _log_summary(summary: ListingCrawlSummary) -> None:
        logger.info("=" * 50)
        logger.info("Finished: Crawler has finished scraping and saved to the database.")
        logger.info(f"Pages visited:        {summary.pages_visited}")
        logger.info(f"Pages saved:          {summary.pages_saved}")
        logger.info(f"Pages empty:          {summary.pages_empty}")
        logger.info(f"Pages failed:         {summary.pages_failed}")
        logger.info(f"Listings found:       {summary.listings_found}")
        logger.info(f"Listings inserted:    {summary.inserted}")
        logger.info(f"Duplicates skipped:   {summary.duplicates}")
        logger.info(f"Last completed page:  {summary.last_completed_page}")
        logger.info(f"Elapsed time:         {summary.elapsed_seconds:.1f}s")
        if summary.aborted:
            logger.info("Crawl aborted early.")
        logger.info("=" * 50)
