"""
Batched detail enrichment for the Japanese Real Estate harvester.

This module visits the detail page of every stored listing that has not
been processed yet and saves what it finds to the details collection.
Listings are selected in small batches with a fresh query each time, so no
database cursor stays open across the (slow, rate-limited) page fetches.

Marking rules, which make enrichment at-most-once per listing:
    - A listing without a URL is marked processed with the error
      "No URL found" and never selected again.
    - A scraped record is inserted first and the listing marked afterwards.
      If either write fails, the listing stays unprocessed and is retried
      by a later run (it is skipped for the rest of the current one).
    - A page that cannot be fetched or parsed, or an exception while
      scraping it, marks the listing processed with the error text. Detail
      failures are permanent.

Selection and count failures are logged and retried after a pause; any
other error ends the run, which is logged with the partial statistics and
reported in the returned summary.

Author: Leonardo Pacciani-Mori
License: MIT
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from pymongo.errors import PyMongoError

from japanese_real_estate.config.settings import (
    DETAIL_BATCH_PAUSE,
    DETAIL_BATCH_RETRY_DELAY,
    DETAIL_BATCH_SIZE,
    DETAIL_COUNT_FAILURE_DELAY,
    DETAIL_MAX_SELECTION_FAILURES,
)
from japanese_real_estate.config.logging_config import get_logger
from japanese_real_estate.scraping.detail_scraper import DetailPageScraper
from japanese_real_estate.scraping.throttle import Throttle

logger = get_logger(__name__)

ERROR_NO_URL = "No URL found"
ERROR_NO_RECORD = "Scraping returned null"

# Item outcomes
ITEM_SUCCESS = "success"
ITEM_NO_URL = "no_url"
ITEM_SCRAPE_FAILED = "scrape_failed"
ITEM_SAVE_FAILED = "save_failed"
ITEM_ERROR = "error"


def unprocessed_filter() -> Dict[str, Any]:
    """Query selecting the listings still waiting for enrichment."""
    return {"processed": {"$ne": True}}


@dataclass
class DetailEnrichmentSummary:
    """
    Statistics of one enrichment run.

    Attributes:
        total_listings: Listings stored when the run started.
        already_processed: Listings already processed when the run started.
        initial_remaining: Listings waiting when the run started.
        processed: Listings handled by this run, whatever the outcome.
        successful: Listings whose details were saved.
        errors: Listings that failed (marked with an error or left for retry).
        fatal_error: Message of the error that ended the run early, if any.
    """
    total_listings: int = 0
    already_processed: int = 0
    initial_remaining: int = 0
    batches: int = 0
    processed: int = 0
    successful: int = 0
    errors: int = 0
    save_failures: int = 0
    selection_failures: int = 0
    fatal_error: Optional[str] = None
    elapsed_seconds: float = 0.0

    @property
    def success_rate(self) -> float:
        """Percentage of processed listings that were saved."""
        if not self.processed:
            return 0.0
        return self.successful / self.processed * 100

    @property
    def average_seconds(self) -> float:
        """Average time spent per processed listing."""
        if not self.processed:
            return 0.0
        return self.elapsed_seconds / self.processed


class BatchedDetailEnrichmentController:
    """
    Enriches unprocessed listings with their detail pages, batch by batch.

    Attributes:
        scraper: DetailPageScraper fetching and extracting detail pages.
        listings: The listings collection (read and marked).
        details: The details collection (inserted into).
        throttle: Jittered delay between detail fetches; also used for the
            fixed pauses, so that tests can record every sleep.
        batch_size: Listings selected per query.
        batch_pause: Pause after a batch when listings remain.
        count_failure_delay: Pause after a failed remaining count.
        retry_delay: Pause after a failed batch selection.
        max_selection_failures: Consecutive failed selections after which
            the run gives up.
    """

    def __init__(
        self,
        scraper: DetailPageScraper,
        listings,
        details,
        throttle: Optional[Throttle] = None,
        batch_size: int = DETAIL_BATCH_SIZE,
        batch_pause: float = DETAIL_BATCH_PAUSE,
        count_failure_delay: float = DETAIL_COUNT_FAILURE_DELAY,
        retry_delay: float = DETAIL_BATCH_RETRY_DELAY,
        max_selection_failures: int = DETAIL_MAX_SELECTION_FAILURES,
        clock: Callable[[], float] = time.monotonic
    ):
        self.scraper = scraper
        self.listings = listings
        self.details = details
        self.throttle = throttle or Throttle()
        self.batch_size = batch_size
        self.batch_pause = batch_pause
        self.count_failure_delay = count_failure_delay
        self.retry_delay = retry_delay
        self.max_selection_failures = max_selection_failures
        self.clock = clock

        # Listings whose save failed during this run; retried by the next run.
        self._deferred: Set[Any] = set()

    # =========================================================================
    # STORE ACCESS
    # =========================================================================

    def select_batch(self) -> List[Dict[str, Any]]:
        """
        Select the next batch of unprocessed listings.

        Listings deferred by a failed save in this run are excluded, so the
        same document is not retried within one run.

        Returns:
            list: Up to batch_size listing documents, in store order.

        Raises:
            PyMongoError: If the query fails.
        """
        query = unprocessed_filter()
        if self._deferred:
            query["_id"] = {"$nin": list(self._deferred)}
        return list(self.listings.find(query).limit(self.batch_size))

    def count_remaining(self) -> int:
        """Count the listings still waiting for enrichment."""
        return self.listings.count_documents(unprocessed_filter())

    def mark_processed(self, listing_id: Any, error: Optional[str] = None) -> bool:
        """
        Mark a listing as processed, optionally with the reason it failed.

        A failed update is logged and reported through the return value,
        never raised. The listing then stays unprocessed and is skipped for
        the rest of the run.

        Args:
            listing_id: _id of the listing.
            error: Error text stored as processing_error, if any.

        Returns:
            bool: True if the listing was marked.
        """
        update = {"processed": True, "processed_at": datetime.now(timezone.utc)}
        if error is not None:
            update["processing_error"] = error
        try:
            self.listings.update_one({"_id": listing_id}, {"$set": update})
            return True
        except PyMongoError as e:
            logger.error(f"Failed to mark listing {listing_id} as processed: {str(e)}")
            self._deferred.add(listing_id)
            return False

    # =========================================================================
    # PER-LISTING PROCESSING
    # =========================================================================

    def process_listing(self, document: Dict[str, Any]) -> str:
        """
        Enrich one listing and mark it according to the outcome.

        Args:
            document: The listing document.

        Returns:
            str: One of ITEM_SUCCESS, ITEM_NO_URL, ITEM_SCRAPE_FAILED,
                ITEM_SAVE_FAILED or ITEM_ERROR.
        """
        listing_id = document.get("_id")
        url = document.get("url")

        if not url:
            logger.warning(f"Listing {listing_id} has no URL. Skipping.")
            if self.mark_processed(listing_id, ERROR_NO_URL):
                logger.info("Marked listing as processed (with error) to avoid reprocessing")
            return ITEM_NO_URL

        logger.info(f"Starting scrape for: {url}")
        scrape_start = self.clock()

        try:
            result = self.scraper.scrape(url)
        except Exception as e:
            logger.error(
                f"Exception while scraping {document.get('name') or 'Unknown'} ({url}): "
                f"{type(e).__name__}: {str(e)}"
            )
            self.mark_processed(listing_id, str(e) or type(e).__name__)
            return ITEM_ERROR

        scrape_seconds = self.clock() - scrape_start

        if result.record is None:
            message = result.status.get("message")
            error = f"{ERROR_NO_RECORD}: {message}" if message else ERROR_NO_RECORD
            logger.error(
                f"Failed to scrape details for {document.get('name') or 'Unknown'} ({url}) "
                f"after {scrape_seconds:.1f}s"
            )
            self.mark_processed(listing_id, error)
            return ITEM_SCRAPE_FAILED

        record = result.record
        record.listing_id = listing_id
        logger.info(f"Saving scraped data... (scraped in {scrape_seconds:.1f}s)")

        try:
            self.details.insert_one(record.to_document())
            self.listings.update_one(
                {"_id": listing_id},
                {"$set": {"processed": True, "processed_at": datetime.now(timezone.utc)}},
            )
        except PyMongoError as e:
            logger.error(f"Failed to save scraped data for {listing_id}: {str(e)}")
            self._deferred.add(listing_id)
            return ITEM_SAVE_FAILED

        logger.info(
            f"Saved details: {len(record.fields)} fields, {len(record.images)} images"
        )
        return ITEM_SUCCESS

    # =========================================================================
    # RUN LOOP
    # =========================================================================

    def _log_item_progress(self, summary: DetailEnrichmentSummary, index: int,
                           batch_length: int, document: Dict[str, Any],
                           start_time: float) -> None:
        denominator = max(summary.initial_remaining, summary.processed)
        progress = summary.processed / denominator * 100 if denominator else 100.0
        elapsed = self.clock() - start_time
        remaining_items = max(summary.initial_remaining - summary.processed, 0)
        estimated_minutes = round(remaining_items * elapsed / summary.processed / 60)

        logger.info(
            f"[Batch {summary.batches}] [{index + 1}/{batch_length}] "
            f"[Total: {summary.processed}] Processing {document.get('_id')} "
            f"({document.get('name') or 'Unknown'})"
        )
        logger.info(
            f"Overall progress: {progress:.1f}%, "
            f"estimated time remaining: {estimated_minutes} minutes"
        )

    def _run_batches(self, summary: DetailEnrichmentSummary, start_time: float) -> None:
        remaining = summary.initial_remaining
        consecutive_failures = 0

        while remaining > 0:
            summary.batches += 1
            logger.info(f"Starting batch {summary.batches} ({self.batch_size} listings max)")

            try:
                batch = self.select_batch()
            except PyMongoError as e:
                summary.selection_failures += 1
                consecutive_failures += 1
                logger.error(f"Error retrieving batch {summary.batches}: {str(e)}")
                if consecutive_failures >= self.max_selection_failures:
                    raise
                logger.error(f"Will retry in {self.retry_delay} seconds...")
                self.throttle.pause(self.retry_delay)
                continue

            consecutive_failures = 0
            logger.info(f"Batch {summary.batches}: retrieved {len(batch)} listings")
            if not batch:
                logger.info("No more unprocessed listings found.")
                break

            for index, document in enumerate(batch):
                summary.processed += 1
                self._log_item_progress(summary, index, len(batch), document, start_time)

                outcome = self.process_listing(document)
                if outcome == ITEM_SUCCESS:
                    summary.successful += 1
                else:
                    summary.errors += 1
                    if outcome == ITEM_SAVE_FAILED:
                        summary.save_failures += 1

                if index < len(batch) - 1:
                    delay = self.throttle.wait()
                    logger.debug(f"Slept {delay:.2f}s before next request")

            try:
                remaining = self.count_remaining() - len(self._deferred)
                logger.info(
                    f"Batch {summary.batches} completed. Remaining listings: {max(remaining, 0)}"
                )
                if remaining > 0:
                    self.throttle.pause(self.batch_pause)
            except PyMongoError as e:
                logger.error(f"Error getting updated count: {str(e)}")
                logger.error("Will continue with next batch anyway...")
                self.throttle.pause(self.count_failure_delay)

    def run(self) -> DetailEnrichmentSummary:
        """
        Run the enrichment until no unprocessed listing is left.

        Never raises: fatal errors are logged with the partial statistics
        and reported through the summary's fatal_error.

        Returns:
            DetailEnrichmentSummary: Statistics of the run.

        Example:
            >>> summary = controller.run()
            >>> summary.successful, summary.errors
            (18, 2)
        """
        summary = DetailEnrichmentSummary()
        start_time = self.clock()
        self._deferred.clear()

        logger.info("=" * 50)
        logger.info("Detail enrichment starting")
        logger.info(f"Batch size: {self.batch_size} listings")
        logger.info("=" * 50)

        try:
            summary.initial_remaining = self.count_remaining()
            summary.already_processed = self.listings.count_documents({"processed": True})
            summary.total_listings = self.listings.count_documents({})

            progress = (
                summary.already_processed / summary.total_listings * 100
                if summary.total_listings else 0.0
            )
            logger.info(f"Total listings:        {summary.total_listings}")
            logger.info(f"Already processed:     {summary.already_processed}")
            logger.info(f"Remaining to process:  {summary.initial_remaining}")
            logger.info(f"Progress:              {progress:.1f}%")

            if summary.initial_remaining == 0:
                logger.info("No unprocessed listings found. Nothing to do.")
            else:
                self._run_batches(summary, start_time)

        except Exception as e:
            summary.elapsed_seconds = self.clock() - start_time
            summary.fatal_error = str(e)
            logger.exception(
                f"Detail enrichment failed after {summary.elapsed_seconds / 60:.1f} minutes: "
                f"{type(e).__name__}: {str(e)}"
            )
            logger.error(
                f"Processed so far: {summary.processed} "
                f"({summary.successful} successful, {summary.errors} errors)"
            )
            return summary

        summary.elapsed_seconds = self.clock() - start_time
        self._log_summary(summary)
        return summary

    @staticmethod
    def _log_summary(summary: DetailEnrichmentSummary) -> None:
        logger.info("=" * 50)
        logger.info("Detail enrichment finished")
        logger.info(f"Batches processed:        {summary.batches}")
        logger.info(f"Total processed:          {summary.processed}")
        logger.info(f"Successful:               {summary.successful}")
        logger.info(f"Errors:                   {summary.errors}")
        logger.info(f"Success rate:             {summary.success_rate:.1f}%")
        logger.info(f"Total time:               {summary.elapsed_seconds / 60:.1f} minutes")
        logger.info(f"Average time per listing: {summary.average_seconds:.1f} seconds")
        if summary.save_failures:
            logger.info(f"Left for the next run:    {summary.save_failures}")
        logger.info("=" * 50)
