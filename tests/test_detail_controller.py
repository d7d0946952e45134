"""
Tests for the batched detail enrichment.
"""

import pytest
from pymongo.errors import OperationFailure

from japanese_real_estate.scraping.detail_controller import (
    ERROR_NO_RECORD,
    ERROR_NO_URL,
    ITEM_NO_URL,
    ITEM_SAVE_FAILED,
    ITEM_SUCCESS,
    BatchedDetailEnrichmentController,
)
from japanese_real_estate.scraping.detail_scraper import DetailPageScraper

from conftest import FakeFetcher, make_detail_page


def detail_url(index: int) -> str:
    return f"https://suumo.jp/ms/chuko/nc_{index}/"


def seed_listings(collections, count: int, **overrides) -> None:
    for index in range(1, count + 1):
        document = {
            "_id": f"/ms/chuko/nc_{index}/",
            "name": f"物件{index}",
            "url": detail_url(index),
            "processed": False,
        }
        document.update(overrides)
        collections.listings.documents.append(document)


def detail_site(count: int) -> dict:
    return {detail_url(index): make_detail_page() for index in range(1, count + 1)}


def make_controller(collections, fetcher, throttle, **kwargs):
    options = dict(
        batch_size=2,
        batch_pause=2.0,
        count_failure_delay=5.0,
        retry_delay=10.0,
        max_selection_failures=3,
    )
    options.update(kwargs)
    return BatchedDetailEnrichmentController(
        DetailPageScraper(fetcher),
        collections.listings,
        collections.details,
        throttle=throttle,
        **options,
    )


def listing(collections, index: int) -> dict:
    return collections.listings.find_one({"_id": f"/ms/chuko/nc_{index}/"})


class TestBatchedDetailEnrichment:
    """Tests for BatchedDetailEnrichmentController.run."""

    def test_enriches_every_listing(self, collections, throttle, sleeper):
        """Should save one detail per listing and mark them processed."""
        seed_listings(collections, 3)
        fetcher = FakeFetcher(detail_site(3))

        summary = make_controller(collections, fetcher, throttle).run()

        assert summary.fatal_error is None
        assert (summary.batches, summary.processed, summary.successful) == (2, 3, 3)
        assert summary.success_rate == 100.0
        assert len(collections.details.documents) == 3

        detail = collections.details.find_one({"listing_id": "/ms/chuko/nc_1/"})
        assert detail["sale_price_yen"] == 71_000_000
        assert detail["価格"] == "7100万円"
        assert detail["source_url"] == detail_url(1)

        assert all(doc["processed"] is True for doc in collections.listings.documents)
        assert all("processing_error" not in doc for doc in collections.listings.documents)

        # Jitter between the two items of batch 1, then the pause between batches
        assert len(sleeper.calls) == 2
        assert 2.0 <= sleeper.calls[0] <= 3.0
        assert sleeper.calls[1] == 2.0

    def test_processed_listings_are_never_reselected(self, collections, throttle):
        """Should do nothing on a second run."""
        seed_listings(collections, 2)
        fetcher = FakeFetcher(detail_site(2))
        make_controller(collections, fetcher, throttle).run()
        fetcher.requested.clear()

        summary = make_controller(collections, fetcher, throttle).run()

        assert summary.processed == 0
        assert summary.initial_remaining == 0
        assert fetcher.requested == []
        assert len(collections.details.documents) == 2

    def test_listing_without_url_is_marked_permanently(self, collections, throttle):
        """Should mark a listing without URL processed with an error."""
        seed_listings(collections, 1, url="")
        fetcher = FakeFetcher()

        summary = make_controller(collections, fetcher, throttle).run()

        document = listing(collections, 1)
        assert document["processed"] is True
        assert document["processing_error"] == ERROR_NO_URL
        assert "processed_at" in document
        assert fetcher.requested == []
        assert collections.details.documents == []
        assert summary.errors == 1

        second = make_controller(collections, fetcher, throttle).run()
        assert second.processed == 0

    def test_detail_fetch_failure_is_permanent(self, collections, throttle):
        """Should mark a listing whose page cannot be fetched."""
        seed_listings(collections, 1)

        summary = make_controller(collections, FakeFetcher(), throttle).run()

        document = listing(collections, 1)
        assert document["processed"] is True
        assert document["processing_error"].startswith(ERROR_NO_RECORD)
        assert summary.errors == 1
        assert collections.details.documents == []

    def test_scraper_exception_is_permanent(self, collections, throttle):
        """Should mark a listing with the text of an unexpected exception."""
        seed_listings(collections, 1)
        fetcher = FakeFetcher({detail_url(1): RuntimeError("parser exploded")})

        summary = make_controller(collections, fetcher, throttle).run()

        assert listing(collections, 1)["processing_error"] == "parser exploded"
        assert summary.errors == 1
        assert summary.fatal_error is None

    def test_failed_detail_write_is_retried_next_run(self, collections, throttle):
        """Should leave the listing unprocessed when the detail insert fails."""
        seed_listings(collections, 2)
        collections.details.fail("insert_one", OperationFailure("write failed"))
        fetcher = FakeFetcher(detail_site(2))

        first = make_controller(collections, fetcher, throttle).run()

        assert (first.successful, first.errors, first.save_failures) == (1, 1, 1)
        assert listing(collections, 1)["processed"] is False
        assert "processing_error" not in listing(collections, 1)
        assert fetcher.requested.count(detail_url(1)) == 1

        second = make_controller(collections, fetcher, throttle).run()

        assert (second.processed, second.successful) == (1, 1)
        assert listing(collections, 1)["processed"] is True
        assert len(collections.details.documents) == 2

    def test_failed_mark_is_logged_not_raised(self, collections, throttle):
        """Should survive a failed update and leave the listing for later."""
        seed_listings(collections, 1, url=None)
        collections.listings.fail("update_one", OperationFailure("update failed"))

        summary = make_controller(collections, FakeFetcher(), throttle).run()

        assert summary.fatal_error is None
        assert summary.processed == 1
        assert listing(collections, 1)["processed"] is False

    def test_count_failure_backs_off_and_continues(self, collections, throttle, sleeper):
        """Should pause after a failed count and carry on with the next batch."""
        seed_listings(collections, 3)
        # The three initial counts succeed; the count after batch 1 fails.
        collections.listings.fail("count_documents", OperationFailure("count failed"), after=3)
        fetcher = FakeFetcher(detail_site(3))

        summary = make_controller(collections, fetcher, throttle).run()

        assert 5.0 in sleeper.calls
        assert summary.fatal_error is None
        assert summary.successful == 3

    def test_selection_failure_retries_after_delay(self, collections, throttle, sleeper):
        """Should wait and select again when a batch query fails."""
        seed_listings(collections, 1)
        collections.listings.fail("find", OperationFailure("cursor killed"))

        summary = make_controller(collections, FakeFetcher(detail_site(1)), throttle).run()

        assert sleeper.calls[0] == 10.0
        assert summary.selection_failures == 1
        assert summary.successful == 1

    def test_repeated_selection_failures_end_the_run(self, collections, throttle):
        """Should give up after too many consecutive selection failures."""
        seed_listings(collections, 1)
        collections.listings.fail("find", OperationFailure("cursor killed"), times=3)

        summary = make_controller(collections, FakeFetcher(detail_site(1)), throttle).run()

        assert summary.selection_failures == 3
        assert "cursor killed" in summary.fatal_error
        assert summary.processed == 0

    def test_initial_count_failure_is_fatal(self, collections, throttle):
        """Should report, not raise, a store failure at start."""
        collections.listings.fail("count_documents", OperationFailure("unreachable"))

        summary = make_controller(collections, FakeFetcher(), throttle).run()

        assert summary.fatal_error == "unreachable"


class TestProcessListing:
    """Tests for BatchedDetailEnrichmentController.process_listing."""

    @pytest.mark.parametrize("url", ["", None])
    def test_no_url(self, collections, throttle, url):
        """Should report listings without a usable URL."""
        seed_listings(collections, 1, url=url)
        controller = make_controller(collections, FakeFetcher(), throttle)

        assert controller.process_listing(listing(collections, 1)) == ITEM_NO_URL

    def test_success_sets_back_reference(self, collections, throttle):
        """Should store the owning listing id on the detail."""
        seed_listings(collections, 1)
        controller = make_controller(collections, FakeFetcher(detail_site(1)), throttle)

        assert controller.process_listing(listing(collections, 1)) == ITEM_SUCCESS
        assert collections.details.documents[0]["listing_id"] == "/ms/chuko/nc_1/"

    def test_save_failure(self, collections, throttle):
        """Should report a failed detail insert."""
        seed_listings(collections, 1)
        collections.details.fail("insert_one", OperationFailure("write failed"))
        controller = make_controller(collections, FakeFetcher(detail_site(1)), throttle)

        assert controller.process_listing(listing(collections, 1)) == ITEM_SAVE_FAILED
