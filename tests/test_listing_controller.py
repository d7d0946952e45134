"""
Tests for the crawl state store and the resumable listing crawl.
"""

from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from japanese_real_estate.scraping.crawl_state import CrawlStateStore
from japanese_real_estate.scraping.http_client import STATUS_CONNECTION_REFUSED
from japanese_real_estate.scraping.listing_controller import (
    PAGE_EMPTY,
    PAGE_FAILED,
    PAGE_REFUSED,
    PAGE_SAVED,
    ResumableListingCrawlController,
    save_listings,
)
from japanese_real_estate.scraping.listing_crawler import ListingPageCrawler, listing_page_url
from japanese_real_estate.scraping.record_builder import build_listing_record

from conftest import BASE_PATH, START_PATH, FakeFetcher, make_card, make_listing_page

REFUSED = (None, {'status': STATUS_CONNECTION_REFUSED, 'message': 'Connection refused'})


def page_url(page: int) -> str:
    return listing_page_url(START_PATH, page)


def site(max_page: int, cards_per_page: int = 2, overrides=None) -> dict:
    """Result pages 1..max_page, each with distinct listings."""
    pages = {}
    for page in range(1, max_page + 1):
        cards = [
            make_card(href=f"/ms/chuko/nc_{page}_{index}/", name=f"物件{page}-{index}")
            for index in range(cards_per_page)
        ]
        pages[page_url(page)] = make_listing_page(cards, max_page=max_page, total=max_page * cards_per_page)
    for page, content in (overrides or {}).items():
        pages[page_url(page)] = content
    return pages


def make_controller(collections, fetcher, throttle):
    return ResumableListingCrawlController(
        ListingPageCrawler(fetcher, BASE_PATH),
        collections.listings,
        CrawlStateStore(collections.state),
        throttle=throttle,
        start_path=START_PATH,
    )


def listing_pages_requested(fetcher) -> list:
    # The first request reads the page count.
    return fetcher.requested[1:]


class TestCrawlStateStore:
    """Tests for CrawlStateStore."""

    def test_fresh_state_starts_at_page_one(self, collections):
        """Should resume at page 1 without a state document."""
        state = CrawlStateStore(collections.state)

        assert state.get_last_completed_page() == 0
        assert state.get_resume_page() == 1

    def test_persists_last_completed_page(self, collections):
        """Should upsert the single crawler document."""
        state = CrawlStateStore(collections.state)

        state.set_last_completed_page(3)
        state.set_last_completed_page(4)

        assert state.get_resume_page() == 5
        assert len(collections.state.documents) == 1
        assert collections.state.documents[0]["_id"] == "crawler"

    def test_invalid_value_is_treated_as_zero(self, collections):
        """Should ignore a corrupt page number."""
        collections.state.documents.append({"_id": "crawler", "last_completed_page": "x"})

        assert CrawlStateStore(collections.state).get_last_completed_page() == 0

    def test_reset(self, collections):
        """Should forget the progress."""
        state = CrawlStateStore(collections.state)
        state.set_last_completed_page(7)

        state.reset()

        assert state.get_resume_page() == 1


class TestSaveListings:
    """Tests for save_listings."""

    def test_duplicates_are_not_errors(self, collections):
        """Should count duplicate keys and insert the rest."""
        first = build_listing_record({"url": "/nc_1/"}, [], BASE_PATH)
        second = build_listing_record({"url": "/nc_2/"}, [], BASE_PATH)
        save_listings(collections.listings, [first])

        inserted, duplicates = save_listings(collections.listings, [first, second])

        assert (inserted, duplicates) == (1, 1)
        assert len(collections.listings.documents) == 2

    def test_nothing_to_save(self, collections):
        """Should not touch the store for an empty page."""
        assert save_listings(collections.listings, []) == (0, 0)
        assert collections.listings.calls == []


class TestResumableListingCrawl:
    """Tests for ResumableListingCrawlController."""

    def test_fresh_crawl_visits_every_page(self, collections, throttle, sleeper):
        """Should store every listing and record the last page."""
        fetcher = FakeFetcher(site(3))

        summary = make_controller(collections, fetcher, throttle).run()

        assert listing_pages_requested(fetcher) == [page_url(1), page_url(2), page_url(3)]
        assert summary.inserted == 6
        assert summary.pages_saved == 3
        assert summary.fatal_error is None
        assert CrawlStateStore(collections.state).get_last_completed_page() == 3
        # One jittered delay after the page-count request and after every page
        assert len(sleeper.calls) == 4
        assert all(2.0 <= delay <= 3.0 for delay in sleeper.calls)

    def test_resumes_after_last_completed_page(self, collections, throttle):
        """Should start at page 5 when page 4 was the last completed."""
        CrawlStateStore(collections.state).set_last_completed_page(4)
        fetcher = FakeFetcher(site(6))

        summary = make_controller(collections, fetcher, throttle).run()

        assert listing_pages_requested(fetcher) == [page_url(5), page_url(6)]
        assert summary.start_page == 5
        assert summary.last_completed_page == 6

    def test_nothing_left_to_crawl(self, collections, throttle, sleeper):
        """Should fetch no listing page when every page is completed."""
        CrawlStateStore(collections.state).set_last_completed_page(3)
        fetcher = FakeFetcher(site(3))

        summary = make_controller(collections, fetcher, throttle).run()

        assert listing_pages_requested(fetcher) == []
        assert summary.pages_visited == 0
        assert summary.fatal_error is None
        assert sleeper.calls == []

    def test_recrawl_is_idempotent(self, collections, throttle):
        """Should never create a second document for a known listing."""
        fetcher = FakeFetcher(site(2))
        make_controller(collections, fetcher, throttle).run()
        CrawlStateStore(collections.state).reset()

        summary = make_controller(collections, fetcher, throttle).run()

        assert summary.inserted == 0
        assert summary.duplicates == 4
        assert summary.pages_failed == 0
        assert len(collections.listings.documents) == 4

    def test_recrawl_keeps_one_document_per_linkless_card(self, collections, throttle):
        """Should not store a card without a link again after a state reset."""
        fetcher = FakeFetcher({page_url(1): make_listing_page([make_card(href=None)])})
        make_controller(collections, fetcher, throttle).run()
        CrawlStateStore(collections.state).reset()

        summary = make_controller(collections, fetcher, throttle).run()

        assert (summary.inserted, summary.duplicates) == (0, 1)
        assert len(collections.listings.documents) == 1
        assert collections.listings.documents[0]["url"] == ""

    def test_duplicate_cards_on_one_page(self, collections, throttle):
        """Should store a listing shown twice on a page once."""
        html = make_listing_page([make_card(href="/nc_1/"), make_card(href="/nc_1/?pos=2")])
        fetcher = FakeFetcher({page_url(1): html})

        summary = make_controller(collections, fetcher, throttle).run()

        assert summary.outcomes[0].status == PAGE_SAVED
        assert (summary.inserted, summary.duplicates) == (1, 1)

    def test_refused_connection_aborts(self, collections, throttle, sleeper):
        """Should stop at a refused page without advancing the state."""
        fetcher = FakeFetcher(site(4, overrides={2: REFUSED}))

        summary = make_controller(collections, fetcher, throttle).run()

        assert listing_pages_requested(fetcher) == [page_url(1), page_url(2)]
        assert summary.aborted is True
        assert summary.outcomes[-1].status == PAGE_REFUSED
        assert CrawlStateStore(collections.state).get_last_completed_page() == 1
        assert len(sleeper.calls) == 2

    def test_refused_page_is_retried_next_run(self, collections, throttle):
        """Should start the next run at the refused page."""
        pages = site(3, overrides={2: REFUSED})
        fetcher = FakeFetcher(pages)
        make_controller(collections, fetcher, throttle).run()

        fetcher.pages.update(site(3))
        fetcher.requested.clear()
        summary = make_controller(collections, fetcher, throttle).run()

        assert listing_pages_requested(fetcher) == [page_url(2), page_url(3)]
        assert summary.last_completed_page == 3

    def test_other_page_failures_continue(self, collections, throttle, sleeper):
        """Should log a failed page and move on to the next one."""
        fetcher = FakeFetcher(site(3, overrides={2: (None, {'status': 500, 'message': 'Error 500'})}))

        summary = make_controller(collections, fetcher, throttle).run()

        assert [o.status for o in summary.outcomes] == [PAGE_SAVED, PAGE_FAILED, PAGE_SAVED]
        assert summary.aborted is False
        assert summary.inserted == 4
        assert summary.last_completed_page == 1
        assert CrawlStateStore(collections.state).get_last_completed_page() == 1
        assert len(sleeper.calls) == 4

    def test_failed_page_is_retried_next_run(self, collections, throttle):
        """Should start the next run at a failed page even when later pages succeeded."""
        fetcher = FakeFetcher(site(3, overrides={2: (None, {'status': 500, 'message': 'Error 500'})}))
        make_controller(collections, fetcher, throttle).run()

        fetcher.pages.update(site(3))
        fetcher.requested.clear()
        summary = make_controller(collections, fetcher, throttle).run()

        assert listing_pages_requested(fetcher) == [page_url(2), page_url(3)]
        assert summary.inserted == 2
        assert summary.duplicates == 2
        assert collections.listings.find_one({"_id": "/ms/chuko/nc_2_0/"}) is not None
        assert CrawlStateStore(collections.state).get_last_completed_page() == 3

    def test_failed_write_holds_state_for_rest_of_run(self, collections, throttle):
        """Should keep the state at the page before a failed write."""
        collections.listings.fail("insert_many", OperationFailure("disk full"), after=1)
        fetcher = FakeFetcher(site(4))

        summary = make_controller(collections, fetcher, throttle).run()

        assert [o.status for o in summary.outcomes] == [PAGE_SAVED, PAGE_FAILED, PAGE_SAVED, PAGE_SAVED]
        assert [o.state_advanced for o in summary.outcomes] == [True, False, False, False]
        assert CrawlStateStore(collections.state).get_last_completed_page() == 1

    def test_empty_page_advances_state(self, collections, throttle, sleeper):
        """Should record an empty page as completed and still wait."""
        fetcher = FakeFetcher(site(2, overrides={2: make_listing_page([], max_page=2)}))

        summary = make_controller(collections, fetcher, throttle).run()

        assert summary.outcomes[-1].status == PAGE_EMPTY
        assert CrawlStateStore(collections.state).get_last_completed_page() == 2
        assert len(sleeper.calls) == 3

    def test_failed_write_does_not_advance_state(self, collections, throttle):
        """Should leave the state untouched when the insert fails."""
        collections.listings.fail("insert_many", OperationFailure("disk full"))
        fetcher = FakeFetcher(site(1))

        summary = make_controller(collections, fetcher, throttle).run()

        assert summary.outcomes[0].status == PAGE_FAILED
        assert CrawlStateStore(collections.state).get_last_completed_page() == 0

    def test_page_count_failure_is_fatal(self, collections, throttle):
        """Should report a fatal error when page 1 cannot be read."""
        fetcher = FakeFetcher()

        summary = make_controller(collections, fetcher, throttle).run()

        assert summary.fatal_error is not None
        assert summary.pages_visited == 0

    def test_unreachable_store_is_fatal(self, collections, throttle):
        """Should end the run when the database cannot be reached."""
        collections.listings.fail("insert_many", ServerSelectionTimeoutError("no servers"))
        fetcher = FakeFetcher(site(3))

        summary = make_controller(collections, fetcher, throttle).run()

        assert "no servers" in summary.fatal_error
        assert listing_pages_requested(fetcher) == [page_url(1)]
