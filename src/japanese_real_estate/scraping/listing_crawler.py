"""
Result page crawler for the Japanese Real Estate harvester.

This module fetches one page of search results and turns every property
card on it into a ListingRecord. It also provides the page-count source used
by the listing crawl controller: the pager of the first result page.

fetch_page() never raises. A transport or parse failure produces a result
with no listings and a status describing the failure; reporting it is left
to the caller.

Author: Leonardo Pacciani-Mori
License: MIT
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from bs4.element import Tag

from japanese_real_estate.config.settings import SCRAPING_BASE_PATH
from japanese_real_estate.config.logging_config import get_logger
from japanese_real_estate.scraping.field_extractor import (
    extract_fields,
    extract_positional_cells,
    missing_required,
)
from japanese_real_estate.scraping.http_client import STATUS_REQUEST_ERROR
from japanese_real_estate.scraping.listing_parser import (
    LISTING_RULES,
    LISTING_TABLE_CELL_SELECTORS,
    STATUS_PARSE_ERROR,
    find_listing_cards,
    parse_html,
    parse_page_count,
    parse_total_items,
)
from japanese_real_estate.scraping.record_builder import ListingRecord, build_listing_record

logger = get_logger(__name__)


class PageCountError(Exception):
    """Raised when the number of result pages cannot be obtained."""

    def __init__(self, message: str, status: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status = status or {}


@dataclass
class ListingPageResult:
    """
    Outcome of fetching one result page.

    Attributes:
        page_url: The fetched URL.
        listings: Records in document order; empty on failure.
        status: Status dictionary ('status', 'message') from the fetch, or a
            parse_error status.
        fetched: True when the page was fetched and parsed.
    """
    page_url: str
    listings: List[ListingRecord] = field(default_factory=list)
    status: Dict[str, Any] = field(default_factory=dict)
    fetched: bool = False


def listing_page_url(start_path: str, page_number: int) -> str:
    """Build the URL of a result page: "<start_path>&pn=<page_number>"."""
    return f"{start_path}&pn={page_number}"


class ListingPageCrawler:
    """
    Fetches result pages and builds listing records from their cards.

    Attributes:
        fetcher: Object with fetch(url) -> (content, status), normally an
            HttpFetcher.
        base_path: Site root used to make detail links absolute.
    """

    def __init__(self, fetcher, base_path: str = SCRAPING_BASE_PATH):
        self.fetcher = fetcher
        self.base_path = base_path

    def build_listing(self, card: Tag) -> ListingRecord:
        """Extract one card and build its record."""
        fields = extract_fields(card, LISTING_RULES)
        missing = missing_required(fields, LISTING_RULES)
        if missing:
            logger.warning(
                f"Listing card without {', '.join(missing)}: {fields.get('name') or 'Unknown'}"
            )
        cells = extract_positional_cells(card, LISTING_TABLE_CELL_SELECTORS)
        return build_listing_record(fields, cells, self.base_path)

    def fetch_page(self, page_url: str) -> ListingPageResult:
        """
        Fetch a result page and build one record per listing card.

        Args:
            page_url: Absolute URL of the result page.

        Returns:
            ListingPageResult: The records in document order. On failure the
                listing list is empty, fetched is False and status carries
                the transport status (e.g. connection_refused) or
                parse_error.

        Example:
            >>> result = crawler.fetch_page(listing_page_url(start_path, 5))
            >>> len(result.listings)
            30
        """
        try:
            content, status = self.fetcher.fetch(page_url)
        except Exception as e:
            return ListingPageResult(
                page_url,
                status={'status': STATUS_REQUEST_ERROR, 'message': f'Fetch failed: {str(e)}'},
            )

        if content is None:
            return ListingPageResult(page_url, status=status)

        try:
            soup = parse_html(content)
            cards = find_listing_cards(soup)
            logger.info(f"Found {len(cards)} properties on page.")
            listings = [self.build_listing(card) for card in cards]
        except Exception as e:
            return ListingPageResult(
                page_url,
                status={'status': STATUS_PARSE_ERROR, 'message': f'Parse error: {str(e)}'},
            )

        return ListingPageResult(page_url, listings, status, fetched=True)

    def get_page_numbers(self, start_path: str) -> Tuple[Optional[int], int]:
        """
        Read the total hit count and the number of result pages.

        Args:
            start_path: The search result path without page parameter.

        Returns:
            Tuple containing:
                - int or None: Total number of matching properties.
                - int: Number of result pages (at least 1).

        Raises:
            PageCountError: If the first result page cannot be fetched. The
                fetch status is available as the exception's status.
        """
        content, status = self.fetcher.fetch(listing_page_url(start_path, 1))
        if content is None:
            raise PageCountError(
                f"Could not fetch first result page: {status.get('message')}",
                status,
            )
        return parse_total_items(content), parse_page_count(content)
