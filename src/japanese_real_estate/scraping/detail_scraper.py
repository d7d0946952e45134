"""
Detail page scraper for the Japanese Real Estate harvester.

This module fetches a property's own page and extracts its sections into a
DetailRecord:
    1. the property table(s), label by label
    2. the free-text description
    3. the feature pickup list
    4. all property images
    5. the map coordinates, when a map is embedded

Each section is extracted independently; a section that fails is logged and
left out without losing the others. Only a failed fetch, or a page that
cannot be parsed at all, yields no record.

Author: Leonardo Pacciani-Mori
License: MIT
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, TypeVar

from bs4 import BeautifulSoup

from japanese_real_estate.config.logging_config import get_logger
from japanese_real_estate.scraping.field_extractor import (
    extract_feature_list,
    extract_images,
    extract_labeled_table,
    extract_map_coordinates,
    extract_section_text,
)
from japanese_real_estate.scraping.listing_parser import (
    DETAIL_DESCRIPTION_HEADING,
    DETAIL_FEATURES_HEADING,
    DETAIL_IMAGE_CONTAINER_ID,
    DETAIL_TABLE_SELECTOR,
    STATUS_PARSE_ERROR,
    parse_html,
)
from japanese_real_estate.scraping.record_builder import DetailRecord, build_detail_record

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class DetailPageResult:
    """
    Outcome of scraping one detail page.

    Attributes:
        url: The detail page URL.
        record: The extracted record, or None on fetch/parse failure.
        status: Status dictionary ('status', 'message').
    """
    url: str
    record: Optional[DetailRecord] = None
    status: Dict[str, Any] = field(default_factory=dict)


def _extract_section(name: str, url: str, extractor: Callable[[], T], default: T) -> T:
    try:
        return extractor()
    except Exception as e:
        logger.error(f"Failed to parse {name} on {url}: {str(e)}")
        return default


def build_detail_page_record(soup: BeautifulSoup, url: str) -> DetailRecord:
    """
    Extract every section of a parsed detail page into a DetailRecord.

    Args:
        soup: The parsed detail page.
        url: The page URL, stored as source_url.

    Returns:
        DetailRecord: The record; sections missing from the page are empty
            or None.
    """
    heading_tag, heading_text = DETAIL_DESCRIPTION_HEADING
    features_tag, features_text = DETAIL_FEATURES_HEADING

    fields = _extract_section(
        "property table", url,
        lambda: extract_labeled_table(soup, DETAIL_TABLE_SELECTOR), {},
    )
    description = _extract_section(
        "description", url,
        lambda: extract_section_text(soup, heading_tag, heading_text), None,
    )
    features = _extract_section(
        "features", url,
        lambda: extract_feature_list(soup, features_tag, features_text), None,
    )
    images = _extract_section(
        "images", url,
        lambda: extract_images(soup, DETAIL_IMAGE_CONTAINER_ID), [],
    )
    map_coordinates = _extract_section(
        "map coordinates", url,
        lambda: extract_map_coordinates(soup), None,
    )

    return build_detail_record(
        fields,
        url,
        images=images,
        features=features,
        description=description,
        map_coordinates=map_coordinates,
    )


class DetailPageScraper:
    """
    Fetches detail pages and builds DetailRecords.

    Attributes:
        fetcher: Object with fetch(url) -> (content, status).
    """

    def __init__(self, fetcher):
        self.fetcher = fetcher

    def scrape(self, url: str) -> DetailPageResult:
        """
        Fetch and extract one detail page.

        Args:
            url: Absolute URL of the detail page.

        Returns:
            DetailPageResult: With a record on success, or record None and
                the failure status.

        Example:
            >>> result = scraper.scrape("https://suumo.jp/ms/chuko/tokyo/nc_1/")
            >>> result.record.sale_price_yen
            71000000
        """
        content, status = self.fetcher.fetch(url)
        if content is None:
            logger.error(f"Error scraping detail page {url}: {status.get('message')}")
            return DetailPageResult(url, None, status)

        try:
            soup = parse_html(content)
        except Exception as e:
            logger.error(f"Error parsing detail page {url}: {str(e)}")
            return DetailPageResult(
                url, None,
                {'status': STATUS_PARSE_ERROR, 'message': f'Parse error: {str(e)}'},
            )

        record = build_detail_page_record(soup, url)
        return DetailPageResult(url, record, status)
