"""
Page schemas and pager parsing for the Japanese Real Estate harvester.

This module holds everything that is specific to the target site's markup:
the selector of a listing card, the rule table of a card's fields, the
positional summary tables, the detail page sections, and the pager that
tells how many result pages exist.

The parsing functions use BeautifulSoup with the standard html.parser.

Author: Leonardo Pacciani-Mori
License: MIT
"""

import re
from typing import List, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag

from japanese_real_estate.config.logging_config import get_logger
from japanese_real_estate.scraping.field_extractor import ExtractionRule

logger = get_logger(__name__)

HTML_PARSER = "html.parser"

# Status reported when a fetched page cannot be parsed.
STATUS_PARSE_ERROR = "parse_error"

# =============================================================================
# LISTING PAGE SCHEMA
# =============================================================================

# One property card on a result page.
LISTING_CARD_SELECTOR = ".cassette.js-bukkenCassette"

_CARD_TITLE_LINK = ".cassettebox-header .cassettebox-title a"

LISTING_RULES = [
    ExtractionRule("category", ".cassettebox-header .cassettebox-hpct"),
    ExtractionRule("name", _CARD_TITLE_LINK),
    ExtractionRule("description", ".infodatabox-lead"),
    ExtractionRule("url", _CARD_TITLE_LINK, attribute="href", required=True),
    ExtractionRule(
        "image",
        ".cassettebox-body .ui-media .infodatabox-object img",
        attribute="rel",
    ),
]

# Cells of the two summary tables, read positionally:
# 0 address, 1 station line, 2 walking time, 3 price, 4 size, 5 age.
LISTING_TABLE_CELL_SELECTORS = [
    ".infodatabox-boxgroup .listtable:nth-of-type(1) tr td",
    ".infodatabox-boxgroup .listtable:nth-of-type(2) tr td",
]

# =============================================================================
# DETAIL PAGE SCHEMA
# =============================================================================

DETAIL_TABLE_SELECTOR = ".property_view_table"
DETAIL_DESCRIPTION_HEADING = ("h2", "物件の特徴")
DETAIL_FEATURES_HEADING = ("h3", "特徴ピックアップ")
DETAIL_IMAGE_CONTAINER_ID = "main"

# =============================================================================
# PAGER
# =============================================================================

PAGER_ITEM_SELECTOR = ".pagination-parts li"
HIT_COUNT_SELECTOR = ".pagination_set-hit"

_DIGITS_RE = re.compile(r"[\d,]+")


def parse_html(html_source: str) -> BeautifulSoup:
    """Parse an HTML document with the harvester's parser."""
    return BeautifulSoup(html_source, HTML_PARSER)


def find_listing_cards(soup: BeautifulSoup) -> List[Tag]:
    """
    Return every listing card of a result page, in document order.

    Args:
        soup: The parsed result page.

    Returns:
        list: The card elements; empty when the page has none.
    """
    return soup.select(LISTING_CARD_SELECTOR)


def parse_page_count(html_source: str) -> int:
    """
    Parse the number of result pages from the pager.

    The pager lists page links (1, 2, 3, ..., last); the highest numeric
    entry is the last page. A page without a pager has a single page.

    Args:
        html_source: The HTML of a result page.

    Returns:
        int: The number of result pages, 1 if it cannot be determined.

    Example:
        >>> parse_page_count(first_page_html)
        158
    """
    try:
        soup = parse_html(html_source)
        numbers = []
        for item in soup.select(PAGER_ITEM_SELECTOR):
            text = item.get_text().strip()
            if text.isdigit():
                numbers.append(int(text))
        return max(numbers) if numbers else 1

    except (ValueError, TypeError, AttributeError) as e:
        logger.debug(f"Error parsing page count: {str(e)}")
        return 1


def parse_total_items(html_source: str) -> Optional[int]:
    """
    Parse the total hit count ("1,234件") shown above the pager.

    Args:
        html_source: The HTML of a result page.

    Returns:
        int or None: The number of matching properties, or None if the
            count is not shown.
    """
    try:
        soup = parse_html(html_source)
        element = soup.select_one(HIT_COUNT_SELECTOR)
        if element is None:
            return None
        match = _DIGITS_RE.search(element.get_text())
        if not match:
            return None
        return int(match.group(0).replace(",", ""))

    except (ValueError, TypeError, AttributeError) as e:
        logger.debug(f"Error parsing total items: {str(e)}")
        return None
