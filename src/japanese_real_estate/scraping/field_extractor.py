"""
Rule-based field extraction for the Japanese Real Estate harvester.

This module turns a parsed BeautifulSoup node (a listing card or a whole
detail page) into a mapping of field name to raw string. What to extract is
declared as a table of ExtractionRule entries (CSS selector plus optional
attribute) instead of ad-hoc tree walking, so the listing and detail schemas
live next to each other in listing_parser and can be tested on small HTML
snippets.

Absent markup is never an error:
    - a text or attribute rule that matches nothing yields ""
    - table, image, section and feature helpers return empty results or None

Author: Leonardo Pacciani-Mori
License: MIT
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from bs4 import BeautifulSoup
from bs4.element import Tag

from japanese_real_estate.config.logging_config import get_logger
from japanese_real_estate.core.string_utils import clean_text

logger = get_logger(__name__)

_FEATURE_SPLIT_RE = re.compile(r"\s*/\s*")
_LONGITUDE_RE = re.compile(r"longitude[\"']?\s*:\s*(\d+\.\d+)")
_LATITUDE_RE = re.compile(r"latitude[\"']?\s*:\s*(\d+\.\d+)")


@dataclass(frozen=True)
class ExtractionRule:
    """
    One declared field of an extraction schema.

    Attributes:
        name: Field name in the resulting mapping.
        selector: CSS selector, evaluated relative to the node.
        attribute: Attribute to read from the first match. None reads the
            element's text content instead.
        required: Whether an empty value should be reported by
            missing_required().
    """
    name: str
    selector: str
    attribute: Optional[str] = None
    required: bool = False


def _attribute_value(element: Tag, attribute: str) -> str:
    value = element.get(attribute)
    if value is None:
        return ""
    # Multi-valued attributes (class, rel on links) come back as lists.
    if isinstance(value, list):
        value = " ".join(value)
    return value.strip()


def _apply_rule(node: Tag, rule: ExtractionRule) -> str:
    element = node.select_one(rule.selector)
    if element is None:
        return ""
    if rule.attribute is None:
        return clean_text(element.get_text())
    return _attribute_value(element, rule.attribute)


def extract_fields(node: Tag, rules: Iterable[ExtractionRule]) -> Dict[str, str]:
    """
    Apply an extraction rule table to a node.

    Text rules return the first matching element's text, trimmed and with
    internal whitespace collapsed to single spaces. Attribute rules return
    the trimmed attribute value of the first matching element.

    Args:
        node: A BeautifulSoup Tag (or BeautifulSoup document).
        rules: The rule table.

    Returns:
        dict: Field name to string for every rule, "" where nothing matched.

    Example:
        >>> rules = [ExtractionRule("name", ".title a"),
        ...          ExtractionRule("url", ".title a", attribute="href")]
        >>> extract_fields(card, rules)
        {'name': 'パークハウス西新宿', 'url': '/ms/chuko/tokyo/nc_1/'}
    """
    return {rule.name: _apply_rule(node, rule) for rule in rules}


def missing_required(
    fields: Dict[str, str],
    rules: Iterable[ExtractionRule]
) -> List[str]:
    """Names of required rules whose extracted value is empty."""
    return [rule.name for rule in rules if rule.required and not fields.get(rule.name)]


def extract_positional_cells(node: Tag, selectors: Sequence[str]) -> List[str]:
    """
    Collect cell texts for a fixed-position schema.

    Listing cards lay their summary out as unlabeled table cells whose
    meaning is given by position (address, station, price...). Cells are
    returned selector by selector, each in document order.

    Args:
        node: The listing card.
        selectors: Cell selectors, in schema order.

    Returns:
        list: Cleaned cell texts. Missing tables contribute nothing.
    """
    cells = []
    for selector in selectors:
        for cell in node.select(selector):
            cells.append(clean_text(cell.get_text()))
    return cells


def extract_labeled_table(node: Tag, table_selector: str) -> Dict[str, str]:
    """
    Read label/value rows from every table matching table_selector.

    Each header cell (th) labels the data cell (td) that follows it in the
    same row, so rows holding several pairs are read completely. The first
    occurrence of a label wins; later duplicates are ignored. Pairs with an
    empty label or value are skipped.

    Args:
        node: The detail page.
        table_selector: CSS selector of the property tables.

    Returns:
        dict: Source-site label to value, in first-seen order.

    Example:
        >>> extract_labeled_table(soup, ".property_view_table")
        {'価格': '7100万円', '間取り': '3LDK', '専有面積': '75.5m2'}
    """
    values: Dict[str, str] = {}
    for table in node.select(table_selector):
        for row in table.select("tr"):
            label = None
            for cell in row.find_all(["th", "td"], recursive=False):
                if cell.name == "th":
                    label = clean_text(cell.get_text())
                    continue
                value = clean_text(cell.get_text())
                if label and value and label not in values:
                    values[label] = value
                label = None
    return values


def extract_images(
    node: Tag,
    container_id: str = "main",
    exclude_prefixes: Sequence[str] = ("data:image/gif",),
    exclude_substrings: Sequence[str] = ("logo",)
) -> List[str]:
    """
    Collect image URLs from a page, without duplicates.

    Lazy-loaded images keep their real URL in the "rel" attribute, so it
    is preferred over "src". Placeholder GIFs and logo assets are dropped.

    Args:
        node: The detail page.
        container_id: id of the element to search; the whole body is used
            when it is absent.
        exclude_prefixes: URL prefixes to drop.
        exclude_substrings: URL substrings to drop.

    Returns:
        list: Image URLs in first-seen order.
    """
    container = node.find(id=container_id)
    if container is None:
        container = node.body if isinstance(node, BeautifulSoup) and node.body else node

    images: List[str] = []
    seen = set()
    for img in container.find_all("img"):
        source = _attribute_value(img, "rel") or _attribute_value(img, "src")
        if not source:
            continue
        if source.startswith(tuple(exclude_prefixes)):
            continue
        if any(fragment in source for fragment in exclude_substrings):
            continue
        if source in seen:
            continue
        seen.add(source)
        images.append(source)
    return images


def _find_heading_sibling(node: Tag, heading_tag: str, heading_text: str) -> Optional[Tag]:
    for heading in node.find_all(heading_tag):
        if heading_text in heading.get_text():
            return heading.find_next_sibling()
    return None


def extract_section_text(
    node: Tag,
    heading_tag: str,
    heading_text: str
) -> Optional[str]:
    """
    Read the text of the element that follows a labeled heading.

    Args:
        node: The detail page.
        heading_tag: Heading element name, e.g. "h2".
        heading_text: Text the heading must contain, e.g. "物件の特徴".

    Returns:
        str or None: Cleaned sibling text, or None when the heading or its
            sibling element is absent.
    """
    sibling = _find_heading_sibling(node, heading_tag, heading_text)
    if sibling is None:
        return None
    return clean_text(sibling.get_text())


def extract_feature_list(
    node: Tag,
    heading_tag: str,
    heading_text: str
) -> Optional[List[str]]:
    """
    Read a slash-separated feature list that follows a labeled heading.

    Returns:
        list or None: The non-empty features in page order, or None when
            the heading is absent.

    Example:
        >>> extract_feature_list(soup, "h3", "特徴ピックアップ")
        ['南向き', '角部屋', 'ペット相談']
    """
    sibling = _find_heading_sibling(node, heading_tag, heading_text)
    if sibling is None:
        return None
    text = clean_text(sibling.get_text())
    return [feature for feature in _FEATURE_SPLIT_RE.split(text) if feature]


def extract_map_coordinates(node: Tag) -> Optional[Dict[str, float]]:
    """
    Find the property coordinates in the embedded map script.

    The first script mentioning google.maps.LatLng or longitude is searched
    for "latitude: <decimal>" and "longitude: <decimal>" pairs.

    Returns:
        dict or None: {"lat": float, "lng": float}, or None when the
            script or either coordinate is missing.
    """
    for script in node.find_all("script"):
        text = script.string or script.get_text()
        if not text:
            continue
        if "google.maps.LatLng" not in text and "longitude" not in text:
            continue

        longitude = _LONGITUDE_RE.search(text)
        latitude = _LATITUDE_RE.search(text)
        if longitude and latitude:
            return {
                "lat": float(latitude.group(1)),
                "lng": float(longitude.group(1)),
            }
        logger.debug("Map script found without a latitude/longitude pair")
        return None
    return None
