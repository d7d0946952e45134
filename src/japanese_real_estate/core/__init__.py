"""
Core utilities module for the Japanese Real Estate harvester.

This module provides shared utilities used by both crawl modes, including
database connections, text cleaning and price/area parsing.

Submodules:
    connections: MongoDB connection management and collection handles.
    string_utils: Text cleaning, URL resolution and listing keys.
    numeric_utils: 億/万 composite numeral, price label and area parsing.
"""

from .connections import (
    HarvestCollections,
    get_mongodb_client,
    mongodb_connection,
    get_harvest_collections,
    ensure_indexes,
)
from .string_utils import clean_text, build_absolute_url, listing_key_from_href
from .numeric_utils import (
    parse_magnitude_value,
    parse_area_m2,
    extract_price,
    price_from_labels,
    area_from_labels,
)
