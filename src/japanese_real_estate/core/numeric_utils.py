"""
Numeric parsing utilities for the Japanese Real Estate harvester.

This module converts the price and area texts shown on Japanese property
listings into numbers. Prices are written with the additive large-number
markers 億 (10^8) and 万 (10^4), e.g. "1億5000万円" is 150,000,000 yen,
and may carry thousands separators and currency glyphs. Areas are written
as a decimal followed by a square-metre token ("75.5m2", "75.5㎡").

All parsers degrade to None on malformed input and log a diagnostic; they
never raise to the caller.

Author: Leonardo Pacciani-Mori
License: MIT
"""

import math
import re
from typing import Iterable, Mapping, Optional, Tuple

from japanese_real_estate.config.logging_config import get_logger

logger = get_logger(__name__)

# Large-number markers and their multipliers, in the order they appear.
OKU_MARKER = "億"
MAN_MARKER = "万"
OKU_MULTIPLIER = 100_000_000
MAN_MULTIPLIER = 10_000

# Thousands separators, currency glyphs and whitespace removed before parsing.
_STRIP_RE = re.compile(r"[,，円¥￥\s]")

# Leading decimal numeral, same semantics as a "parse the prefix" float reader.
_LEADING_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)")

_AREA_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:m2|m²|㎡)", re.IGNORECASE)

# Label patterns used to tell sale and rent prices apart inside one text.
_SALE_PRICE_RE = re.compile(r"(?:価格|購入価格)\s*[:：]\s*(\S+)")
_RENT_PRICE_RE = re.compile(r"(?:賃料|月々支払額)\s*[:：]\s*(\S+)")


def _leading_float(text: str) -> Optional[float]:
    match = _LEADING_NUMBER_RE.match(text)
    if not match:
        return None
    try:
        return float(match.group(0))
    except ValueError:
        return None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def parse_magnitude_value(raw: Optional[str]) -> Optional[int]:
    """
    Parse a composite Japanese numeral into an integer amount of yen.

    Processing steps:
        1. Remove thousands separators, currency glyphs and whitespace.
        2. If 億 is present, read the numeral before it, multiply by 10^8,
           and continue with the text after it.
        3. If 万 is present in what remains, read the numeral before it and
           multiply by 10^4.
        4. If neither marker is present, read the text as a plain decimal.
        5. Round to the nearest integer.

    A total that is not strictly positive is reported as None, the same as
    a missing value.

    Args:
        raw: The price text, e.g. "1億5000万円", "7100万円", "85,000円".

    Returns:
        int or None: The amount in yen, or None for empty, unparseable or
            non-positive input.

    Example:
        >>> parse_magnitude_value("1億5000万円")
        150000000
        >>> parse_magnitude_value("7100万円")
        71000000
        >>> parse_magnitude_value("abc") is None
        True
    """
    if not raw:
        return None

    remaining = _STRIP_RE.sub("", raw)
    total = 0.0
    found_marker = False

    if OKU_MARKER in remaining:
        found_marker = True
        head, remaining = remaining.split(OKU_MARKER, 1)
        value = _leading_float(head)
        if value is None:
            logger.warning(f"Could not parse number from: {raw!r}")
            return None
        total += value * OKU_MULTIPLIER

    if MAN_MARKER in remaining:
        found_marker = True
        head, remaining = remaining.split(MAN_MARKER, 1)
        value = _leading_float(head)
        if value is None:
            logger.warning(f"Could not parse number from: {raw!r}")
            return None
        total += value * MAN_MULTIPLIER

    if not found_marker:
        value = _leading_float(remaining)
        if value is None:
            logger.debug(f"No numeric value in: {raw!r}")
            return None
        total = value

    if total <= 0:
        return None

    return _round_half_up(total)


def parse_area_m2(raw: Optional[str]) -> Optional[float]:
    """
    Extract a square-metre measurement from an area text.

    The first decimal numeral directly followed (optionally after spaces)
    by "m2", "m²" or "㎡" is returned. Other numbers, such as a tsubo
    conversion in brackets, are ignored.

    Args:
        raw: The area text, e.g. "75.5m2（22.83坪）".

    Returns:
        float or None: The area in square metres, or None when no
            square-metre value is present.

    Example:
        >>> parse_area_m2("75.5m2")
        75.5
        >>> parse_area_m2("no size given") is None
        True
    """
    if not raw:
        return None

    match = _AREA_RE.search(raw)
    if not match:
        return None

    try:
        return float(match.group(1))
    except ValueError:
        logger.warning(f"Could not parse square meters: {raw!r}")
        return None


def extract_price(price_text: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    """
    Split a listing price text into a sale price and a rent price.

    Listing cards can show several labelled amounts in one cell (e.g. a
    purchase price and a monthly payment). Each amount is identified by its
    label followed by a colon:
        - sale: 価格 / 購入価格
        - rent: 賃料 / 月々支払額

    Args:
        price_text: The raw price cell text.

    Returns:
        Tuple containing:
            - int or None: Sale price in yen.
            - int or None: Rent price in yen.

    Example:
        >>> extract_price("価格：3980万円 月々支払額：10.2万円")
        (39800000, 102000)
    """
    sale_price = None
    rent_price = None
    if not price_text:
        return sale_price, rent_price

    sale_match = _SALE_PRICE_RE.search(price_text)
    if sale_match:
        sale_price = parse_magnitude_value(sale_match.group(1))

    rent_match = _RENT_PRICE_RE.search(price_text)
    if rent_match:
        rent_price = parse_magnitude_value(rent_match.group(1))

    return sale_price, rent_price


def price_from_labels(
    fields: Mapping[str, str],
    labels: Iterable[str]
) -> Optional[int]:
    """
    Parse the first non-empty labelled value found in an open field set.

    Detail pages key their table rows by the site's own labels, so the
    price is looked up under each candidate label in priority order.

    Args:
        fields: Label to raw value mapping, e.g. {"価格": "7100万円"}.
        labels: Candidate labels, highest priority first.

    Returns:
        int or None: The parsed amount of the first label present with a
            non-empty value, or None.

    Example:
        >>> price_from_labels({"価格": "7100万円"}, ["価格", "販売価格"])
        71000000
    """
    for label in labels:
        value = fields.get(label)
        if isinstance(value, str) and value:
            return parse_magnitude_value(value)
    return None


def area_from_labels(
    fields: Mapping[str, str],
    labels: Iterable[str]
) -> Optional[float]:
    """Square-metre counterpart of price_from_labels()."""
    for label in labels:
        value = fields.get(label)
        if isinstance(value, str) and value:
            area = parse_area_m2(value)
            if area is not None:
                return area
    return None
