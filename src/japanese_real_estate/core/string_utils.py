"""
String manipulation utilities for the Japanese Real Estate harvester.

This module provides functions for cleaning text extracted from listing
markup and for turning the relative detail links found on listing cards into
absolute URLs and stable listing keys.

Functions in this module never raise on malformed input; they return an
empty string or None instead.

Author: Leonardo Pacciani-Mori
License: MIT
"""

import re
from typing import Optional
from urllib.parse import urljoin, urlsplit

_WHITESPACE_RE = re.compile(r"\s+")


def clean_text(text: Optional[str]) -> str:
    """
    Trim a string and collapse every internal whitespace run to one space.

    Listing markup is indented and wrapped heavily, so raw element text is
    full of newlines, tabs and full-width spaces (U+3000, which Python
    treats as whitespace).

    Args:
        text: Raw element text. None is treated as empty.

    Returns:
        str: The normalized text, "" for None or blank input.

    Example:
        >>> clean_text("  東京都新宿区\\n\\t西新宿１ ")
        '東京都新宿区 西新宿１'
    """
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def build_absolute_url(base_path: str, href: Optional[str]) -> str:
    """
    Resolve a detail link against the configured site base path.

    Args:
        base_path: Site root, e.g. "https://suumo.jp".
        href: The link as found on the card. May be relative
            ("/ms/chuko/..."), protocol-relative ("//suumo.jp/...") or
            absolute.

    Returns:
        str: The absolute URL, or "" when href is empty.

    Example:
        >>> build_absolute_url("https://suumo.jp", "/ms/chuko/tokyo/nc_1/")
        'https://suumo.jp/ms/chuko/tokyo/nc_1/'
    """
    href = (href or "").strip()
    if not href:
        return ""
    if href.startswith("//"):
        return f"https:{href}"
    if href.startswith(("http://", "https://")):
        return href
    return urljoin(base_path.rstrip("/") + "/", href.lstrip("/"))


def listing_key_from_href(href: Optional[str]) -> Optional[str]:
    """
    Derive the listing identity key from a detail link.

    The key is the link's path, without query string or fragment, so that
    tracking parameters appended by the pager do not turn one property into
    several listings.

    Args:
        href: The detail link from the listing card.

    Returns:
        str or None: The path, or None when the link is empty or has no path.

    Example:
        >>> listing_key_from_href("/ms/chuko/tokyo/sc_shinjuku/nc_76543210/?bc=1")
        '/ms/chuko/tokyo/sc_shinjuku/nc_76543210/'
    """
    href = (href or "").strip()
    if not href:
        return None
    path = urlsplit(href).path
    return path or None


def listing_key_from_card(*texts: Optional[str]) -> Optional[str]:
    """
    Derive a fallback identity key for a card without a detail link.

    Re-crawling the same card yields the same key, so it is stored once like
    any other listing.

    Args:
        *texts: Summary texts shown on the card (address, price, size...).

    Returns:
        str or None: "nolink:" followed by the cleaned texts joined with "|",
            or None when every text is empty.

    Example:
        >>> listing_key_from_card("東京都新宿区", "価格：7100万円", "75.5m2")
        'nolink:東京都新宿区|価格：7100万円|75.5m2'
    """
    parts = [clean_text(text) for text in texts]
    if not any(parts):
        return None
    return "nolink:" + "|".join(parts)
