"""
Record construction for the Japanese Real Estate harvester.

This module composes the raw strings produced by the field extractor with
the numeric parsers into typed records: ListingRecord for a result-page card
and DetailRecord for a property's own page. Both expose to_document() for
storage in MongoDB.

Everything here is pure: no network, no database.

Author: Leonardo Pacciani-Mori
License: MIT
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from japanese_real_estate.core.numeric_utils import (
    extract_price,
    parse_area_m2,
    price_from_labels,
    area_from_labels,
)
from japanese_real_estate.core.string_utils import (
    build_absolute_url,
    listing_key_from_card,
    listing_key_from_href,
)

# Detail table labels holding the computed fields, highest priority first.
SALE_PRICE_LABELS = ("価格", "販売価格", "購入価格")
RENT_PRICE_LABELS = ("賃料", "月々支払額")
AREA_LABELS = ("専有面積", "建物面積", "土地面積", "面積")

# Positions of the listing card summary cells.
_ADDRESS, _STATION_LINE, _STATION_WALK, _PRICE, _SIZE, _AGE = range(6)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ListingRecord:
    """
    Summary of one property card on a result page.

    Attributes:
        listing_key: Identity key derived from the detail link. A card
            without a link is keyed by its summary texts instead; None
            only when those are empty too.
        url: Absolute detail URL, "" when the card has no link.
        price, size, age: Raw summary texts as shown on the card.
        sale_price_yen, rent_price_yen: Parsed prices, None when absent.
        area_m2: Parsed area, None when absent.
    """
    listing_key: Optional[str]
    category: str = ""
    name: str = ""
    address: str = ""
    station: str = ""
    description: str = ""
    image: str = ""
    url: str = ""
    price: str = ""
    size: str = ""
    age: str = ""
    sale_price_yen: Optional[int] = None
    rent_price_yen: Optional[int] = None
    area_m2: Optional[float] = None
    updated_at: datetime = field(default_factory=_utcnow)

    def to_document(self) -> Dict[str, Any]:
        """
        Convert to a listings collection document.

        The listing key becomes _id, so the collection's primary index is
        the uniqueness constraint. Without a key, _id is left out and
        MongoDB assigns one; build_listing_record only leaves it empty for a
        card with no link and no summary text.
        """
        document: Dict[str, Any] = {}
        if self.listing_key:
            document["_id"] = self.listing_key
        document.update({
            "category": self.category,
            "name": self.name,
            "address": self.address,
            "station": self.station,
            "description": self.description,
            "image": self.image,
            "url": self.url,
            "price": self.price,
            "size": self.size,
            "age": self.age,
            "sale_price_yen": self.sale_price_yen,
            "rent_price_yen": self.rent_price_yen,
            "area_m2": self.area_m2,
            "updated_at": self.updated_at,
            "processed": False,
        })
        return document


@dataclass
class DetailRecord:
    """
    Enrichment data scraped from a property's own page.

    Attributes:
        fields: Table values keyed by the site's own labels, verbatim.
        images: Image URLs, de-duplicated, in page order.
        features: Feature list, or None when the page has no feature section.
        description: Free-text description, or None when absent.
        map_coordinates: {"lat", "lng"} when the page embeds a map.
        listing_id: _id of the owning listing, set by the enrichment
            controller before insert.
    """
    fields: Dict[str, str]
    source_url: str
    images: List[str] = field(default_factory=list)
    features: Optional[List[str]] = None
    description: Optional[str] = None
    map_coordinates: Optional[Dict[str, float]] = None
    sale_price_yen: Optional[int] = None
    rent_price_yen: Optional[int] = None
    area_m2: Optional[float] = None
    scraped_at: datetime = field(default_factory=_utcnow)
    listing_id: Any = None

    def to_document(self) -> Dict[str, Any]:
        """Convert to a details collection document; absent sections are left out."""
        document: Dict[str, Any] = dict(self.fields)
        if self.description is not None:
            document["description"] = self.description
        if self.features is not None:
            document["features"] = list(self.features)
        if self.map_coordinates is not None:
            document["map_coordinates"] = dict(self.map_coordinates)
        document.update({
            "images": list(self.images),
            "sale_price_yen": self.sale_price_yen,
            "rent_price_yen": self.rent_price_yen,
            "area_m2": self.area_m2,
            "scraped_at": self.scraped_at,
            "source_url": self.source_url,
            "listing_id": self.listing_id,
        })
        return document


def _cell(cells: Sequence[str], index: int) -> str:
    return cells[index] if index < len(cells) else ""


def build_listing_record(
    fields: Dict[str, str],
    cells: Sequence[str],
    base_path: str,
    now: Optional[datetime] = None
) -> ListingRecord:
    """
    Build a ListingRecord from a card's extracted fields and summary cells.

    Args:
        fields: Output of extract_fields() with the listing rule table.
        cells: Output of extract_positional_cells(), in the order
            address, station line, walking time, price, size, age.
        base_path: Site root used to make the detail link absolute.
        now: Timestamp for updated_at; the current UTC time by default.

    Returns:
        ListingRecord: The record. Missing fields are "", unparseable
            prices and areas are None.

    Example:
        >>> record = build_listing_record(
        ...     {"name": "パークハウス", "url": "/ms/chuko/nc_1/"},
        ...     ["東京都新宿区", "JR山手線「新宿」", "徒歩5分", "価格：7100万円", "75.5m2", "2005年3月"],
        ...     "https://suumo.jp",
        ... )
        >>> record.listing_key, record.sale_price_yen, record.area_m2
        ('/ms/chuko/nc_1/', 71000000, 75.5)
    """
    href = fields.get("url", "")
    name = fields.get("name", "")
    address = _cell(cells, _ADDRESS)

    station_line = _cell(cells, _STATION_LINE)
    station = f"{station_line} {_cell(cells, _STATION_WALK)}".strip() if station_line else ""

    price = _cell(cells, _PRICE)
    size = _cell(cells, _SIZE)
    age = _cell(cells, _AGE)
    sale_price_yen, rent_price_yen = extract_price(price)

    return ListingRecord(
        listing_key=(
            listing_key_from_href(href)
            or listing_key_from_card(name, address, station, price, size, age)
        ),
        category=fields.get("category", ""),
        name=name,
        address=address,
        station=station,
        description=fields.get("description", ""),
        image=fields.get("image", ""),
        url=build_absolute_url(base_path, href),
        price=price,
        size=size,
        age=age,
        sale_price_yen=sale_price_yen,
        rent_price_yen=rent_price_yen,
        area_m2=parse_area_m2(size),
        updated_at=now or _utcnow(),
    )


def _label_index(fields: Dict[str, str]) -> Dict[str, str]:
    # Labels can carry trailing hint text ("価格 ヒント"); index them by
    # their first word as well, without shadowing an exact label.
    index = dict(fields)
    for label, value in fields.items():
        index.setdefault(label.split(" ")[0], value)
    return index


def build_detail_record(
    fields: Dict[str, str],
    source_url: str,
    images: Optional[List[str]] = None,
    features: Optional[List[str]] = None,
    description: Optional[str] = None,
    map_coordinates: Optional[Dict[str, float]] = None,
    now: Optional[datetime] = None
) -> DetailRecord:
    """
    Build a DetailRecord from a detail page's extracted sections.

    The labeled table values are kept verbatim; the sale price, rent and
    area are computed from the first matching label of SALE_PRICE_LABELS,
    RENT_PRICE_LABELS and AREA_LABELS.

    Args:
        fields: Output of extract_labeled_table().
        source_url: The detail page URL.
        images: Output of extract_images().
        features: Output of extract_feature_list().
        description: Output of extract_section_text().
        map_coordinates: Output of extract_map_coordinates().
        now: Timestamp for scraped_at; the current UTC time by default.

    Returns:
        DetailRecord: The record, with listing_id still unset.

    Example:
        >>> build_detail_record({"価格": "7100万円"}, url).sale_price_yen
        71000000
    """
    labels = _label_index(fields)
    return DetailRecord(
        fields=dict(fields),
        source_url=source_url,
        images=list(images or []),
        features=features,
        description=description,
        map_coordinates=map_coordinates,
        sale_price_yen=price_from_labels(labels, SALE_PRICE_LABELS),
        rent_price_yen=price_from_labels(labels, RENT_PRICE_LABELS),
        area_m2=area_from_labels(labels, AREA_LABELS),
        scraped_at=now or _utcnow(),
    )
