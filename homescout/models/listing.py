"""
Listing models - catalog property records in the shape the API returns.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from .intent import ListingStatus


FALLBACK_IMAGE = "/fallback-property.jpg"

_PREFERRED_PHOTO_VALUES = (True, "Y", "Yes", "y", "yes", "true", "True")


def _first(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def extract_media(raw: dict[str, Any]) -> tuple[str, list[str]]:
    """
    Pick the primary image and the ordered gallery from a record's Media array.

    The primary image is the first preferred photo, else the first item.
    Gallery URLs are ordered by Order and limited to http(s) links.
    """
    items = raw.get("Media")
    if not isinstance(items, list):
        items = []
    items = [m for m in items if isinstance(m, dict)]

    primary = None
    if items:
        primary = next(
            (m for m in items if m.get("PreferredPhotoYN") in _PREFERRED_PHOTO_VALUES),
            items[0],
        )

    # sorted() is stable, so items without an Order keep catalog order
    ordered = sorted(
        items,
        key=lambda m: m.get("Order") if isinstance(m.get("Order"), (int, float)) else float("inf"),
    )
    media_urls = [
        str(m["MediaURL"])
        for m in ordered
        if m.get("MediaURL") and str(m["MediaURL"]).startswith("http")
    ]

    image_url = (primary or {}).get("MediaURL") or (media_urls[0] if media_urls else FALLBACK_IMAGE)
    return str(image_url), media_urls


class Listing(BaseModel):
    """
    Normalized catalog listing.
    This is the internal representation used throughout the pipeline.
    """
    id: str
    address: str = ""
    city: str = ""
    county: str = ""
    state: str = ""
    zip: str = ""
    price: float = Field(default=0, description="Display price: list price, or close price for comps")
    beds: int = 0
    baths: int = 0
    property_type: str = ""
    status: ListingStatus = ListingStatus.ACTIVE
    sqft: float = 0
    lat: Optional[float] = None
    lng: Optional[float] = None
    image_url: str = FALLBACK_IMAGE
    media_urls: list[str] = Field(default_factory=list)

    # Pricing context, not part of the public card
    raw_status: Optional[str] = Field(default=None, exclude=True)
    list_price: Optional[float] = Field(default=None, exclude=True)
    close_price: Optional[float] = Field(default=None, exclude=True)
    close_date: Optional[str] = Field(default=None, exclude=True)
    mls_area: Optional[str] = Field(default=None, exclude=True)
    modified_at: Optional[datetime] = Field(default=None, exclude=True)

    @field_validator("price", "sqft", mode="before")
    @classmethod
    def parse_number(cls, v: Any) -> float:
        """Missing or malformed numbers read as zero."""
        parsed = _as_float(v)
        return parsed if parsed is not None else 0.0

    @field_validator("beds", "baths", mode="before")
    @classmethod
    def parse_count(cls, v: Any) -> int:
        parsed = _as_float(v)
        return int(parsed) if parsed is not None else 0

    @field_validator("modified_at", mode="before")
    @classmethod
    def parse_timestamp(cls, v: Any) -> Optional[datetime]:
        if not v:
            return None
        if isinstance(v, datetime):
            return v
        try:
            return datetime.fromisoformat(str(v).replace("Z", "+00:00"))
        except ValueError:
            return None

    @property
    def usable_close_price(self) -> Optional[float]:
        """Close price when strictly positive, else None."""
        if self.close_price is not None and self.close_price > 0:
            return self.close_price
        return None

    @classmethod
    def from_catalog(cls, raw: dict[str, Any], prefer_close_price: bool = False) -> Optional["Listing"]:
        """
        Build a Listing from a PascalCase catalog record.

        Args:
            raw: One element of the catalog response's ``value`` array
            prefer_close_price: Use ClosePrice as the display price (comps)

        Returns:
            Listing, or None when the record has no usable id
        """
        listing_id = str(_first(raw, "ListingKey", "ListingId", "ListingKeyNumeric") or "")
        if not listing_id:
            return None

        unparsed = str(raw.get("UnparsedAddress") or "")
        fallback_address = f"{raw.get('StreetNumber') or ''} {raw.get('StreetName') or ''}".strip()

        list_price = _as_float(raw.get("ListPrice"))
        close_price = _as_float(raw.get("ClosePrice"))
        if prefer_close_price:
            price = close_price if close_price is not None else list_price
        else:
            price = list_price if list_price is not None else close_price

        raw_status = _first(raw, "StandardStatus", "MlsStatus", "Status")
        image_url, media_urls = extract_media(raw)

        return cls(
            id=listing_id,
            address=unparsed or fallback_address,
            city=str(_first(raw, "City", "PostalCity") or ""),
            county=str(raw.get("CountyOrParish") or ""),
            state=str(_first(raw, "StateOrProvince", "State") or ""),
            zip=str(raw.get("PostalCode") or ""),
            price=price,
            beds=raw.get("BedroomsTotal"),
            baths=raw.get("BathroomsTotalInteger"),
            property_type=str(raw.get("PropertyType") or ""),
            status=ListingStatus.from_raw(raw_status),
            sqft=_first(raw, "LivingArea", "LivingAreaSquareFeet"),
            lat=_as_float(raw.get("Latitude")),
            lng=_as_float(raw.get("Longitude")),
            image_url=image_url,
            media_urls=media_urls,
            raw_status=str(raw_status).strip() if raw_status else None,
            list_price=list_price,
            close_price=close_price,
            close_date=str(raw["CloseDate"]) if raw.get("CloseDate") else None,
            mls_area=str(raw.get("MLSAreaMajor") or "").strip() or None,
            modified_at=raw.get("ModificationTimestamp"),
        )


class SubjectCandidate(BaseModel):
    """A possible subject property offered back to the user for disambiguation."""
    id: str
    label: str
    address: str
    city: str = ""
    state: str = ""
    zip: str = ""
    status: str = ""
    property_type: str = ""

    @classmethod
    def from_listing(cls, listing: Listing, raw_status: str = "") -> "SubjectCandidate":
        label = " ".join(
            part for part in (
                listing.address,
                f"• {listing.city}" if listing.city else "",
                listing.state,
                listing.zip,
            ) if part
        )
        return cls(
            id=listing.id,
            label=label,
            address=listing.address,
            city=listing.city,
            state=listing.state,
            zip=listing.zip,
            status=raw_status or listing.raw_status or listing.status.value,
            property_type=listing.property_type,
        )
