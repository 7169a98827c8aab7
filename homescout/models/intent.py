"""
Intent models - structured readings of free-text queries and addresses.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ListingStatus(str, Enum):
    """The four listing statuses a search can target."""
    ACTIVE = "Active"
    PENDING = "Pending"
    CLOSED = "Closed"
    EXPIRED = "Expired"

    @classmethod
    def from_raw(cls, raw: Optional[str]) -> "ListingStatus":
        """Map a catalog status string (StandardStatus, MlsStatus, ...) onto the enum."""
        s = str(raw or "").lower()
        if "pending" in s or "under contract" in s or "undercontract" in s:
            return cls.PENDING
        if "closed" in s or "sold" in s:
            return cls.CLOSED
        if "expired" in s:
            return cls.EXPIRED
        return cls.ACTIVE


class Role(str, Enum):
    """Who is searching; drives the soft property-type preference."""
    BUYER = "buyer"
    SELLER = "seller"
    INVESTOR = "investor"
    REALTOR = "realtor"


class SearchIntent(BaseModel):
    """
    Structured reading of a free-text search query.
    Immutable: the interpreter builds it once per request.
    """
    model_config = ConfigDict(frozen=True)

    price_min: Optional[int] = None
    price_max: Optional[int] = None
    beds_min: Optional[int] = None
    zip: Optional[str] = Field(default=None, description="5-digit zip code")
    location: Optional[str] = Field(default=None, description="Free location term, lower-cased")
    mls_area: Optional[str] = Field(default=None, description="Canonical label, e.g. 'Erie Northeast'")
    mls_area_num: Optional[int] = None
    sold_within_days: Optional[int] = None
    status: ListingStatus = ListingStatus.ACTIVE
    status_explicit: bool = False

    want_lease: bool = False
    want_income: bool = False
    want_residential: bool = False
    want_commercial: bool = False

    @property
    def has_explicit_property_type(self) -> bool:
        return self.want_lease or self.want_income or self.want_residential or self.want_commercial


class AddressParts(BaseModel):
    """Normalized tokens pulled out of a free-form street address."""
    model_config = ConfigDict(frozen=True)

    raw: str
    street_raw: str = ""
    street_number: Optional[str] = None
    street_name_token: Optional[str] = None
    street_tokens: tuple[str, ...] = ()
    city_token: Optional[str] = None
    zip: Optional[str] = None
    street_query: str = Field(default="", description="Compact substring-match query")
