"""
Pricing models - comp statistics, price bands, and deal verdicts.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from .listing import Listing


class PricingMethod(str, Enum):
    PRICE_PER_AREA = "price-per-area"
    RAW_CLOSE_PRICE = "raw-close-price"


class DealVerdict(str, Enum):
    UNDERVALUED = "Undervalued"
    OVERPRICED = "Overpriced"
    FAIR = "Fair"


class CompStats(BaseModel):
    """Close-price percentiles for a comp set. Percentiles are None below the minimum sample."""
    p25: Optional[float] = None
    p50: Optional[float] = None
    p75: Optional[float] = None
    n: int = Field(default=0, description="Number of usable comps")

    @property
    def is_sufficient(self) -> bool:
        return self.p25 is not None and self.p50 is not None and self.p75 is not None


class PriceRange(BaseModel):
    """Low / mid / high estimate derived from comps."""
    low: int
    mid: int
    high: int
    method: PricingMethod

    @model_validator(mode="after")
    def check_order(self) -> "PriceRange":
        if not (self.low <= self.mid <= self.high):
            raise ValueError("price range must satisfy low <= mid <= high")
        return self


class CompSearchResult(BaseModel):
    """Comps found by the widening ladder and the notes describing how far it widened."""
    comps: list[Listing] = Field(default_factory=list)
    window_days: int
    expanded: bool = Field(default=False, description="Window widened from 6 to 12 months")
    notes: list[str] = Field(default_factory=list)
    steps_tried: list[str] = Field(default_factory=list)

    @property
    def usable_count(self) -> int:
        return sum(1 for c in self.comps if c.usable_close_price is not None)
