"""
Response models - what the four endpoints return.
"""
from typing import Any, Optional

from pydantic import BaseModel, Field

from .intent import Role, SearchIntent
from .listing import Listing, SubjectCandidate
from .pricing import CompStats, DealVerdict, PriceRange


class SearchResponse(BaseModel):
    """Listings for a free-text search plus the reasoning trail."""
    query: str
    role: Optional[Role] = None
    intent: SearchIntent
    filter: str = Field(description="Filter of the accepted attempt")
    attempt: str = Field(description="Label of the accepted attempt")
    attempts_tried: list[str] = Field(default_factory=list)
    listings: list[Listing] = Field(default_factory=list)
    answer: str = ""
    reasoning: list[str] = Field(default_factory=list)
    retrieval_notes: list[str] = Field(default_factory=list)


class PricingResponse(BaseModel):
    """Comps-based price estimate for an address."""
    answer: str
    reasoning: list[str] = Field(default_factory=list)
    subject: Optional[Listing] = None
    used_market_fallback: bool = False
    price_range: Optional[PriceRange] = None
    comp_stats: CompStats
    deal_quality: Optional[DealVerdict] = None
    listings: list[Listing] = Field(default_factory=list, description="The comps used")
    debug: Optional[dict[str, Any]] = None


class SubjectsResponse(BaseModel):
    candidates: list[SubjectCandidate] = Field(default_factory=list)
    debug: Optional[dict[str, Any]] = None


class NearbyResponse(BaseModel):
    """Live listings around a subject."""
    subject: Optional[Listing] = None
    listings: list[Listing] = Field(default_factory=list)
    attempt: str = ""
    notes: list[str] = Field(default_factory=list)
