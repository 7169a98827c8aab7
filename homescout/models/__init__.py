"""
Pydantic models for HomeScout.
All data contracts are defined here for strict validation.
"""

from .intent import AddressParts, ListingStatus, Role, SearchIntent
from .listing import Listing, SubjectCandidate
from .retrieval import (
    ExplainResult,
    FetchStatus,
    MethodologyResult,
    RetrievalAttempt,
    RetrievalOutcome,
)
from .pricing import CompSearchResult, CompStats, DealVerdict, PriceRange, PricingMethod
from .response import NearbyResponse, PricingResponse, SearchResponse, SubjectsResponse

__all__ = [
    # Intent
    "AddressParts",
    "ListingStatus",
    "Role",
    "SearchIntent",
    # Listing
    "Listing",
    "SubjectCandidate",
    # Retrieval
    "ExplainResult",
    "FetchStatus",
    "MethodologyResult",
    "RetrievalAttempt",
    "RetrievalOutcome",
    # Pricing
    "CompSearchResult",
    "CompStats",
    "DealVerdict",
    "PriceRange",
    "PricingMethod",
    # Responses
    "NearbyResponse",
    "PricingResponse",
    "SearchResponse",
    "SubjectsResponse",
]
