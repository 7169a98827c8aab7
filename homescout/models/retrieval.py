"""
Retrieval models - relaxation attempts, their outcome, and collaborator results.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .listing import Listing


class RetrievalAttempt(BaseModel):
    """
    One filter variant in the relaxation ladder.
    Frozen: the orchestrator never rewrites an attempt's filter.
    """
    model_config = ConfigDict(frozen=True)

    label: str = Field(description="Stable id, e.g. 'primary' or 'no_mls_area'")
    filter: str = Field(description="Composed OData $filter expression")
    notes: tuple[str, ...] = Field(
        default=(),
        description="Human-readable explanations of what this attempt relaxed",
    )
    role_preference_applied: bool = False
    top_up_filter: Optional[str] = Field(
        default=None,
        description="Same filter without the soft role preference, used to fill a short page",
    )


class RetrievalOutcome(BaseModel):
    """Which attempt was accepted and what it returned."""
    attempt: RetrievalAttempt
    listings: list[Listing] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)
    attempts_tried: list[str] = Field(default_factory=list)
    topped_up: int = Field(default=0, description="Listings added by the top-up fetch")


class FetchStatus(str, Enum):
    """Distinguishes 'nothing there' from 'could not ask'."""
    FOUND = "found"
    EMPTY = "empty"
    FAILED = "failed"


class MethodologyResult(BaseModel):
    """Methodology excerpts from the explanation service."""
    status: FetchStatus
    chunks: list[str] = Field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.status == FetchStatus.FAILED


class ExplainResult(BaseModel):
    """Prose answer from the explanation service for a search."""
    status: FetchStatus
    answer: str = ""
    reasoning: list[str] = Field(default_factory=list)
