"""Pipeline modules for search and pricing."""

from .address import parse_address
from .interpreter import parse_query
from .filters import FilterSet, build_search_filters
from .retrieval import RetrievalOrchestrator, build_nearby_attempts, build_search_attempts
from .comps import CompsPricingEngine
from .orchestrator import find_nearby, find_subjects, run_pricing, run_search

__all__ = [
    "parse_address",
    "parse_query",
    "FilterSet",
    "build_search_filters",
    "RetrievalOrchestrator",
    "build_nearby_attempts",
    "build_search_attempts",
    "CompsPricingEngine",
    "find_nearby",
    "find_subjects",
    "run_pricing",
    "run_search",
]
