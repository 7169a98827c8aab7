"""Upstream clients: MLS catalog and explanation service."""

from .catalog import CatalogClient, PROPERTY_SELECT
from .explain import ExplainClient

__all__ = [
    "CatalogClient",
    "ExplainClient",
    "PROPERTY_SELECT",
]
