"""
Configuration and environment handling for HomeScout.
"""
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables
load_dotenv()


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


DEFAULT_CATALOG_BASE = "https://api-trestle.corelogic.com/trestle"


class CatalogConfig(BaseModel):
    """MLS catalog (OData) configuration."""
    base_url: str = Field(
        default_factory=lambda: os.getenv("MLS_API_BASE_URL", DEFAULT_CATALOG_BASE).rstrip("/")
    )
    token_url: str = Field(
        default_factory=lambda: os.getenv(
            "MLS_TOKEN_URL",
            f"{os.getenv('MLS_API_BASE_URL', DEFAULT_CATALOG_BASE).rstrip('/')}/oidc/connect/token",
        )
    )
    client_id: str = Field(default_factory=lambda: os.getenv("MLS_CLIENT_ID", ""))
    client_secret: str = Field(default_factory=lambda: os.getenv("MLS_CLIENT_SECRET", ""))
    scope: str = Field(default_factory=lambda: os.getenv("MLS_SCOPE", "api"))
    timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("MLS_TIMEOUT_SECONDS", "10"))
    )


class ExplainConfig(BaseModel):
    """Explanation / methodology service configuration."""
    base_url: str = Field(
        default_factory=lambda: os.getenv("RAG_API_URL", "http://127.0.0.1:3001").rstrip("/")
    )
    timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("RAG_TIMEOUT_SECONDS", "8"))
    )
    methodology_query: str = Field(
        default="CMA methodology for selecting comps, deriving a price range, and explaining adjustments."
    )
    methodology_top_k: int = Field(default=6)
    max_excerpts: int = Field(default=3)
    excerpt_chars: int = Field(default=220)


class PipelineConfig(BaseModel):
    """Retrieval and pricing configuration."""
    allowed_counties: list[str] = Field(
        default_factory=lambda: ["Erie", "Warren", "Crawford"],
        description="MLS coverage; every query is restricted to these counties",
    )
    search_page_cap: int = Field(default=25, description="Max listings returned by a search")
    nearby_page_cap: int = Field(default=20)
    subject_lookup_top: int = Field(default=3)
    subject_candidates_top: int = Field(default=10)
    comps_page_size: int = Field(default=25)
    min_comps_for_pricing: int = Field(default=3, description="Minimum comps for a price range")
    sale_price_floor: int = Field(default=10000, description="Lease prices are monthly and sit below this")
    lease_price_threshold: int = Field(default=10000)
    max_relaxation_notes: int = Field(default=3)
    max_workers: int = Field(default=2, description="Concurrent upstream fetches per request")


class LoggingConfig(BaseModel):
    """Logging configuration. Verbose flags stay off unless set: payloads carry addresses."""
    level: str = Field(default_factory=lambda: os.getenv("HOMESCOUT_LOG_LEVEL", "INFO").upper())
    log_requests: bool = Field(default_factory=lambda: _env_flag("HOMESCOUT_LOG_REQUESTS"))
    debug_pricing: bool = Field(default_factory=lambda: _env_flag("HOMESCOUT_DEBUG_PRICING"))


class Config(BaseModel):
    """Main configuration."""
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    explain: ExplainConfig = Field(default_factory=ExplainConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# Singleton config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the singleton config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Drop the cached config so the next get_config() re-reads the environment."""
    global _config
    _config = None
