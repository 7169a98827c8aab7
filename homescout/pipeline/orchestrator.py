"""
Pipeline orchestrator - the request-level services behind each endpoint.
"""
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Optional

from ..client.catalog import PROPERTY_SELECT, CatalogClient
from ..client.explain import ExplainClient
from ..config import get_config
from ..errors import InvalidFieldError
from ..models.intent import Role
from ..models.listing import Listing, SubjectCandidate
from ..models.retrieval import FetchStatus
from ..models.response import NearbyResponse, PricingResponse, SearchResponse, SubjectsResponse
from .address import normalize_loose, parse_address
from .comps import CompsPricingEngine
from .explanation import (
    pricing_answer,
    pricing_reasoning,
    search_answer,
    search_reasoning,
    subject_summary,
)
from .filters import (
    LIST_PRICE,
    MODIFIED,
    build_search_filters,
    by_id_filter,
    nearby_filters,
    subject_candidates_filter,
)
from .interpreter import parse_query
from .retrieval import (
    RetrievalOrchestrator,
    build_nearby_attempts,
    build_search_attempts,
)


logger = logging.getLogger(__name__)


_ZIP5 = re.compile(r"^\d{5}$")
_COUNTY_WORD = re.compile(r"\bcounty\b")
MIN_SUBJECT_QUERY = 4
NEARBY_BAND = (0.75, 1.25)


def normalize_county(county: Optional[str]) -> Optional[str]:
    """Lower-case a county name and drop the word "county"; blank gives None."""
    cleaned = _COUNTY_WORD.sub(" ", normalize_loose(county or ""))
    cleaned = " ".join(cleaned.split())
    return cleaned or None


def normalize_zip(zip_code: Optional[str]) -> Optional[str]:
    z = str(zip_code or "").strip()
    return z if _ZIP5.match(z) else None


def _listings_fetcher(catalog: CatalogClient, page_cap: int, orderby: str):
    """Fetch callable for the retrieval orchestrator: rows -> allowlisted Listings."""
    counties = get_config().pipeline.allowed_counties

    def fetch(filter_expr: str) -> list[Listing]:
        rows = catalog.query(filter_expr, orderby=orderby, top=page_cap, expand_media=True)
        listings = [l for l in (Listing.from_catalog(r) for r in rows) if l]
        return [l for l in listings if l.county in counties]

    return fetch


def run_search(
    query: str,
    role: Optional[Role] = None,
    catalog: Optional[CatalogClient] = None,
    explainer: Optional[ExplainClient] = None,
    today: Optional[date] = None,
) -> SearchResponse:
    """
    Run a free-text search end to end.

    Pipeline steps:
    1. Interpret the query
    2. Build the full filter and its relaxation ladder
    3. Execute attempts until one returns listings (plus the top-up)
    4. Ask the explanation service to narrate, degrading to a local answer

    Args:
        query: Raw user text
        role: Who is searching
        catalog: MLS catalog client
        explainer: Explanation service client
        today: Reference date for time windows

    Returns:
        SearchResponse

    Raises:
        InvalidFieldError: blank query
        UpstreamError: token or catalog failure
    """
    config = get_config()
    if not str(query or "").strip():
        raise InvalidFieldError("query", "query must be a non-empty string")

    catalog = catalog or CatalogClient()
    explainer = explainer or ExplainClient()

    intent = parse_query(query)
    if config.logging.log_requests:
        logger.info(f"Search query: {query!r} -> {intent.model_dump(exclude_defaults=True)}")

    base = build_search_filters(
        intent,
        role,
        config.pipeline.allowed_counties,
        config.pipeline.sale_price_floor,
        today=today,
    )
    attempts = build_search_attempts(base, intent, role)
    logger.info(f"Search ladder has {len(attempts)} attempts")

    fetch = _listings_fetcher(catalog, config.pipeline.search_page_cap, f"{LIST_PRICE} asc")
    outcome = RetrievalOrchestrator(fetch, page_cap=config.pipeline.search_page_cap).run(attempts)

    explained = explainer.explain_search(
        query=query,
        role=role.value if role else None,
        listings=outcome.listings,
        retrieval_notes=outcome.notes,
        retrieval_attempt=outcome.attempt.label,
    )
    if explained.status == FetchStatus.FAILED:
        logger.warning("Explanation unavailable; answering with local summary")

    return SearchResponse(
        query=query,
        role=role,
        intent=intent,
        filter=outcome.attempt.filter,
        attempt=outcome.attempt.label,
        attempts_tried=outcome.attempts_tried,
        listings=outcome.listings,
        answer=search_answer(outcome, explained),
        reasoning=search_reasoning(outcome, explained),
        retrieval_notes=outcome.notes,
    )


def run_pricing(
    address: str,
    subject_id: Optional[str] = None,
    county: Optional[str] = None,
    zip_code: Optional[str] = None,
    catalog: Optional[CatalogClient] = None,
    explainer: Optional[ExplainClient] = None,
    today: Optional[date] = None,
) -> PricingResponse:
    """
    Estimate a price range for an address from closed comps.

    The methodology excerpts are fetched on a worker thread while the subject
    and comps are resolved; a failed fetch only changes the wording of the
    trail.

    Raises:
        InvalidFieldError: blank address, or no subject and no city/zip to key market comps on
        UpstreamError: token or catalog failure
    """
    config = get_config()
    if not str(address or "").strip():
        raise InvalidFieldError("address", "address must be a non-empty string")

    catalog = catalog or CatalogClient()
    explainer = explainer or ExplainClient()
    engine = CompsPricingEngine(catalog, today=today)
    started = time.monotonic()

    parts = parse_address(address)
    county_name = normalize_county(county)
    zip5 = normalize_zip(zip_code)
    if config.logging.log_requests:
        logger.info(f"Pricing request for {address!r} (county={county_name}, zip={zip5})")

    subject: Optional[Listing] = None
    subject_filter: Optional[str] = None

    with ThreadPoolExecutor(max_workers=config.pipeline.max_workers) as pool:
        methodology_future = pool.submit(explainer.search_methodology)

        if county_name and zip5 and not (subject_id and subject_id.strip()):
            logger.info("County and zip supplied; skipping subject match")
            result = engine.find_market_comps(county=county_name, city=parts.city_token, zip_code=zip5)
            summary = subject_summary(None, county=county_name.title(), zip_code=zip5)
        else:
            subject, subject_filter = engine.resolve_subject(parts, subject_id)
            if subject is not None:
                logger.info(f"Subject matched: {subject.id}")
                result = engine.find_subject_comps(subject)
                summary = subject_summary(subject)
            else:
                market_zip = zip5 or parts.zip
                if not parts.city_token and not market_zip:
                    raise InvalidFieldError(
                        "address",
                        "no MLS record matched; include a city or ZIP code so market comps can be located",
                    )
                logger.warning("No subject matched; using market-level comps")
                result = engine.find_market_comps(
                    county=county_name,
                    city=parts.city_token,
                    zip_code=market_zip,
                )
                summary = subject_summary(None, fallback_area=parts.city_token or market_zip)

        stats, price_range, verdict = engine.price(result.comps, subject)
        methodology = methodology_future.result()

    if methodology.failed:
        logger.warning("Methodology excerpts unavailable")

    reasoning = pricing_reasoning(
        summary,
        result,
        price_range,
        verdict=verdict,
        subject_list_price=subject.list_price if subject is not None else None,
        methodology=methodology,
    )

    debug = None
    if config.logging.debug_pricing:
        debug = {
            "subject_filter": subject_filter,
            "address_parts": parts.model_dump(mode="json"),
            "subject_matched": subject is not None,
            "steps_tried": result.steps_tried,
            "catalog_calls": getattr(catalog, "calls", None),
            "duration_ms": int((time.monotonic() - started) * 1000),
        }
        logger.info(f"Pricing debug: {debug}")

    logger.info(
        f"Pricing done: {len(result.comps)} comps, {stats.n} usable, "
        f"window {result.window_days} days, range {'yes' if price_range else 'no'}"
    )

    return PricingResponse(
        answer=pricing_answer(price_range, len(result.comps)),
        reasoning=reasoning,
        subject=subject,
        used_market_fallback=subject is None,
        price_range=price_range,
        comp_stats=stats,
        deal_quality=verdict,
        listings=result.comps,
        debug=debug,
    )


def find_subjects(query: str, catalog: Optional[CatalogClient] = None) -> SubjectsResponse:
    """Offer possible subject properties for an address fragment (at least 4 chars)."""
    config = get_config()
    if len(str(query or "").strip()) < MIN_SUBJECT_QUERY:
        raise InvalidFieldError("query", f"query must be at least {MIN_SUBJECT_QUERY} characters")

    catalog = catalog or CatalogClient()
    parts = parse_address(query)
    filter_expr = subject_candidates_filter(parts, config.pipeline.allowed_counties)
    rows = catalog.query(
        filter_expr,
        select=PROPERTY_SELECT,
        orderby=f"{MODIFIED} desc",
        top=config.pipeline.subject_candidates_top,
    )

    candidates: list[SubjectCandidate] = []
    seen: set[str] = set()
    for row in rows:
        listing = Listing.from_catalog(row)
        if listing is None or not listing.address or listing.id in seen:
            continue
        seen.add(listing.id)
        candidates.append(SubjectCandidate.from_listing(listing))

    logger.info(f"Subject lookup returned {len(candidates)} candidates")

    debug = None
    if config.logging.debug_pricing:
        debug = {"filter": filter_expr, "address_parts": parts.model_dump(mode="json")}
    return SubjectsResponse(candidates=candidates, debug=debug)


def nearby_price_band(price: Optional[float]) -> Optional[tuple[int, int]]:
    """[max(floor, 0.75x), 1.25x] around the subject's list price."""
    if not price or price <= 0:
        return None
    floor = get_config().pipeline.sale_price_floor
    low = max(floor, int(round(price * NEARBY_BAND[0])))
    high = int(round(price * NEARBY_BAND[1]))
    if low >= high:
        return None
    return low, high


def find_nearby(
    address: str,
    subject_id: Optional[str] = None,
    county: Optional[str] = None,
    zip_code: Optional[str] = None,
    catalog: Optional[CatalogClient] = None,
) -> NearbyResponse:
    """
    Active and pending listings similar to a subject.

    The subject is looked up by id only; without one the search is scoped by
    the county, city and zip that came with the request.
    """
    config = get_config()
    if not str(address or "").strip():
        raise InvalidFieldError("address", "address must be a non-empty string")

    catalog = catalog or CatalogClient()
    parts = parse_address(address)
    key = subject_id.strip() if subject_id and subject_id.strip() else None

    subject: Optional[Listing] = None
    if key:
        rows = catalog.query(by_id_filter(key), select=PROPERTY_SELECT, top=1, expand_media=True)
        subject = next((l for l in (Listing.from_catalog(r) for r in rows) if l), None)
        if subject is None:
            logger.warning("Nearby subject id not found; scoping by request location")

    base = nearby_filters(
        config.pipeline.allowed_counties,
        mls_area=subject.mls_area if subject else None,
        county=(subject.county if subject and subject.county else None) or normalize_county(county),
        city=(subject.city if subject and subject.city else None) or parts.city_token,
        exclude_id=key,
        zip_code=(subject.zip if subject and subject.zip else None) or normalize_zip(zip_code) or parts.zip,
        property_type=subject.property_type if subject and subject.property_type else None,
        price_band=nearby_price_band(subject.list_price) if subject else None,
        beds=subject.beds if subject else None,
        baths=subject.baths if subject else None,
    )
    attempts = build_nearby_attempts(base)

    page_cap = config.pipeline.nearby_page_cap
    fetch = _listings_fetcher(catalog, page_cap, f"{LIST_PRICE} asc")
    outcome = RetrievalOrchestrator(fetch, page_cap=page_cap).run(attempts)

    return NearbyResponse(
        subject=subject,
        listings=outcome.listings,
        attempt=outcome.attempt.label,
        notes=outcome.notes,
    )
