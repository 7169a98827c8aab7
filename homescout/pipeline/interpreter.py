"""
Query interpreter: turn a free-text property search into a SearchIntent.

Deterministic and regex-based. Each extractor below is a pure function of the
lower-cased query; parse_query combines them in this precedence:

1. lease vs. rental-property disambiguation
2. status keywords
3. time window
4. price bounds ("between" beats independent under/over)
5. zip
6. beds
7. location clause ("in X" / "near X"), else a coverage county name
8. directional MLS area shorthand ("northeast erie")
9. numeric MLS area ("area 5")
10. property-type signals (income, residential, commercial)
"""
import re
from typing import Optional

from ..config import get_config
from ..models.intent import ListingStatus, SearchIntent


_AMOUNT = r"\$?\s*(\d{1,3}(?:,\d{3})+|\d+(?:\.\d+)?)(k|m)?\b"

BETWEEN_PATTERN = re.compile(rf"\bbetween\s*{_AMOUNT}\s+(?:and|to)\s+{_AMOUNT}")
MAX_PRICE_PATTERN = re.compile(rf"(?:\b(?:under|below|less than|up to|no more than)|<=|<)\s*{_AMOUNT}")
MIN_PRICE_PATTERN = re.compile(rf"(?:\b(?:over|above|more than|greater than|at least)|>=|>)\s*{_AMOUNT}")
MONTHLY_PATTERN = re.compile(r"/\s*mo\b|/\s*month\b|\bper month\b|\ba month\b|\bmonthly\b|\bpcm\b")

EXPLICIT_LEASE_PATTERN = re.compile(r"\b(?:lease|leases|leasing|for rent|to rent|rent)\b")
RENTAL_PATTERN = re.compile(r"\brentals?\b")

STATUS_PATTERNS = [
    (ListingStatus.CLOSED, re.compile(r"\b(?:sold|closed)\b")),
    (ListingStatus.PENDING, re.compile(r"\b(?:pending|under contract)\b")),
    (ListingStatus.EXPIRED, re.compile(r"\bexpired\b")),
    (ListingStatus.ACTIVE, re.compile(r"\b(?:active|available|for sale|on the market)\b")),
]

YEAR_WINDOW_PATTERN = re.compile(r"\b(?:past|last)\s+(?:year|12\s+months|twelve\s+months)\b")
DAYS_WINDOW_PATTERN = re.compile(r"\b(?:past|last)\s+(\d+)\s+days?\b")
WEEKS_WINDOW_PATTERN = re.compile(r"\b(?:past|last)\s+(\d+)\s+weeks?\b")
MONTHS_WINDOW_PATTERN = re.compile(r"\b(?:past|last)\s+(\d+)\s+months?\b")
MONTH_WINDOW_PATTERN = re.compile(r"\b(?:past|last)\s+month\b")

ZIP_PATTERN = re.compile(r"\b(\d{5})\b")
BEDS_PATTERN = re.compile(r"\b(\d+)\s*\+?\s*(?:beds?|br|bedrooms?|bd)\b")

# Words that end a location clause so trailing constraints are not absorbed
LOCATION_STOP_WORDS = (
    "with", "under", "below", "over", "above", "between", "near", "around",
    "within", "last", "past", "sell", "sold", "for", "in", "priced", "less",
    "more", "at", "that",
)
LOCATION_PATTERN = re.compile(
    r"\b(in|near)\s+(?!the\s+(?:last|past)\b)"
    r"([a-z0-9][a-z0-9\s'.-]*?)"
    rf"(?=\s+(?:{'|'.join(LOCATION_STOP_WORDS)})\b|\s+\d+\s*\+?\s*(?:beds?|br|bedrooms?)\b|\s*[,;!?]|\s*$)"
)
UNSTABLE_PLACE_PATTERN = re.compile(r"^(?:the\s+)?(?:university|campus|college)\b")
AREA_ONLY_PATTERN = re.compile(r"^area\s+\d+$")

DIRECTIONS = (
    "northeast", "northwest", "southeast", "southwest",
    "north", "south", "east", "west", "central",
)
_COMPASS_PAIR_PATTERN = re.compile(r"\b(north|south)[\s-](east|west)\b")

MLS_AREA_NUM_PATTERN = re.compile(r"\barea\s+(\d{1,3})\b")

INCOME_PATTERN = re.compile(
    r"\b(?:duplex(?:es)?|triplex(?:es)?|fourplex(?:es)?|quadplex(?:es)?|"
    r"multi[\s-]?family|multi[\s-]?unit|income(?:[\s-]producing)?|"
    r"investment propert(?:y|ies)|rental propert(?:y|ies))\b"
)
RESIDENTIAL_PATTERN = re.compile(r"\b(?:single[\s-]?family|houses?|residential|sfh)\b")
COMMERCIAL_PATTERN = re.compile(
    r"\b(?:commercial|retail|office|offices|industrial|warehouse|storefront)\b"
)


def normalize_amount(raw: Optional[str], suffix: Optional[str]) -> Optional[int]:
    """Turn "250", "k" into 250000 and "1,500", None into 1500."""
    if not raw:
        return None
    try:
        value = float(raw.replace(",", ""))
    except ValueError:
        return None
    if suffix == "k":
        value *= 1000
    elif suffix == "m":
        value *= 1_000_000
    return int(round(value))


def extract_price_bounds(q: str) -> tuple[Optional[int], Optional[int], list[tuple[int, int]]]:
    """
    Find price bounds.

    Returns:
        (price_min, price_max, spans) where spans are the matched text ranges,
        so the zip scan can skip numbers that belong to a price
    """
    between = BETWEEN_PATTERN.search(q)
    if between:
        low = normalize_amount(between.group(1), between.group(2))
        high = normalize_amount(between.group(3), between.group(4))
        return low, high, [between.span()]

    price_min = price_max = None
    spans = []
    max_match = MAX_PRICE_PATTERN.search(q)
    if max_match:
        price_max = normalize_amount(max_match.group(1), max_match.group(2))
        spans.append(max_match.span())
    min_match = MIN_PRICE_PATTERN.search(q)
    if min_match:
        price_min = normalize_amount(min_match.group(1), min_match.group(2))
        spans.append(min_match.span())
    return price_min, price_max, spans


def extract_lease_intent(q: str, price_max: Optional[int]) -> tuple[bool, bool]:
    """
    Decide lease intent and whether "rental" meant an income property.

    Returns:
        (want_lease, rental_means_income)
    """
    if EXPLICIT_LEASE_PATTERN.search(q):
        return True, False
    if RENTAL_PATTERN.search(q):
        threshold = get_config().pipeline.lease_price_threshold
        monthly = MONTHLY_PATTERN.search(q) is not None
        if monthly or (price_max is not None and price_max <= threshold):
            return True, False
        return False, True
    return False, False


def extract_status(q: str) -> tuple[ListingStatus, bool]:
    for status, pattern in STATUS_PATTERNS:
        if pattern.search(q):
            return status, True
    return ListingStatus.ACTIVE, False


def extract_time_window(q: str) -> Optional[int]:
    if YEAR_WINDOW_PATTERN.search(q):
        return 365
    match = DAYS_WINDOW_PATTERN.search(q)
    if match:
        return int(match.group(1))
    match = WEEKS_WINDOW_PATTERN.search(q)
    if match:
        return int(match.group(1)) * 7
    match = MONTHS_WINDOW_PATTERN.search(q)
    if match:
        return int(match.group(1)) * 30
    if MONTH_WINDOW_PATTERN.search(q):
        return 30
    return None


def extract_zip(q: str, price_spans: list[tuple[int, int]]) -> Optional[str]:
    for match in ZIP_PATTERN.finditer(q):
        start, end = match.span()
        if any(start < span_end and end > span_start for span_start, span_end in price_spans):
            continue
        return match.group(1)
    return None


def extract_beds(q: str) -> Optional[int]:
    match = BEDS_PATTERN.search(q)
    return int(match.group(1)) if match else None


def extract_location(q: str) -> tuple[Optional[str], Optional[str]]:
    """
    Find the first usable "in X" / "near X" clause.

    Returns:
        (location, zip) where zip is set instead of location when X is a zip
    """
    for match in LOCATION_PATTERN.finditer(q):
        keyword, term = match.group(1), match.group(2).strip(" .'-")
        if term.startswith("the "):
            term = term[4:].strip()
        if not term:
            continue
        if keyword == "near" and UNSTABLE_PLACE_PATTERN.match(term):
            continue
        if re.fullmatch(r"\d{5}", term):
            return None, term
        return term, None
    return None, None


def extract_coverage_county(q: str) -> Optional[str]:
    for county in get_config().pipeline.allowed_counties:
        if re.search(rf"\b{re.escape(county.lower())}\b", q):
            return county.lower()
    return None


def extract_directional_area(q: str) -> tuple[Optional[str], Optional[str]]:
    """
    Map "northeast erie" / "erie northeast" to ("Erie Northeast", "erie").

    Returns:
        (canonical MLS area label, base term for location)
    """
    q = _COMPASS_PAIR_PATTERN.sub(r"\1\2", q)
    bases = "|".join(re.escape(c.lower()) for c in get_config().pipeline.allowed_counties)
    directions = "|".join(DIRECTIONS)

    match = re.search(rf"\b({directions})\s+({bases})\b", q)
    if match:
        direction, base = match.group(1), match.group(2)
    else:
        # "erie west of the bayfront" is a relative position, not an area
        match = re.search(rf"\b({bases})\s+({directions})\b(?!\s+(?:of|from)\b)", q)
        if not match:
            return None, None
        base, direction = match.group(1), match.group(2)
    return f"{base.title()} {direction.title()}", base


def extract_mls_area_num(q: str) -> Optional[int]:
    match = MLS_AREA_NUM_PATTERN.search(q)
    return int(match.group(1)) if match else None


def parse_query(query: str) -> SearchIntent:
    """
    Parse a free-text search query into a SearchIntent.

    Args:
        query: Raw user text, e.g. "3 bed house under 250k in erie"

    Returns:
        SearchIntent; the same input always yields an equal result
    """
    q = str(query or "").lower().strip()

    price_min, price_max, price_spans = extract_price_bounds(q)
    want_lease, rental_means_income = extract_lease_intent(q, price_max)
    status, status_explicit = extract_status(q)
    sold_within_days = extract_time_window(q)

    zip_code = extract_zip(q, price_spans)
    beds_min = extract_beds(q)

    location, clause_zip = extract_location(q)
    if clause_zip:
        zip_code = clause_zip
    if location is None and clause_zip is None:
        location = extract_coverage_county(q)

    mls_area, area_base = extract_directional_area(q)
    if mls_area:
        location = area_base

    mls_area_num = extract_mls_area_num(q)
    if mls_area_num is not None and location and AREA_ONLY_PATTERN.match(location):
        location = None

    return SearchIntent(
        price_min=price_min,
        price_max=price_max,
        beds_min=beds_min,
        zip=zip_code,
        location=location,
        mls_area=mls_area,
        mls_area_num=mls_area_num,
        sold_within_days=sold_within_days,
        status=status,
        status_explicit=status_explicit,
        want_lease=want_lease,
        want_income=rental_means_income or INCOME_PATTERN.search(q) is not None,
        want_residential=RESIDENTIAL_PATTERN.search(q) is not None,
        want_commercial=COMMERCIAL_PATTERN.search(q) is not None,
    )
