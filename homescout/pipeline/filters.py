"""
Filter builder - compose escaped OData $filter expressions for the MLS catalog.

Predicates are plain strings. A FilterSet keeps them under names so the
relaxation ladders can drop or swap one constraint without rebuilding the rest.
"""
from datetime import date, timedelta
from typing import Iterable, Optional, Union

from ..models.intent import AddressParts, ListingStatus, Role, SearchIntent
from .address import normalize_loose


# Catalog field names
STATUS = "StandardStatus"
COUNTY = "CountyOrParish"
CITY = "City"
ADDRESS = "UnparsedAddress"
POSTAL_CODE = "PostalCode"
LIST_PRICE = "ListPrice"
CLOSE_PRICE = "ClosePrice"
CLOSE_DATE = "CloseDate"
MODIFIED = "ModificationTimestamp"
BEDS = "BedroomsTotal"
BATHS = "BathroomsTotalInteger"
PROPERTY_TYPE = "PropertyType"
MLS_AREA = "MLSAreaMajor"
LISTING_KEY = "ListingKey"
STREET_NUMBER = "StreetNumber"

# PropertyType enum values in the feed
RESIDENTIAL = "Residential"
RESIDENTIAL_INCOME = "Residential Income"
RESIDENTIAL_LEASE = "Residential Lease"
COMMERCIAL_SALE = "Commercial Sale"
COMMERCIAL_LEASE = "Commercial Lease"

ROLE_PREFERENCES = {
    Role.BUYER: RESIDENTIAL,
    Role.INVESTOR: RESIDENTIAL_INCOME,
}

# Constraint names used by FilterSet
C_COVERAGE = "coverage"
C_STATUS = "status"
C_WINDOW = "window"
C_ZIP = "zip"
C_CITY = "city"
C_COUNTY = "county"
C_PRICE_MIN = "price_min"
C_PRICE_MAX = "price_max"
C_PRICE_BAND = "price_band"
C_PRICE_FLOOR = "price_floor"
C_BEDS = "beds"
C_BEDS_BATHS = "beds_baths"
C_LOCATION = "location"
C_PROPERTY_TYPE = "property_type"
C_ROLE_PREFERENCE = "role_preference"
C_MLS_AREA = "mls_area"
C_EXCLUDE = "exclude"


def odata_escape(value: object) -> str:
    """Escape a string literal by doubling embedded single quotes."""
    if value is None:
        return ""
    return str(value).replace("'", "''")


def literal(value: Union[str, int, float]) -> str:
    if isinstance(value, bool):
        raise TypeError("boolean literals are not used in catalog filters")
    if isinstance(value, (int, float)):
        return str(int(value)) if float(value).is_integer() else str(value)
    return f"'{odata_escape(value)}'"


def eq(field: str, value: Union[str, int, float]) -> str:
    return f"{field} eq {literal(value)}"


def ne(field: str, value: Union[str, int, float]) -> str:
    return f"{field} ne {literal(value)}"


def ge(field: str, value: Union[str, int, float]) -> str:
    return f"{field} ge {literal(value)}"


def le(field: str, value: Union[str, int, float]) -> str:
    return f"{field} le {literal(value)}"


def lt(field: str, value: Union[str, int, float]) -> str:
    return f"{field} lt {literal(value)}"


def contains_ci(field: str, value: str) -> str:
    """Case-insensitive substring match."""
    return f"contains(tolower({field}), '{odata_escape(str(value).lower())}')"


def startswith(field: str, value: str) -> str:
    return f"startswith({field}, '{odata_escape(value)}')"


def date_ge(field: str, day: date) -> str:
    """Date literals are unquoted in OData."""
    return f"{field} ge {day.isoformat()}"


def timestamp_ge(field: str, day: date) -> str:
    return f"{field} ge {day.isoformat()}T00:00:00Z"


def any_of(predicates: Iterable[str]) -> str:
    items = [p for p in predicates if p]
    if len(items) == 1:
        return items[0]
    return f"({' or '.join(items)})"


def all_of(predicates: Iterable[str]) -> str:
    return " and ".join(p for p in predicates if p)


def group(predicates: Iterable[str]) -> str:
    """AND a few predicates together inside parentheses, for use inside an OR."""
    items = [p for p in predicates if p]
    if len(items) == 1:
        return items[0]
    return f"({' and '.join(items)})"


def next_prefix(prefix: str) -> str:
    """Smallest string greater than every string starting with prefix."""
    return prefix[:-1] + chr(ord(prefix[-1]) + 1)


def area_number_clause(number: int, field: str = MLS_AREA) -> str:
    """
    Match MLS area values like "5 - Erie Northeast" by their number.

    A plain contains('5') would also hit "15 - ...", so the number is matched
    as a prefix: startswith, or the half-open range [prefix, next_prefix).
    """
    prefix = f"{int(number)} - "
    return any_of([
        startswith(field, prefix),
        group([ge(field, prefix), lt(field, next_prefix(prefix))]),
    ])


def coverage_clause(counties: Iterable[str]) -> str:
    """The fixed county allowlist, always OR-grouped."""
    return f"({' or '.join(eq(COUNTY, c) for c in counties)})"


def price_field(status: ListingStatus) -> str:
    """Closed searches compare the close price; every other status the list price."""
    return CLOSE_PRICE if status == ListingStatus.CLOSED else LIST_PRICE


def location_clause(location: str) -> str:
    return any_of([
        contains_ci(CITY, location),
        contains_ci(COUNTY, location),
        contains_ci(ADDRESS, location),
    ])


def property_type_clause(types: list[str]) -> Optional[str]:
    if not types:
        return None
    return any_of(eq(PROPERTY_TYPE, t) for t in types)


def explicit_property_types(intent: SearchIntent, include_income: bool = True) -> list[str]:
    """
    Property types the user asked for in so many words.
    Lease intent wins over income intent: a lease search targets lease types only.
    """
    if intent.want_lease:
        return [COMMERCIAL_LEASE] if intent.want_commercial else [RESIDENTIAL_LEASE]

    types = []
    if intent.want_residential:
        types.append(RESIDENTIAL)
    if intent.want_income and include_income:
        types.append(RESIDENTIAL_INCOME)
    if intent.want_commercial:
        types.append(COMMERCIAL_SALE)
    return types


def role_preference(role: Optional[Role], intent: SearchIntent) -> Optional[str]:
    """Soft property-type preference for the role; explicit intent overrides it."""
    if role is None or intent.has_explicit_property_type:
        return None
    return ROLE_PREFERENCES.get(role)


class FilterSet:
    """
    Ordered, named predicates.
    Every modifier returns a new FilterSet so attempts never share mutable state.
    """

    def __init__(self, clauses: Optional[list[tuple[str, str]]] = None):
        self._clauses: tuple[tuple[str, str], ...] = tuple(clauses or ())

    def __repr__(self) -> str:
        return f"FilterSet({list(self.names)})"

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self._clauses)

    def has(self, name: str) -> bool:
        return name in self.names

    def get(self, name: str) -> Optional[str]:
        return next((p for n, p in self._clauses if n == name), None)

    def add(self, name: str, predicate: Optional[str]) -> "FilterSet":
        """Append a predicate; None or empty predicates are skipped."""
        if not predicate:
            return self
        return FilterSet([(n, p) for n, p in self._clauses if n != name] + [(name, predicate)])

    def without(self, *names: str) -> "FilterSet":
        return FilterSet([(n, p) for n, p in self._clauses if n not in names])

    def replace(self, name: str, predicate: Optional[str]) -> "FilterSet":
        """Swap a predicate in place, keeping its position; None removes it."""
        if not predicate:
            return self.without(name)
        if not self.has(name):
            return self.add(name, predicate)
        return FilterSet([(n, predicate if n == name else p) for n, p in self._clauses])

    def compose(self) -> str:
        return all_of(p for _, p in self._clauses)


def build_search_filters(
    intent: SearchIntent,
    role: Optional[Role],
    counties: list[str],
    sale_price_floor: int,
    today: Optional[date] = None,
) -> FilterSet:
    """
    Full filter for a search: coverage, explicit constraints, soft role preference.

    Args:
        intent: Parsed search intent
        role: Who is searching (drives the soft preference)
        counties: Coverage allowlist
        sale_price_floor: Minimum price for sale searches (lease prices are monthly)
        today: Reference date for time windows

    Returns:
        FilterSet with one named predicate per constraint
    """
    today = today or date.today()
    price = price_field(intent.status)

    filters = FilterSet()
    filters = filters.add(C_COVERAGE, coverage_clause(counties))
    filters = filters.add(C_STATUS, eq(STATUS, intent.status.value))

    if intent.sold_within_days:
        since = today - timedelta(days=intent.sold_within_days)
        if intent.status == ListingStatus.CLOSED:
            filters = filters.add(C_WINDOW, date_ge(CLOSE_DATE, since))
        else:
            filters = filters.add(C_WINDOW, timestamp_ge(MODIFIED, since))

    if intent.zip:
        filters = filters.add(C_ZIP, eq(POSTAL_CODE, intent.zip))
    if intent.price_min:
        filters = filters.add(C_PRICE_MIN, ge(price, intent.price_min))
    if intent.price_max:
        filters = filters.add(C_PRICE_MAX, le(price, intent.price_max))
    if intent.beds_min:
        filters = filters.add(C_BEDS, ge(BEDS, intent.beds_min))
    if intent.location:
        filters = filters.add(C_LOCATION, location_clause(intent.location))

    if not intent.want_lease:
        filters = filters.add(C_PRICE_FLOOR, ge(price, sale_price_floor))

    filters = filters.add(C_PROPERTY_TYPE, property_type_clause(explicit_property_types(intent)))

    preference = role_preference(role, intent)
    if preference:
        filters = filters.add(C_ROLE_PREFERENCE, eq(PROPERTY_TYPE, preference))

    area_parts = []
    if intent.mls_area:
        area_parts.append(contains_ci(MLS_AREA, intent.mls_area))
    if intent.mls_area_num is not None:
        area_parts.append(area_number_clause(intent.mls_area_num))
    if area_parts:
        filters = filters.add(C_MLS_AREA, group(area_parts))

    return filters


def subject_match_filter(parts: AddressParts, counties: list[str]) -> str:
    """
    OR together address matches in decreasing specificity:
    number + name + city/zip, number + name, compact street substring.
    The whole normalized string is used only when nothing else is available.
    """
    clauses = []
    if parts.street_number and parts.street_name_token:
        number_and_name = [
            eq(STREET_NUMBER, parts.street_number),
            contains_ci(ADDRESS, f"{parts.street_number} {parts.street_name_token}"),
        ]
        narrowing = []
        if parts.city_token:
            narrowing.append(contains_ci(CITY, parts.city_token))
        if parts.zip:
            narrowing.append(eq(POSTAL_CODE, parts.zip))
        if narrowing:
            clauses.append(group(number_and_name + narrowing))
        clauses.append(group(number_and_name))

    if parts.street_query:
        clauses.append(contains_ci(ADDRESS, parts.street_query))

    if not clauses:
        clauses.append(contains_ci(ADDRESS, normalize_loose(parts.raw)))

    return all_of([
        coverage_clause(counties),
        ne(STATUS, ListingStatus.EXPIRED.value),
        f"({' or '.join(clauses)})",
    ])


def subject_candidates_filter(parts: AddressParts, counties: list[str]) -> str:
    """Looser lookup used to offer the user a list of possible subjects."""
    clauses = []
    if parts.street_query:
        clauses.append(contains_ci(ADDRESS, parts.street_query))
    if parts.street_number and parts.street_name_token:
        clauses.append(group([
            eq(STREET_NUMBER, parts.street_number),
            contains_ci(ADDRESS, f"{parts.street_number} {parts.street_name_token}"),
        ]))
    if not clauses:
        clauses.append(contains_ci(ADDRESS, normalize_loose(parts.raw)))

    predicates = [
        coverage_clause(counties),
        ne(STATUS, ListingStatus.EXPIRED.value),
        f"({' or '.join(clauses)})",
    ]
    if parts.zip:
        predicates.append(eq(POSTAL_CODE, parts.zip))
    if parts.city_token:
        predicates.append(contains_ci(CITY, parts.city_token))
    return all_of(predicates)


def by_id_filter(listing_key: str) -> str:
    return eq(LISTING_KEY, listing_key.strip())


def closed_comps_filters(
    counties: list[str],
    since: date,
    county: Optional[str] = None,
    county_exact: bool = True,
    city: Optional[str] = None,
    zip_code: Optional[str] = None,
    beds: Optional[int] = None,
    property_type: Optional[str] = None,
    price_band: Optional[tuple[int, int]] = None,
    price_floor: Optional[int] = None,
) -> FilterSet:
    """
    Closed sales since a date, scoped by geography and subject similarity.
    Geography is county plus zip when known, else county plus city.
    """
    filters = FilterSet()
    filters = filters.add(C_COVERAGE, coverage_clause(counties))
    filters = filters.add(C_STATUS, eq(STATUS, ListingStatus.CLOSED.value))
    filters = filters.add(C_WINDOW, date_ge(CLOSE_DATE, since))
    if price_floor:
        filters = filters.add(C_PRICE_FLOOR, ge(CLOSE_PRICE, price_floor))
    if property_type:
        filters = filters.add(C_PROPERTY_TYPE, eq(PROPERTY_TYPE, property_type))
    if county:
        filters = filters.add(
            C_COUNTY, eq(COUNTY, county) if county_exact else contains_ci(COUNTY, county)
        )
    if zip_code:
        filters = filters.add(C_ZIP, eq(POSTAL_CODE, zip_code))
    if city:
        filters = filters.add(C_CITY, contains_ci(CITY, city))
    if beds:
        filters = filters.add(C_BEDS, group([ge(BEDS, max(0, beds - 1)), le(BEDS, beds + 1)]))
    if price_band:
        filters = filters.add(
            C_PRICE_BAND, group([ge(CLOSE_PRICE, price_band[0]), le(CLOSE_PRICE, price_band[1])])
        )
    return filters


def nearby_filters(
    counties: list[str],
    mls_area: Optional[str] = None,
    county: Optional[str] = None,
    city: Optional[str] = None,
    exclude_id: Optional[str] = None,
    zip_code: Optional[str] = None,
    property_type: Optional[str] = None,
    price_band: Optional[tuple[int, int]] = None,
    beds: Optional[int] = None,
    baths: Optional[int] = None,
) -> FilterSet:
    """Live (active or pending) listings around a subject."""
    filters = FilterSet()
    filters = filters.add(C_COVERAGE, coverage_clause(counties))
    filters = filters.add(C_STATUS, any_of([
        eq(STATUS, ListingStatus.ACTIVE.value),
        eq(STATUS, ListingStatus.PENDING.value),
        eq(STATUS, "Active Under Contract"),
    ]))
    if mls_area:
        filters = filters.add(C_MLS_AREA, eq(MLS_AREA, mls_area))
    else:
        if county:
            filters = filters.add(C_COUNTY, contains_ci(COUNTY, normalize_loose(county)))
        if city:
            filters = filters.add(C_CITY, contains_ci(CITY, normalize_loose(city)))
    if exclude_id:
        filters = filters.add(C_EXCLUDE, ne(LISTING_KEY, exclude_id))
    if zip_code:
        filters = filters.add(C_ZIP, eq(POSTAL_CODE, zip_code))
    if property_type:
        filters = filters.add(C_PROPERTY_TYPE, eq(PROPERTY_TYPE, property_type))
    if price_band:
        filters = filters.add(
            C_PRICE_BAND, group([ge(LIST_PRICE, price_band[0]), le(LIST_PRICE, price_band[1])])
        )

    counts = []
    if beds:
        counts += [ge(BEDS, max(0, beds - 1)), le(BEDS, beds + 1)]
    if baths:
        counts += [ge(BATHS, max(0, baths - 1)), le(BATHS, baths + 1)]
    if counts:
        filters = filters.add(C_BEDS_BATHS, group(counts))
    return filters
