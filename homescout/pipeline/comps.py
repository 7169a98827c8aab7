"""
Comps pricing engine - subject resolution, comp widening, percentile price bands.
"""
import logging
from datetime import date, timedelta
from typing import Any, Optional, Protocol

import numpy as np

from ..client.catalog import PROPERTY_SELECT
from ..config import get_config
from ..models.intent import AddressParts
from ..models.listing import Listing
from ..models.pricing import (
    CompSearchResult,
    CompStats,
    DealVerdict,
    PriceRange,
    PricingMethod,
)
from .filters import (
    C_CITY,
    C_COUNTY,
    C_PRICE_BAND,
    C_WINDOW,
    C_ZIP,
    CITY,
    CLOSE_DATE,
    RESIDENTIAL,
    FilterSet,
    by_id_filter,
    closed_comps_filters,
    contains_ci,
    date_ge,
    subject_match_filter,
)


logger = logging.getLogger(__name__)


SIX_MONTHS_DAYS = 183
TWELVE_MONTHS_DAYS = 365
BAND_LOW = 0.6
BAND_HIGH = 1.4
ACTIVE_STATUS = "Active"

DROPPED_BAND_NOTE = "Relaxed pricing comps: dropped the price band."
DROPPED_ZIP_NOTE = "Relaxed pricing comps: dropped ZIP; using county + city."
COUNTY_WIDE_NOTE = "Relaxed pricing comps: using county-wide comps."


class PropertyQuery(Protocol):
    def query(
        self,
        filter: str,
        select: Optional[str] = None,
        orderby: Optional[str] = None,
        top: int = 25,
        skip: int = 0,
        expand_media: bool = False,
    ) -> list[dict[str, Any]]: ...


def percentile(values: list[float], p: float) -> Optional[float]:
    """
    Linear-interpolated percentile, p in [0, 1].

    idx = (n - 1) * p; an integral idx returns that element, otherwise the
    value is interpolated between the floor and ceiling elements.
    """
    if not values:
        return None
    return float(np.percentile(np.sort(np.asarray(values, dtype=float)), p * 100))


def usable_close_prices(comps: list[Listing]) -> list[float]:
    return sorted(c.usable_close_price for c in comps if c.usable_close_price is not None)


def usable_price_per_area(comps: list[Listing]) -> list[float]:
    """Close price / living area for comps where both are strictly positive."""
    return sorted(
        c.usable_close_price / c.sqft
        for c in comps
        if c.usable_close_price is not None and c.sqft > 0
    )


def compute_comp_stats(comps: list[Listing], min_comps: int = 3) -> CompStats:
    """Close-price quartiles; percentiles stay None below min_comps usable prices."""
    prices = usable_close_prices(comps)
    if len(prices) < min_comps:
        return CompStats(n=len(prices))
    return CompStats(
        p25=percentile(prices, 0.25),
        p50=percentile(prices, 0.5),
        p75=percentile(prices, 0.75),
        n=len(prices),
    )


def _band(values: list[float], scale: float, method: PricingMethod) -> PriceRange:
    return PriceRange(
        low=int(round(percentile(values, 0.25) * scale)),
        mid=int(round(percentile(values, 0.5) * scale)),
        high=int(round(percentile(values, 0.75) * scale)),
        method=method,
    )


def compute_raw_range(comps: list[Listing], min_comps: int = 3) -> Optional[PriceRange]:
    prices = usable_close_prices(comps)
    if len(prices) < min_comps:
        return None
    return _band(prices, 1.0, PricingMethod.RAW_CLOSE_PRICE)


def compute_adjusted_range(
    comps: list[Listing],
    subject_area: Optional[float],
    min_comps: int = 3,
) -> Optional[PriceRange]:
    """Price-per-area quartiles scaled to the subject's living area."""
    if not subject_area or subject_area <= 0:
        return None
    ratios = usable_price_per_area(comps)
    if len(ratios) < min_comps:
        return None
    return _band(ratios, subject_area, PricingMethod.PRICE_PER_AREA)


def compute_price_range(
    comps: list[Listing],
    subject_area: Optional[float] = None,
    min_comps: int = 3,
) -> Optional[PriceRange]:
    """Prefer the area-adjusted band; fall back to raw close prices."""
    adjusted = compute_adjusted_range(comps, subject_area, min_comps)
    if adjusted is not None:
        return adjusted
    return compute_raw_range(comps, min_comps)


def classify_deal(list_price: float, price_range: PriceRange) -> DealVerdict:
    """
    Place a list price against the comp band.

    Anything inside [low, high] reads as Fair; there is no finer split
    around the midpoint.
    """
    if list_price < price_range.low:
        return DealVerdict.UNDERVALUED
    if list_price > price_range.high:
        return DealVerdict.OVERPRICED
    return DealVerdict.FAIR


def deal_verdict_for(subject: Optional[Listing], price_range: Optional[PriceRange]) -> Optional[DealVerdict]:
    """
    Only an actively listed subject with a positive list price gets a verdict.

    The catalog status must read exactly "Active"; Withdrawn, Hold and other
    statuses that normalize to ACTIVE for search do not qualify.
    """
    if subject is None or price_range is None:
        return None
    if subject.raw_status != ACTIVE_STATUS:
        return None
    if not subject.list_price or subject.list_price <= 0:
        return None
    return classify_deal(subject.list_price, price_range)


def price_band(price: Optional[float], low: float = BAND_LOW, high: float = BAND_HIGH) -> Optional[tuple[int, int]]:
    if not price or price <= 0:
        return None
    band_min, band_max = int(round(price * low)), int(round(price * high))
    if band_min >= band_max:
        return None
    return band_min, band_max


class CompsPricingEngine:
    """
    Finds a subject and its closed comparable sales, widening the search
    until enough usable comps turn up.
    """

    def __init__(
        self,
        catalog: PropertyQuery,
        min_comps: Optional[int] = None,
        counties: Optional[list[str]] = None,
        page_size: Optional[int] = None,
        today: Optional[date] = None,
    ):
        pipeline = get_config().pipeline
        self.catalog = catalog
        self.min_comps = min_comps or pipeline.min_comps_for_pricing
        self.counties = counties or pipeline.allowed_counties
        self.page_size = page_size or pipeline.comps_page_size
        self.subject_top = pipeline.subject_lookup_top
        self.sale_price_floor = pipeline.sale_price_floor
        self.today = today or date.today()

    def _since(self, days: int) -> date:
        return self.today - timedelta(days=days)

    def resolve_subject(
        self,
        parts: AddressParts,
        subject_id: Optional[str] = None,
    ) -> tuple[Optional[Listing], str]:
        """
        Find the subject record.

        Args:
            parts: Parsed address
            subject_id: Catalog ListingKey chosen by the user, if any

        Returns:
            (subject or None, the filter that was tried)
        """
        if subject_id and subject_id.strip():
            filter_expr = by_id_filter(subject_id)
            rows = self.catalog.query(filter_expr, select=PROPERTY_SELECT, top=1)
        else:
            filter_expr = subject_match_filter(parts, self.counties)
            rows = self.catalog.query(
                filter_expr,
                select=PROPERTY_SELECT,
                orderby="ModificationTimestamp desc",
                top=self.subject_top,
            )

        matches = [m for m in (Listing.from_catalog(r, prefer_close_price=True) for r in rows) if m]
        matches = [m for m in matches if m.county in self.counties or not m.county]
        if not matches:
            return None, filter_expr

        # Stable sort keeps catalog order among records without a timestamp
        newest = sorted(
            matches,
            key=lambda m: m.modified_at.timestamp() if m.modified_at else float("-inf"),
            reverse=True,
        )
        return newest[0], filter_expr

    def _fetch(self, filters: FilterSet) -> list[Listing]:
        rows = self.catalog.query(
            filters.compose(),
            select=PROPERTY_SELECT,
            orderby=f"{CLOSE_DATE} desc",
            top=self.page_size,
        )
        comps = [c for c in (Listing.from_catalog(r, prefer_close_price=True) for r in rows) if c]
        seen: set[str] = set()
        unique = []
        for comp in comps:
            if comp.id not in seen:
                seen.add(comp.id)
                unique.append(comp)
        return unique

    def _run_ladder(self, steps: list[tuple[str, FilterSet, int, Optional[str]]]) -> CompSearchResult:
        """Run widening steps in order, stopping at the first with enough usable comps."""
        comps: list[Listing] = []
        notes: list[str] = []
        tried: list[str] = []
        window = SIX_MONTHS_DAYS

        for label, filters, window_days, note in steps:
            if note:
                notes.append(note)
            tried.append(label)
            window = window_days
            comps = self._fetch(filters)
            usable = len(usable_close_prices(comps))
            logger.info(f"Comps step '{label}': {len(comps)} comps, {usable} usable")
            if usable >= self.min_comps:
                break
        else:
            logger.warning(f"Comp ladder exhausted with {len(usable_close_prices(comps))} usable comps")

        return CompSearchResult(
            comps=comps,
            window_days=window,
            expanded=window > SIX_MONTHS_DAYS,
            notes=notes,
            steps_tried=tried,
        )

    def find_subject_comps(self, subject: Listing) -> CompSearchResult:
        """
        Comps for a matched subject: 6 months with a price band, 12 months,
        12 months without the band, then county-wide.
        """
        subject_price = subject.list_price if subject.list_price and subject.list_price > 0 else subject.close_price
        base = closed_comps_filters(
            self.counties,
            since=self._since(SIX_MONTHS_DAYS),
            county=subject.county or None,
            county_exact=True,
            city=None if subject.zip else (subject.city or None),
            zip_code=subject.zip or None,
            beds=subject.beds or None,
            property_type=subject.property_type or None,
            price_band=price_band(subject_price),
        )
        twelve = base.replace(C_WINDOW, date_ge(CLOSE_DATE, self._since(TWELVE_MONTHS_DAYS)))

        steps = [
            ("6_months", base, SIX_MONTHS_DAYS, None),
            ("12_months", twelve, TWELVE_MONTHS_DAYS, None),
        ]
        no_band = twelve
        if twelve.has(C_PRICE_BAND):
            no_band = twelve.without(C_PRICE_BAND)
            steps.append(("12_months_no_band", no_band, TWELVE_MONTHS_DAYS, DROPPED_BAND_NOTE))
        if no_band.has(C_COUNTY) and (no_band.has(C_ZIP) or no_band.has(C_CITY)):
            steps.append((
                "12_months_county",
                no_band.without(C_ZIP, C_CITY),
                TWELVE_MONTHS_DAYS,
                COUNTY_WIDE_NOTE,
            ))
        return self._run_ladder(steps)

    def find_market_comps(
        self,
        county: Optional[str] = None,
        city: Optional[str] = None,
        zip_code: Optional[str] = None,
    ) -> CompSearchResult:
        """
        Comps when there is no subject record: residential closed sales keyed
        by county/city/zip. 6 months, 12 months, then (with a county) county +
        city without the zip, then county-wide.
        """
        base = closed_comps_filters(
            self.counties,
            since=self._since(SIX_MONTHS_DAYS),
            county=county or None,
            county_exact=False,
            city=None if zip_code else city,
            zip_code=zip_code or None,
            property_type=RESIDENTIAL,
            price_floor=self.sale_price_floor,
        )
        twelve = base.replace(C_WINDOW, date_ge(CLOSE_DATE, self._since(TWELVE_MONTHS_DAYS)))

        steps = [
            ("6_months", base, SIX_MONTHS_DAYS, None),
            ("12_months", twelve, TWELVE_MONTHS_DAYS, None),
        ]
        if county:
            if zip_code and city:
                county_city = twelve.without(C_ZIP).add(C_CITY, contains_ci(CITY, city))
                steps.append(("12_months_county_city", county_city, TWELVE_MONTHS_DAYS, DROPPED_ZIP_NOTE))
            if zip_code or city:
                steps.append((
                    "12_months_county",
                    twelve.without(C_ZIP, C_CITY),
                    TWELVE_MONTHS_DAYS,
                    COUNTY_WIDE_NOTE,
                ))
        return self._run_ladder(steps)

    def price(
        self,
        comps: list[Listing],
        subject: Optional[Listing] = None,
    ) -> tuple[CompStats, Optional[PriceRange], Optional[DealVerdict]]:
        """Stats, price range, and deal verdict for a comp set."""
        stats = compute_comp_stats(comps, self.min_comps)
        subject_area = subject.sqft if subject is not None and subject.sqft > 0 else None
        price_range = compute_price_range(comps, subject_area, self.min_comps)
        verdict = deal_verdict_for(subject, price_range)
        if price_range is None:
            logger.warning(f"Insufficient comps for a price range ({stats.n} usable)")
        return stats, price_range, verdict
