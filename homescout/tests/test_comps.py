"""
Tests for comps statistics and the widening ladder.
"""
from datetime import timedelta

import pytest
from pydantic import ValidationError

from conftest import TODAY, FakeCatalog, closed_row, make_row
from homescout.models.intent import ListingStatus
from homescout.models.listing import Listing
from homescout.models.pricing import DealVerdict, PriceRange, PricingMethod
from homescout.pipeline.address import parse_address
from homescout.pipeline.comps import (
    COUNTY_WIDE_NOTE,
    DROPPED_BAND_NOTE,
    DROPPED_ZIP_NOTE,
    CompsPricingEngine,
    classify_deal,
    compute_adjusted_range,
    compute_comp_stats,
    compute_price_range,
    deal_verdict_for,
    percentile,
    price_band,
)


def comp(listing_id: str, close_price, sqft=0) -> Listing:
    return Listing(id=listing_id, close_price=close_price, sqft=sqft, status=ListingStatus.CLOSED)


def since(days: int) -> str:
    return (TODAY - timedelta(days=days)).isoformat()


class TestPercentile:
    """Tests for linear-interpolated percentiles."""

    def test_interpolates_median(self):
        assert percentile([10, 20, 30, 40], 0.5) == 25

    def test_quartiles(self):
        assert percentile([10, 20, 30, 40], 0.25) == pytest.approx(17.5)
        assert percentile([10, 20, 30, 40], 0.75) == pytest.approx(32.5)

    def test_integral_index(self):
        assert percentile([10, 20, 30], 0.5) == 20

    def test_extremes(self):
        assert percentile([40, 10, 30, 20], 0) == 10
        assert percentile([40, 10, 30, 20], 1) == 40

    def test_empty(self):
        assert percentile([], 0.5) is None


class TestCompStats:

    def test_below_minimum(self):
        stats = compute_comp_stats([comp("1", 200000), comp("2", 250000), comp("3", 0)])

        assert stats.n == 2
        assert stats.p50 is None
        assert stats.is_sufficient is False

    def test_sufficient(self):
        stats = compute_comp_stats([comp("1", 200000), comp("2", 250000), comp("3", 300000)])

        assert stats.n == 3
        assert stats.p25 == 225000
        assert stats.p50 == 250000
        assert stats.p75 == 275000


class TestPriceRange:
    """Tests for adjusted and raw price ranges."""

    def test_adjusted_needs_three_pairs(self):
        comps = [comp("1", 200000, 2000), comp("2", 300000, 2000), comp("3", 250000, 0)]
        assert compute_adjusted_range(comps, 1500) is None

    def test_adjusted_needs_subject_area(self):
        comps = [comp("1", 200000, 2000), comp("2", 300000, 2000), comp("3", 400000, 2000)]
        assert compute_adjusted_range(comps, None) is None
        assert compute_adjusted_range(comps, 0) is None

    def test_adjusted_scales_price_per_area(self):
        comps = [comp("1", 200000, 2000), comp("2", 300000, 2000), comp("3", 400000, 2000)]

        result = compute_adjusted_range(comps, 1500)

        assert result == PriceRange(low=187500, mid=225000, high=262500, method=PricingMethod.PRICE_PER_AREA)

    def test_falls_back_to_raw(self):
        comps = [comp("1", 200000), comp("2", 250000), comp("3", 300000)]

        result = compute_price_range(comps, subject_area=1500)

        assert result == PriceRange(low=225000, mid=250000, high=275000, method=PricingMethod.RAW_CLOSE_PRICE)

    def test_insufficient_is_none(self):
        assert compute_price_range([comp("1", 200000), comp("2", None)]) is None

    def test_order_is_enforced(self):
        with pytest.raises(ValidationError):
            PriceRange(low=300, mid=200, high=100, method=PricingMethod.RAW_CLOSE_PRICE)


class TestDealVerdict:
    """Tests for classify_deal."""

    @pytest.fixture
    def band(self) -> PriceRange:
        return PriceRange(low=200000, mid=250000, high=300000, method=PricingMethod.RAW_CLOSE_PRICE)

    @pytest.mark.parametrize("list_price,verdict", [
        (180000, DealVerdict.UNDERVALUED),
        (320000, DealVerdict.OVERPRICED),
        (250000, DealVerdict.FAIR),
        (200000, DealVerdict.FAIR),
        (300000, DealVerdict.FAIR),
        (205000, DealVerdict.FAIR),
    ])
    def test_verdicts(self, band, list_price, verdict):
        assert classify_deal(list_price, band) == verdict

    def test_only_active_subjects(self, band):
        pending = Listing(id="s", status=ListingStatus.PENDING, raw_status="Pending", list_price=180000)
        assert deal_verdict_for(pending, band) is None

    @pytest.mark.parametrize("raw_status", ["Withdrawn", "Canceled", "Hold", "Coming Soon"])
    def test_other_statuses_get_no_verdict(self, band, raw_status):
        subject = Listing.from_catalog(make_row("S", StandardStatus=raw_status, ListPrice=180000))

        assert subject.status == ListingStatus.ACTIVE
        assert deal_verdict_for(subject, band) is None

    def test_catalog_active_subject(self, band):
        subject = Listing.from_catalog(make_row("S", StandardStatus="Active", ListPrice=180000))
        assert deal_verdict_for(subject, band) == DealVerdict.UNDERVALUED

    def test_needs_list_price(self, band):
        assert deal_verdict_for(Listing(id="s", raw_status="Active", list_price=None), band) is None
        assert deal_verdict_for(Listing(id="s", raw_status="Active", list_price=0), band) is None

    def test_needs_range(self):
        assert deal_verdict_for(Listing(id="s", raw_status="Active", list_price=180000), None) is None

    def test_active_subject(self, band):
        assert deal_verdict_for(Listing(id="s", raw_status="Active", list_price=180000), band) == DealVerdict.UNDERVALUED


class TestPriceBand:

    def test_band(self):
        assert price_band(100000) == (60000, 140000)

    def test_no_price(self):
        assert price_band(None) is None
        assert price_band(0) is None


class TestSubjectResolution:

    def test_prefers_most_recently_modified(self):
        catalog = FakeCatalog(pages=[[
            make_row("OLD", ModificationTimestamp="2023-01-01T00:00:00Z"),
            make_row("NEW", ModificationTimestamp="2024-03-01T12:00:00Z"),
            make_row("NONE"),
        ]])
        engine = CompsPricingEngine(catalog, today=TODAY)

        subject, filter_expr = engine.resolve_subject(parse_address("123 Main St, Erie, PA 16501"))

        assert subject.id == "NEW"
        assert "StreetNumber eq '123'" in filter_expr
        assert catalog.queries[0]["orderby"] == "ModificationTimestamp desc"
        assert catalog.queries[0]["top"] == 3

    def test_by_id(self):
        catalog = FakeCatalog(pages=[[make_row("ABC")]])
        engine = CompsPricingEngine(catalog, today=TODAY)

        subject, filter_expr = engine.resolve_subject(parse_address("anything"), subject_id="ABC")

        assert subject.id == "ABC"
        assert filter_expr == "ListingKey eq 'ABC'"
        assert catalog.queries[0]["top"] == 1

    def test_no_match(self):
        engine = CompsPricingEngine(FakeCatalog(), today=TODAY)
        subject, _ = engine.resolve_subject(parse_address("1 Nowhere Ln, Erie"))
        assert subject is None

    def test_outside_coverage_is_ignored(self):
        catalog = FakeCatalog(pages=[[make_row("X", CountyOrParish="Allegheny")]])
        subject, _ = CompsPricingEngine(catalog, today=TODAY).resolve_subject(parse_address("1 Main St, Erie"))
        assert subject is None


class TestCompsLadder:
    """Tests for the widening ladder."""

    @pytest.fixture
    def subject(self) -> Listing:
        return Listing(
            id="S",
            county="Erie",
            city="Erie",
            zip="16501",
            beds=3,
            property_type="Residential",
            list_price=200000,
        )

    def test_subject_first_step_is_enough(self, subject):
        rows = [closed_row(str(i), 200000 + i * 10000) for i in range(3)]
        catalog = FakeCatalog(route=lambda f: rows)

        result = CompsPricingEngine(catalog, today=TODAY).find_subject_comps(subject)

        assert result.steps_tried == ["6_months"]
        assert result.expanded is False
        assert result.window_days == 183
        first = catalog.filters[0]
        assert f"CloseDate ge {since(183)}" in first
        assert "CountyOrParish eq 'Erie'" in first
        assert "PostalCode eq '16501'" in first
        assert "(BedroomsTotal ge 2 and BedroomsTotal le 4)" in first
        assert "PropertyType eq 'Residential'" in first
        assert "(ClosePrice ge 120000 and ClosePrice le 280000)" in first
        assert catalog.queries[0]["orderby"] == "CloseDate desc"

    def test_subject_drops_band_after_twelve_months(self, subject):
        rows = [closed_row(str(i), 150000 + i * 50000) for i in range(3)]
        catalog = FakeCatalog(route=lambda f: [] if "ClosePrice le" in f else rows)

        result = CompsPricingEngine(catalog, today=TODAY).find_subject_comps(subject)

        assert result.steps_tried == ["6_months", "12_months", "12_months_no_band"]
        assert result.expanded is True
        assert result.notes == [DROPPED_BAND_NOTE]
        assert result.usable_count == 3
        assert f"CloseDate ge {since(365)}" in catalog.filters[1]

    def test_subject_county_wide_last(self, subject):
        rows = [closed_row(str(i), 150000 + i * 50000) for i in range(3)]
        catalog = FakeCatalog(route=lambda f: [] if "PostalCode" in f else rows)

        result = CompsPricingEngine(catalog, today=TODAY).find_subject_comps(subject)

        assert result.steps_tried[-1] == "12_months_county"
        assert result.notes == [DROPPED_BAND_NOTE, COUNTY_WIDE_NOTE]
        assert "PostalCode" not in catalog.filters[-1]

    def test_market_without_county_stops_at_twelve_months(self):
        catalog = FakeCatalog(pages=[
            [closed_row("1", 210000)],
            [closed_row("1", 210000), closed_row("2", 0)],
        ])

        result = CompsPricingEngine(catalog, today=TODAY).find_market_comps(city="erie", zip_code="16501")

        assert result.steps_tried == ["6_months", "12_months"]
        assert result.expanded is True
        assert len(result.comps) == 2
        assert result.usable_count == 1
        first = catalog.filters[0]
        assert "ClosePrice ge 10000" in first
        assert "PropertyType eq 'Residential'" in first
        assert "PostalCode eq '16501'" in first
        assert "contains(tolower(City)" not in first

    def test_market_with_county_widens_geography(self):
        catalog = FakeCatalog()

        result = CompsPricingEngine(catalog, today=TODAY).find_market_comps(
            county="erie", city="erie", zip_code="16501"
        )

        assert result.steps_tried == ["6_months", "12_months", "12_months_county_city", "12_months_county"]
        assert result.notes == [DROPPED_ZIP_NOTE, COUNTY_WIDE_NOTE]
        county_city = catalog.filters[2]
        assert "contains(tolower(CountyOrParish), 'erie')" in county_city
        assert "contains(tolower(City), 'erie')" in county_city
        assert "PostalCode" not in county_city
        county_only = catalog.filters[3]
        assert "City" not in county_only.replace("CountyOrParish", "")

    def test_duplicate_comps_are_dropped(self, subject):
        rows = [closed_row("1", 200000), closed_row("1", 200000), closed_row("2", 210000), closed_row("3", 220000)]
        result = CompsPricingEngine(FakeCatalog(route=lambda f: rows), today=TODAY).find_subject_comps(subject)
        assert [c.id for c in result.comps] == ["1", "2", "3"]

    def test_price_uses_subject_area(self):
        engine = CompsPricingEngine(FakeCatalog(), today=TODAY)
        comps = [comp("1", 200000, 2000), comp("2", 300000, 2000), comp("3", 400000, 2000)]
        subject = Listing(id="S", sqft=1500, raw_status="Active", list_price=300000)

        stats, price_range, verdict = engine.price(comps, subject)

        assert stats.n == 3
        assert price_range.method == PricingMethod.PRICE_PER_AREA
        assert verdict == DealVerdict.OVERPRICED
