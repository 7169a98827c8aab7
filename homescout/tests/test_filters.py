"""
Tests for filter building.
"""
from datetime import date

import pytest

from homescout.models.intent import ListingStatus, Role
from homescout.pipeline.address import parse_address
from homescout.pipeline.filters import (
    C_BEDS_BATHS,
    C_COUNTY,
    C_MLS_AREA,
    C_PRICE_FLOOR,
    C_ROLE_PREFERENCE,
    C_ZIP,
    FilterSet,
    area_number_clause,
    build_search_filters,
    by_id_filter,
    contains_ci,
    coverage_clause,
    nearby_filters,
    odata_escape,
    price_field,
    subject_candidates_filter,
    subject_match_filter,
)
from homescout.pipeline.interpreter import parse_query


COUNTIES = ["Erie", "Warren", "Crawford"]
COVERAGE = "(CountyOrParish eq 'Erie' or CountyOrParish eq 'Warren' or CountyOrParish eq 'Crawford')"


def search_filters(query: str, role=None) -> FilterSet:
    return build_search_filters(parse_query(query), role, COUNTIES, 10000, today=date(2024, 6, 30))


class TestPredicates:
    """Tests for the predicate helpers."""

    def test_escape_doubles_quotes(self):
        assert odata_escape("O'Brien") == "O''Brien"

    def test_contains_is_lowercased_and_escaped(self):
        assert contains_ci("City", "O'Hara") == "contains(tolower(City), 'o''hara')"

    def test_coverage_clause(self):
        assert coverage_clause(COUNTIES) == COVERAGE

    def test_area_number_is_prefix_matched(self):
        clause = area_number_clause(5)

        assert clause == (
            "(startswith(MLSAreaMajor, '5 - ') or "
            "(MLSAreaMajor ge '5 - ' and MLSAreaMajor lt '5 -!'))"
        )
        assert "contains" not in clause

    @pytest.mark.parametrize("status,field", [
        (ListingStatus.ACTIVE, "ListPrice"),
        (ListingStatus.PENDING, "ListPrice"),
        (ListingStatus.EXPIRED, "ListPrice"),
        (ListingStatus.CLOSED, "ClosePrice"),
    ])
    def test_price_field(self, status, field):
        assert price_field(status) == field

    def test_by_id(self):
        assert by_id_filter(" ABC'1 ") == "ListingKey eq 'ABC''1'"


class TestFilterSet:

    def test_modifiers_return_new_sets(self):
        base = FilterSet().add("a", "A eq 1").add("b", "B eq 2")
        dropped = base.without("a")

        assert base.names == ("a", "b")
        assert dropped.names == ("b",)

    def test_replace_keeps_position(self):
        base = FilterSet().add("a", "A eq 1").add("b", "B eq 2").add("c", "C eq 3")

        assert base.replace("b", "B eq 9").compose() == "A eq 1 and B eq 9 and C eq 3"
        assert base.replace("b", None).names == ("a", "c")

    def test_empty_predicates_are_skipped(self):
        assert FilterSet().add("a", None).add("b", "").names == ()


class TestSearchFilters:
    """Tests for build_search_filters."""

    def test_three_bed_house_for_buyer(self):
        filters = search_filters("3 bed house under 250k in erie", Role.BUYER)
        composed = filters.compose()

        assert COVERAGE in composed
        assert "StandardStatus eq 'Active'" in composed
        assert "BedroomsTotal ge 3" in composed
        assert "ListPrice le 250000" in composed
        assert "contains(tolower(City), 'erie')" in composed
        assert "contains(tolower(CountyOrParish), 'erie')" in composed
        assert "PropertyType eq 'Residential'" in composed
        # "house" is explicit intent, so no soft preference on top
        assert not filters.has(C_ROLE_PREFERENCE)

    def test_buyer_soft_preference(self):
        filters = search_filters("homes under 300k in erie", Role.BUYER)
        assert filters.get(C_ROLE_PREFERENCE) == "PropertyType eq 'Residential'"

    def test_investor_soft_preference(self):
        filters = search_filters("homes in erie", Role.INVESTOR)
        assert filters.get(C_ROLE_PREFERENCE) == "PropertyType eq 'Residential Income'"

    @pytest.mark.parametrize("role", [Role.SELLER, Role.REALTOR, None])
    def test_roles_without_preference(self, role):
        assert not search_filters("homes in erie", role).has(C_ROLE_PREFERENCE)

    def test_lease_wins_over_income(self):
        filters = search_filters("duplex for rent under 2000", Role.INVESTOR)
        composed = filters.compose()

        assert "PropertyType eq 'Residential Lease'" in composed
        assert "Residential Income" not in composed
        assert not filters.has(C_PRICE_FLOOR)
        assert "ListPrice le 2000" in composed

    def test_commercial_lease(self):
        composed = search_filters("office for lease in warren").compose()
        assert "PropertyType eq 'Commercial Lease'" in composed

    def test_sale_floor(self):
        assert search_filters("homes in erie").get(C_PRICE_FLOOR) == "ListPrice ge 10000"

    def test_closed_search_uses_close_fields(self):
        composed = search_filters("sold homes in erie last 90 days under 200k").compose()

        assert "StandardStatus eq 'Closed'" in composed
        assert "CloseDate ge 2024-04-01" in composed
        assert "ClosePrice le 200000" in composed
        assert "ClosePrice ge 10000" in composed

    def test_active_window_uses_modification_timestamp(self):
        composed = search_filters("homes listed in the last 30 days").compose()
        assert "ModificationTimestamp ge 2024-05-31T00:00:00Z" in composed

    def test_mls_area_clause(self):
        filters = search_filters("homes in northeast erie area 5")
        area = filters.get(C_MLS_AREA)

        assert "contains(tolower(MLSAreaMajor), 'erie northeast')" in area
        assert "startswith(MLSAreaMajor, '5 - ')" in area

    def test_zip(self):
        assert search_filters("homes in 16509").get(C_ZIP) == "PostalCode eq '16509'"

    def test_location_is_escaped(self):
        composed = search_filters("homes in o'hara").compose()
        assert "contains(tolower(City), 'o''hara')" in composed


class TestAddressFilters:

    def test_subject_match_specificity(self):
        composed = subject_match_filter(parse_address("123 Main St, Erie, PA 16501"), COUNTIES)

        assert composed.startswith(COVERAGE)
        assert "StandardStatus ne 'Expired'" in composed
        assert (
            "(StreetNumber eq '123' and contains(tolower(UnparsedAddress), '123 main') "
            "and contains(tolower(City), 'erie') and PostalCode eq '16501')"
        ) in composed
        assert "(StreetNumber eq '123' and contains(tolower(UnparsedAddress), '123 main')) or" in composed

    def test_subject_match_whole_string_fallback(self):
        composed = subject_match_filter(parse_address("#"), COUNTIES)
        assert "contains(tolower(UnparsedAddress), '')" in composed

    def test_candidates_narrowed_by_zip_and_city(self):
        composed = subject_candidates_filter(parse_address("123 Main St, Erie 16501"), COUNTIES)

        assert composed.endswith("PostalCode eq '16501' and contains(tolower(City), 'erie')")


class TestNearbyFilters:

    def test_mls_area_replaces_county_and_city(self):
        filters = nearby_filters(
            COUNTIES,
            mls_area="5 - Erie Northeast",
            county="Erie",
            city="Erie",
            exclude_id="S1",
            beds=3,
            baths=2,
        )
        composed = filters.compose()

        assert "MLSAreaMajor eq '5 - Erie Northeast'" in composed
        assert not filters.has(C_COUNTY)
        assert "ListingKey ne 'S1'" in composed
        assert "StandardStatus eq 'Active Under Contract'" in composed
        assert filters.get(C_BEDS_BATHS) == (
            "(BedroomsTotal ge 2 and BedroomsTotal le 4 and "
            "BathroomsTotalInteger ge 1 and BathroomsTotalInteger le 3)"
        )

    def test_county_and_city_without_area(self):
        composed = nearby_filters(COUNTIES, county="Erie County", city="Erie").compose()

        assert "contains(tolower(CountyOrParish), 'erie county')" in composed
        assert "contains(tolower(City), 'erie')" in composed
