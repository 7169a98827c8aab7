"""
Tests for Pydantic models and the error taxonomy.
"""
import pytest
from pydantic import ValidationError

from homescout.errors import InvalidFieldError, UpstreamError
from homescout.models.intent import ListingStatus, SearchIntent
from homescout.models.listing import FALLBACK_IMAGE, Listing, SubjectCandidate, extract_media


class TestListingStatus:

    @pytest.mark.parametrize("raw,status", [
        ("Active", ListingStatus.ACTIVE),
        ("Active Under Contract", ListingStatus.PENDING),
        ("Pending", ListingStatus.PENDING),
        ("Closed", ListingStatus.CLOSED),
        ("Sold", ListingStatus.CLOSED),
        ("Expired", ListingStatus.EXPIRED),
        ("Coming Soon", ListingStatus.ACTIVE),
        (None, ListingStatus.ACTIVE),
    ])
    def test_from_raw(self, raw, status):
        assert ListingStatus.from_raw(raw) == status


class TestSearchIntent:

    def test_is_frozen(self):
        intent = SearchIntent(price_max=250000)
        with pytest.raises(ValidationError):
            intent.price_max = 1


class TestMedia:
    """Tests for media extraction."""

    def test_preferred_photo_is_primary(self):
        raw = {"Media": [
            {"MediaURL": "https://img/2.jpg", "Order": 2},
            {"MediaURL": "https://img/1.jpg", "Order": 1, "PreferredPhotoYN": "Y"},
            {"MediaURL": "ftp://img/3.jpg", "Order": 3},
        ]}

        image_url, media_urls = extract_media(raw)

        assert image_url == "https://img/1.jpg"
        assert media_urls == ["https://img/1.jpg", "https://img/2.jpg"]

    def test_first_item_without_preference(self):
        image_url, _ = extract_media({"Media": [{"MediaURL": "https://img/a.jpg"}, {"MediaURL": "https://img/b.jpg"}]})
        assert image_url == "https://img/a.jpg"

    def test_fallback_image(self):
        assert extract_media({}) == (FALLBACK_IMAGE, [])


class TestListingFromCatalog:
    """Tests for Listing.from_catalog."""

    @pytest.fixture
    def raw(self) -> dict:
        return {
            "ListingKey": "K1",
            "StreetNumber": "12",
            "StreetName": "Peach St",
            "PostalCity": "Erie",
            "CountyOrParish": "Erie",
            "StateOrProvince": "PA",
            "PostalCode": "16501",
            "ListPrice": "189900",
            "ClosePrice": 185000,
            "BedroomsTotal": 3,
            "BathroomsTotalInteger": None,
            "LivingArea": "1450",
            "StandardStatus": "Closed",
            "ModificationTimestamp": "2024-03-01T10:00:00Z",
        }

    def test_normalizes_fields(self, raw):
        listing = Listing.from_catalog(raw)

        assert listing.id == "K1"
        assert listing.address == "12 Peach St"
        assert listing.city == "Erie"
        assert listing.price == 189900
        assert listing.baths == 0
        assert listing.sqft == 1450
        assert listing.status == ListingStatus.CLOSED
        assert listing.image_url == FALLBACK_IMAGE
        assert listing.modified_at.year == 2024

    def test_comps_prefer_close_price(self, raw):
        assert Listing.from_catalog(raw, prefer_close_price=True).price == 185000

    def test_missing_id(self, raw):
        raw.pop("ListingKey")
        assert Listing.from_catalog(raw) is None

    def test_pricing_context_is_not_serialized(self, raw):
        data = Listing.from_catalog(raw).model_dump()

        assert "close_price" not in data
        assert "modified_at" not in data
        assert "raw_status" not in data
        assert data["media_urls"] == []

    def test_usable_close_price(self):
        assert Listing(id="1", close_price=0).usable_close_price is None
        assert Listing(id="1", close_price=-5).usable_close_price is None
        assert Listing(id="1", close_price=100).usable_close_price == 100


class TestSubjectCandidate:

    def test_label(self):
        listing = Listing(id="1", address="123 Main St", city="Erie", state="PA", zip="16501")

        candidate = SubjectCandidate.from_listing(listing, raw_status="Active Under Contract")

        assert candidate.label == "123 Main St • Erie PA 16501"
        assert candidate.status == "Active Under Contract"

    def test_label_without_city(self):
        candidate = SubjectCandidate.from_listing(Listing(id="1", address="123 Main St", zip="16501"))
        assert candidate.label == "123 Main St 16501"


class TestErrors:

    def test_invalid_field_message(self):
        error = InvalidFieldError("query")

        assert error.field == "query"
        assert str(error) == "Invalid request: query must be a string"

    @pytest.mark.parametrize("status,transient", [
        (None, True),
        (502, True),
        (503, True),
        (504, True),
        (400, False),
        (404, False),
        (500, False),
    ])
    def test_transient_statuses(self, status, transient):
        assert UpstreamError("MLS catalog", status=status).is_transient is transient

    def test_explicit_transient_flag(self):
        assert UpstreamError("MLS token", transient=False).is_transient is False

    def test_message_has_no_url(self):
        error = UpstreamError("MLS catalog", status=503)
        assert str(error) == "MLS catalog request failed (HTTP 503)"
