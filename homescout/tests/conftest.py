"""
Shared fixtures: in-memory stand-ins for the catalog and explanation service.
"""
from datetime import date
from typing import Any, Callable, Optional

import pytest

from homescout.config import reset_config
from homescout.models.retrieval import ExplainResult, FetchStatus, MethodologyResult


TODAY = date(2024, 6, 30)


def make_row(key: str, **fields: Any) -> dict[str, Any]:
    """A catalog record with sensible defaults; PascalCase overrides win."""
    row = {
        "ListingKey": key,
        "UnparsedAddress": f"{key} Main St",
        "City": "Erie",
        "CountyOrParish": "Erie",
        "StateOrProvince": "PA",
        "PostalCode": "16501",
        "StandardStatus": "Active",
        "PropertyType": "Residential",
        "BedroomsTotal": 3,
        "BathroomsTotalInteger": 2,
        "ListPrice": 200000,
    }
    row.update(fields)
    return row


def closed_row(key: str, close_price: Optional[float], area: Optional[float] = None, **fields: Any) -> dict[str, Any]:
    return make_row(
        key,
        StandardStatus="Closed",
        ClosePrice=close_price,
        LivingArea=area,
        CloseDate="2024-05-01",
        **fields,
    )


class FakeCatalog:
    """
    Records every query and answers from a route function (filter -> rows)
    or, failing that, from a queue of canned pages.
    """

    def __init__(
        self,
        route: Optional[Callable[[str], list[dict[str, Any]]]] = None,
        pages: Optional[list[list[dict[str, Any]]]] = None,
        error: Optional[Exception] = None,
    ):
        self.route = route
        self.pages = list(pages or [])
        self.error = error
        self.queries: list[dict[str, Any]] = []
        self.closed = False

    def close(self) -> None:
        self.closed = True

    @property
    def calls(self) -> int:
        return len(self.queries)

    @property
    def filters(self) -> list[str]:
        return [q["filter"] for q in self.queries]

    def query(
        self,
        filter: str,
        select: Optional[str] = None,
        orderby: Optional[str] = None,
        top: int = 25,
        skip: int = 0,
        expand_media: bool = False,
    ) -> list[dict[str, Any]]:
        self.queries.append({
            "filter": filter,
            "select": select,
            "orderby": orderby,
            "top": top,
            "expand_media": expand_media,
        })
        if self.error is not None:
            raise self.error
        if self.route is not None:
            return list(self.route(filter))
        return self.pages.pop(0) if self.pages else []


class FakeExplainer:
    """Explanation service double with fixed results."""

    def __init__(
        self,
        methodology: Optional[MethodologyResult] = None,
        explained: Optional[ExplainResult] = None,
    ):
        self.methodology = methodology or MethodologyResult(status=FetchStatus.EMPTY)
        self.explained = explained or ExplainResult(status=FetchStatus.FAILED)
        self.explain_calls: list[dict[str, Any]] = []
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def search_methodology(self, query: Optional[str] = None) -> MethodologyResult:
        return self.methodology

    def explain_search(self, **kwargs: Any) -> ExplainResult:
        self.explain_calls.append(kwargs)
        return self.explained


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Every test starts from default config with verbose flags off."""
    for name in ("HOMESCOUT_LOG_REQUESTS", "HOMESCOUT_DEBUG_PRICING", "MLS_CLIENT_ID", "MLS_CLIENT_SECRET"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def today() -> date:
    return TODAY
