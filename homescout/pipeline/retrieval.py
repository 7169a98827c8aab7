"""
Retrieval orchestrator - run an ordered relaxation ladder against the catalog.

Attempts are evaluated one after another because each one is only needed when
everything before it came back empty. The first non-empty attempt wins; if all
are empty the last one is reported. Every relaxation carries a note that ends
up in the response's reasoning trail.
"""
import logging
from typing import Callable, Optional

from ..models.intent import Role, SearchIntent
from ..models.listing import Listing
from ..models.retrieval import RetrievalAttempt, RetrievalOutcome
from .filters import (
    C_BEDS_BATHS,
    C_MLS_AREA,
    C_PRICE_BAND,
    C_PROPERTY_TYPE,
    C_ROLE_PREFERENCE,
    C_ZIP,
    FilterSet,
    explicit_property_types,
    property_type_clause,
    role_preference,
)


logger = logging.getLogger(__name__)


MLS_AREA_NOTE = "Relaxed search: removed MLS area constraint to find nearby matches."
INCOME_NOTE = (
    "Relaxed search: no income/multi-family listings matched, "
    "so other property types are shown instead."
)

NEARBY_STEPS = [
    (C_ZIP, "zip", "Relaxed nearby search: dropped the ZIP code."),
    (C_PROPERTY_TYPE, "type", "Relaxed nearby search: dropped the property type."),
    (C_PRICE_BAND, "band", "Relaxed nearby search: dropped the price band."),
    (C_BEDS_BATHS, "beds_baths", "Relaxed nearby search: dropped the bed/bath range."),
]


def role_preference_note(role: Optional[Role], preference: Optional[str]) -> str:
    who = role.value if role else "role"
    what = f" ({preference})" if preference else ""
    return f"Relaxed search: removed the {who} property-type preference{what} to find more matches."


def _attempt(
    label: str,
    filters: FilterSet,
    notes: list[str],
) -> RetrievalAttempt:
    preferred = filters.has(C_ROLE_PREFERENCE)
    return RetrievalAttempt(
        label=label,
        filter=filters.compose(),
        notes=tuple(notes),
        role_preference_applied=preferred,
        top_up_filter=filters.without(C_ROLE_PREFERENCE).compose() if preferred else None,
    )


def build_search_attempts(
    base: FilterSet,
    intent: SearchIntent,
    role: Optional[Role] = None,
) -> list[RetrievalAttempt]:
    """
    Derive the search ladder from the full filter.

    Order: primary; without the soft role preference; without the MLS area;
    without both; and, when the user explicitly asked for income property,
    a last resort without the income type.
    """
    has_preference = base.has(C_ROLE_PREFERENCE)
    has_area = base.has(C_MLS_AREA)
    preference_note = role_preference_note(role, role_preference(role, intent))

    attempts = [_attempt("primary", base, [])]
    if has_preference:
        attempts.append(
            _attempt("no_role_preference", base.without(C_ROLE_PREFERENCE), [preference_note])
        )
    if has_area:
        attempts.append(_attempt("no_mls_area", base.without(C_MLS_AREA), [MLS_AREA_NOTE]))
        if has_preference:
            attempts.append(_attempt(
                "no_role_preference_no_mls_area",
                base.without(C_ROLE_PREFERENCE, C_MLS_AREA),
                [preference_note, MLS_AREA_NOTE],
            ))

    if intent.want_income and not intent.want_lease:
        relaxed = base.without(C_ROLE_PREFERENCE, C_MLS_AREA)
        relaxed = relaxed.replace(
            C_PROPERTY_TYPE,
            property_type_clause(explicit_property_types(intent, include_income=False)),
        )
        notes = list(attempts[-1].notes) + [INCOME_NOTE]
        attempts.append(_attempt("no_income_type", relaxed, notes))

    return attempts


def build_nearby_attempts(base: FilterSet) -> list[RetrievalAttempt]:
    """
    Nearby ladder: drop zip, then property type, then price band, then bed/bath range.
    Steps whose constraint is absent are skipped so no attempt repeats a filter.
    """
    attempts = [_attempt("primary", base, [])]
    current = base
    notes: list[str] = []
    dropped: list[str] = []
    for name, short, note in NEARBY_STEPS:
        if not current.has(name):
            continue
        current = current.without(name)
        notes.append(note)
        dropped.append(short)
        attempts.append(_attempt("no_" + "_".join(dropped), current, notes))
    return attempts


class RetrievalOrchestrator:
    """
    Evaluates a list of attempts in order with early exit.

    The fetch callable takes a composed filter and returns listings; tests feed
    it canned empty / non-empty pages per attempt.
    """

    def __init__(self, fetch: Callable[[str], list[Listing]], page_cap: int = 25):
        self.fetch = fetch
        self.page_cap = page_cap

    def _dedupe(self, listings: list[Listing]) -> list[Listing]:
        seen: set[str] = set()
        unique = []
        for listing in listings:
            if listing.id in seen:
                continue
            seen.add(listing.id)
            unique.append(listing)
        return unique[: self.page_cap]

    def run(self, attempts: list[RetrievalAttempt]) -> RetrievalOutcome:
        """
        Execute attempts until one returns listings.

        Args:
            attempts: Ordered ladder, primary first

        Returns:
            RetrievalOutcome for the accepted attempt (the last one if all were empty)
        """
        if not attempts:
            raise ValueError("at least one retrieval attempt is required")

        tried: list[str] = []
        accepted = attempts[-1]
        listings: list[Listing] = []

        for attempt in attempts:
            tried.append(attempt.label)
            listings = self._dedupe(self.fetch(attempt.filter))
            logger.info(f"Attempt '{attempt.label}' returned {len(listings)} listings")
            if listings:
                accepted = attempt
                break

        if accepted.notes:
            logger.warning(f"Accepted relaxed attempt '{accepted.label}'")

        notes = list(accepted.notes)
        topped_up = 0
        if accepted.role_preference_applied and accepted.top_up_filter and len(listings) < self.page_cap:
            listings, topped_up = self._top_up(listings, accepted.top_up_filter)
            if topped_up:
                notes.append(
                    f"Added {topped_up} more listing{'s' if topped_up != 1 else ''} "
                    "without the role property-type preference to fill the page."
                )

        return RetrievalOutcome(
            attempt=accepted,
            listings=listings,
            notes=notes,
            attempts_tried=tried,
            topped_up=topped_up,
        )

    def _top_up(self, listings: list[Listing], top_up_filter: str) -> tuple[list[Listing], int]:
        """Merge in new ids from the preference-free filter, keeping order and the cap."""
        merged = list(listings)
        seen = {listing.id for listing in merged}
        added = 0
        for extra in self.fetch(top_up_filter):
            if len(merged) >= self.page_cap:
                break
            if extra.id in seen:
                continue
            seen.add(extra.id)
            merged.append(extra)
            added += 1
        logger.info(f"Top-up fetch added {added} listings")
        return merged, added
