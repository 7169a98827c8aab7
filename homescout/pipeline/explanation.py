"""
Explanation assembler - build the reasoning trail and answer text for responses.
"""
import re
from typing import Optional

from ..config import get_config
from ..models.listing import Listing
from ..models.pricing import CompSearchResult, DealVerdict, PriceRange
from ..models.retrieval import ExplainResult, FetchStatus, MethodologyResult, RetrievalOutcome


DISCLAIMER = "This is an estimate based on comparable sales, not a formal appraisal."
METHODOLOGY_HEADER = "CMA playbook guidance (methodology excerpts):"
METHODOLOGY_EMPTY = "No CMA playbook guidance found yet (admin needs to ingest the CMA playbook)."
METHODOLOGY_FAILED = "CMA playbook guidance is temporarily unavailable."
EXPLAIN_UNAVAILABLE = "The written explanation is temporarily unavailable; showing matching listings only."

_WHITESPACE = re.compile(r"\s+")


def money(value: float) -> str:
    return f"${int(round(value)):,}"


def excerpt(text: str, limit: int) -> str:
    """Collapse whitespace and cut to limit chars, marking truncation with an ellipsis."""
    clean = _WHITESPACE.sub(" ", str(text or "")).strip()[:limit]
    if not clean:
        return ""
    return f"- {clean}…" if len(clean) >= limit else f"- {clean}"


def subject_summary(
    subject: Optional[Listing],
    fallback_area: Optional[str] = None,
    county: Optional[str] = None,
    zip_code: Optional[str] = None,
) -> str:
    if subject is not None:
        return f"Matched subject property: {subject.address}{f', {subject.city}' if subject.city else ''}"
    if county:
        return f"Using comps in PA near: {county} County{f', {zip_code}' if zip_code else ''}."
    return (
        "No exact MLS record found for this address; "
        f"using market-level comps for {fallback_area or 'the provided area'}."
    )


def window_summary(result: CompSearchResult) -> str:
    count = len(result.comps)
    if result.expanded:
        return (
            f"Pulled {count} closed comps from the last 12 months "
            "(expanded from 6 months due to low comp count)."
        )
    return f"Pulled {count} closed comps from the last 6 months."


def methodology_lines(methodology: Optional[MethodologyResult]) -> list[str]:
    """
    Methodology section of the trail.
    "Nothing ingested" and "service down" read differently to the user.
    """
    cfg = get_config().explain
    if methodology is None or methodology.status == FetchStatus.FAILED:
        return [METHODOLOGY_FAILED]
    lines = [excerpt(c, cfg.excerpt_chars) for c in methodology.chunks[: cfg.max_excerpts]]
    lines = [line for line in lines if line]
    if not lines:
        return [METHODOLOGY_EMPTY]
    return [METHODOLOGY_HEADER] + lines


def pricing_reasoning(
    summary: str,
    result: CompSearchResult,
    price_range: Optional[PriceRange],
    verdict: Optional[DealVerdict] = None,
    subject_list_price: Optional[float] = None,
    methodology: Optional[MethodologyResult] = None,
) -> list[str]:
    """
    Reasoning trail for a pricing response, in order: subject, comp window,
    relaxation notes, price range, deal quality, methodology excerpts.
    """
    max_notes = get_config().pipeline.max_relaxation_notes
    reasoning = [summary, window_summary(result)]
    reasoning.extend(result.notes[:max_notes])

    if price_range is not None:
        reasoning.append(
            "Price range (low/mid/high from comps): "
            f"{money(price_range.low)} / {money(price_range.mid)} / {money(price_range.high)}"
        )
    else:
        reasoning.append(
            f"Only {result.usable_count} comps had a usable close price; "
            "at least 3 are needed for a price range."
        )

    if verdict is not None and subject_list_price:
        reasoning.append(f"Deal quality vs current list price ({money(subject_list_price)}): {verdict.value}")

    reasoning.extend(methodology_lines(methodology))
    return reasoning


def pricing_answer(price_range: Optional[PriceRange], comp_count: int) -> str:
    if price_range is not None:
        return (
            f"Estimated price range: {money(price_range.low)}–{money(price_range.high)} "
            f"(market midpoint ~{money(price_range.mid)}). {DISCLAIMER}"
        )
    return (
        f"Found {comp_count} comps, but couldn't compute a stable range "
        f"(missing/invalid ClosePrice). {DISCLAIMER}"
    )


def local_search_answer(outcome: RetrievalOutcome) -> str:
    count = len(outcome.listings)
    if count == 0:
        return "No listings matched your search, even after relaxing the filters."
    plural = "s" if count != 1 else ""
    return f"Found {count} listing{plural} matching your search."


def search_reasoning(outcome: RetrievalOutcome, explained: ExplainResult) -> list[str]:
    """Relaxation notes first, then whatever the explanation service added."""
    reasoning = list(outcome.notes)
    if explained.status == FetchStatus.FAILED:
        reasoning.append(EXPLAIN_UNAVAILABLE)
        return reasoning
    for line in explained.reasoning:
        if line not in reasoning:
            reasoning.append(line)
    return reasoning


def search_answer(outcome: RetrievalOutcome, explained: ExplainResult) -> str:
    if explained.status == FetchStatus.FOUND and explained.answer:
        return explained.answer
    return local_search_answer(outcome)
