"""
Address resolver: split a free-form street address into match tokens.
"""
import re

from ..models.intent import AddressParts


_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_SPACES = re.compile(r"\s+")
_STREET_NUMBER = re.compile(r"^\d{1,6}")
_ZIP = re.compile(r"\b\d{5}\b")
_COUNTY_WORD = re.compile(r"\bcounty\b")


def normalize_loose(text: str) -> str:
    """Lower-case, replace non-alphanumerics with spaces, collapse whitespace."""
    text = _NON_ALNUM.sub(" ", str(text or "").lower())
    return _SPACES.sub(" ", text).strip()


def parse_address(raw_input: str) -> AddressParts:
    """
    Parse an address like "123 Main St, Erie, PA 16501".

    Segment 0 (before the first comma) is the street; everything after it is
    searched for the city. A "county" mention in the rest means the caller
    gave a county name, so no city token is taken from it.
    """
    raw = str(raw_input or "").strip()
    segments = [s.strip() for s in raw.split(",") if s.strip()]

    street_raw = segments[0] if segments else raw
    street = normalize_loose(street_raw)
    rest = normalize_loose(" ".join(segments[1:]))

    match = _STREET_NUMBER.match(street)
    street_number = match.group(0) if match else None
    street_without_number = street[len(street_number):].strip() if street_number else street

    street_tokens = tuple(t for t in street_without_number.split(" ") if len(t) >= 3)

    zip_match = _ZIP.search(raw)

    city_token = None
    if rest and not _COUNTY_WORD.search(rest):
        # A bare zip after the comma is not a city
        city_token = next((t for t in rest.split(" ") if len(t) >= 3 and not t.isdigit()), None)

    street_query = normalize_loose(f"{street_number or ''} {' '.join(street_tokens[:3])}")

    return AddressParts(
        raw=raw,
        street_raw=street_raw,
        street_number=street_number,
        street_name_token=street_tokens[0] if street_tokens else None,
        street_tokens=street_tokens,
        city_token=city_token,
        zip=zip_match.group(0) if zip_match else None,
        street_query=street_query,
    )
