"""US address parsing: ZIP codes and city names."""

import re
from typing import Any, Iterable, List, Optional, TypeVar

_ZIP_IN_TEXT = re.compile(r"\b\d{5}\b")
_VALID_ZIP = re.compile(r"^\d{5}$")
_ZIP_NOISE = re.compile(r"[\s-]")
_DIGITS = re.compile(r"\d+")

T = TypeVar("T")


def extract_zip(text: Optional[str]) -> Optional[str]:
    """Return the first standalone 5-digit run in ``text``.

    >>> extract_zip("123 Main St, Kenner, LA 70062")
    '70062'
    """
    if not isinstance(text, str) or not text:
        return None
    match = _ZIP_IN_TEXT.search(text)
    return match.group(0) if match else None


def extract_city(address: Optional[str]) -> Optional[str]:
    """City part of a comma-separated US address, or None.

    The second-to-last component is taken as the city, with any digits
    (a stray ZIP) removed.

    >>> extract_city("12 Oak St, Metairie, LA 70001")
    'Metairie'
    """
    if not isinstance(address, str):
        return None
    parts = [part.strip() for part in address.split(",")]
    if len(parts) < 2:
        return None
    city = _DIGITS.sub("", parts[-2]).strip()
    return city or None


def normalize_zip(value: Any) -> str:
    """Drop whitespace and dashes, keep the first five characters.

    ``"70062-1234"`` normalizes to ``"70062"``. The result is not validated.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return ""
    if isinstance(value, int):
        value = f"{value:05d}"
    return _ZIP_NOISE.sub("", str(value))[:5]


def is_valid_zip(value: Any) -> bool:
    return isinstance(value, str) and bool(_VALID_ZIP.match(value))


def parse_preferred_zips(raw: Any) -> frozenset:
    """Parse a buyer's preferred ZIPs into a set of valid 5-digit strings.

    Accepts a comma-delimited string or any iterable of strings/ints. Entries
    are trimmed and normalized; empty or invalid entries are dropped.
    """
    if raw is None or isinstance(raw, bool):
        return frozenset()

    if isinstance(raw, str):
        candidates: Iterable[Any] = raw.split(",")
    elif isinstance(raw, int):
        candidates = [raw]
    else:
        try:
            candidates = list(raw)
        except TypeError:
            return frozenset()

    zips = set()
    for candidate in candidates:
        if isinstance(candidate, str):
            candidate = candidate.strip()
            if not candidate:
                continue
        zip_code = normalize_zip(candidate)
        if is_valid_zip(zip_code):
            zips.add(zip_code)
    return frozenset(zips)


def resolve_property_zip(property_zip: Any, property_address: Optional[str]) -> Optional[str]:
    """The explicit ZIP if it normalizes to a valid one, else the ZIP parsed from the address."""
    explicit = normalize_zip(property_zip)
    if is_valid_zip(explicit):
        return explicit

    parsed = extract_zip(property_address)
    return parsed if parsed and is_valid_zip(parsed) else None


def is_in_preferred_zip(
    property_zip: Any,
    property_address: Optional[str],
    preferred_zips: Iterable[str],
) -> bool:
    """Whether a property's ZIP is among the buyer's preferred ZIPs.

    An explicit ``property_zip`` wins over a ZIP found in ``property_address``.
    An empty preference set never matches.
    """
    preferred = preferred_zips if isinstance(preferred_zips, (set, frozenset)) else set(preferred_zips or ())
    if not preferred:
        return False

    zip_code = resolve_property_zip(property_zip, property_address)
    return zip_code is not None and zip_code in preferred


def filter_by_preferred_zip(properties: Iterable[T], preferred_zips: Iterable[str]) -> List[T]:
    """Keep properties located in a preferred ZIP.

    Items need ``zip_code`` and ``address`` attributes. Without any preference
    every property is returned.
    """
    preferred = frozenset(preferred_zips or ())
    items = list(properties)
    if not preferred:
        return items
    return [
        item
        for item in items
        if is_in_preferred_zip(getattr(item, "zip_code", None), getattr(item, "address", None), preferred)
    ]
