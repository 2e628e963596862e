"""Duration values for configuration (cache TTLs, run interval)."""

import re
from typing import Union

_ISO_DURATION = re.compile(
    r"^P(?:(?P<d>\d+)D)?(?:T(?:(?P<h>\d+)H)?(?:(?P<m>\d+)M)?(?:(?P<s>\d+(?:\.\d+)?)S)?)?$"
)
_HUMAN_PART = re.compile(r"(\d+)([smhd])")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


class DurationParseError(ValueError):
    """Raised when a duration string cannot be parsed."""


def parse_duration(value: Union[str, int]) -> int:
    """Convert a duration to whole seconds.

    Accepts a bare integer (seconds), human-readable forms (``30s``, ``5m``,
    ``1h30m``, ``1d``) and ISO-8601 forms (``PT5M``, ``P1D``).

    >>> parse_duration("5m")
    300
    >>> parse_duration("PT1H")
    3600
    """
    if isinstance(value, bool):
        raise DurationParseError(f"Invalid duration: {value!r}")
    if isinstance(value, int):
        if value <= 0:
            raise DurationParseError(f"Duration must be positive: {value}")
        return value
    if not isinstance(value, str):
        raise DurationParseError(f"Invalid duration: {value!r}")

    text = re.sub(r"\s+", "", value).lower()
    if not text:
        raise DurationParseError("Duration string cannot be empty")

    if text.startswith("p"):
        seconds = _parse_iso8601(text.upper(), value)
    else:
        seconds = _parse_human(text, value)

    if seconds == 0:
        raise DurationParseError(f"Duration cannot be zero: '{value}'")
    return seconds


def _parse_iso8601(text: str, original: str) -> int:
    match = _ISO_DURATION.match(text)
    if not match or text in ("P", "PT"):
        raise DurationParseError(
            f"Invalid ISO-8601 duration: '{original}'. Expected e.g. 'P1D', 'PT1H30M', 'PT5M'"
        )
    parts = match.groupdict()
    return (
        int(parts["d"] or 0) * 86400
        + int(parts["h"] or 0) * 3600
        + int(parts["m"] or 0) * 60
        + int(float(parts["s"] or 0))
    )


def _parse_human(text: str, original: str) -> int:
    if text.isdigit():
        return int(text)

    parts = _HUMAN_PART.findall(text)
    if not parts or "".join(num + unit for num, unit in parts) != text:
        raise DurationParseError(
            f"Invalid duration: '{original}'. "
            "Use digits with s/m/h/d units, e.g. '30s', '5m', '1h30m', '1d'"
        )
    return sum(int(num) * _UNIT_SECONDS[unit] for num, unit in parts)


def validate_duration_range(
    seconds: int, min_seconds: int, max_seconds: int, label: str = "Duration"
) -> None:
    """Raise DurationParseError when ``seconds`` is outside [min_seconds, max_seconds]."""
    if seconds < min_seconds:
        raise DurationParseError(
            f"{label} too short: {format_duration(seconds)}. Minimum is {format_duration(min_seconds)}."
        )
    if seconds > max_seconds:
        raise DurationParseError(
            f"{label} too long: {format_duration(seconds)}. Maximum is {format_duration(max_seconds)}."
        )


def format_duration(seconds: int) -> str:
    """``90`` -> ``"1 minute"``, ``7200`` -> ``"2 hours"``. Truncates to the largest unit."""
    for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60)):
        if seconds >= size:
            count = seconds // size
            return f"{count} {unit}{'s' if count != 1 else ''}"
    return f"{seconds} second{'s' if seconds != 1 else ''}"
