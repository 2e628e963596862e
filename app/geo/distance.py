"""Great-circle distance helpers.

All functions take signed decimal degrees and return statute miles.
"""

import math
from numbers import Real
from typing import Any

# Mean Earth radius in statute miles
EARTH_RADIUS_MILES = 3958.8


def distance_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance between two points in miles.

    NaN in any argument propagates to the result; callers that need a usable
    number check ``has_valid_coordinates`` first.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def has_valid_coordinates(*values: Any) -> bool:
    """True when every value is a finite real number.

    Booleans are rejected even though ``bool`` subclasses ``int``.
    """
    if not values:
        return False
    for value in values:
        if isinstance(value, bool) or not isinstance(value, Real):
            return False
        if not math.isfinite(value):
            return False
    return True


def is_within_radius(
    lat1: float, lng1: float, lat2: float, lng2: float, radius_miles: float
) -> bool:
    return distance_miles(lat1, lng1, lat2, lng2) <= radius_miles

