"""
Region bucketing for trending counters.

Coordinates beat postal codes beat free-text hints beat the global
default. Nothing here raises: malformed input lands in "global".
"""

import math
import re
from decimal import ROUND_HALF_UP, Context, Decimal
from typing import Any, Optional

GLOBAL_REGION = "global"

_PINCODE = re.compile(r"^\d{6}$")
_REGION_HINT = re.compile(r"^[A-Za-z0-9:_-]{1,32}$")
# wide enough for any finite float
_ROUNDING = Context(prec=400, rounding=ROUND_HALF_UP)


def _finite(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _bucket(coordinate: float) -> str:
    """One decimal, halves away from zero, never "-0.0"."""
    rounded = Decimal(repr(coordinate)).quantize(Decimal("0.1"), context=_ROUNDING)
    if rounded == 0:
        rounded = Decimal("0.0")
    return str(rounded)


def resolve_region(
    lat: Any = None,
    lng: Any = None,
    pincode: Any = None,
    region_hint: Any = None,
) -> str:
    """
    Map location signals to a canonical region key.

    Example:
        >>> resolve_region(lat=12.9716, lng=77.5946, pincode="560001", region_hint="south")
        'geo:13.0:77.6'
        >>> resolve_region(pincode="560001")
        'pin:560001'
        >>> resolve_region(region_hint="Mumbai")
        'mumbai'
        >>> resolve_region(region_hint="not a region!")
        'global'
    """
    lat_f = _finite(lat)
    lng_f = _finite(lng)
    if lat_f is not None and lng_f is not None:
        # ~11 km buckets
        return f"geo:{_bucket(lat_f)}:{_bucket(lng_f)}"

    if pincode is not None:
        code = str(pincode).strip()
        if _PINCODE.match(code):
            return f"pin:{code}"

    if region_hint is not None:
        hint = str(region_hint).strip()
        if _REGION_HINT.match(hint):
            return hint.lower()

    return GLOBAL_REGION
