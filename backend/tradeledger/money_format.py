# Overview: Response-boundary money formatting (ceiling to two decimals).

"""
Money Rounding Policy

Every non-integer numeric leaf in an outgoing payload is rounded UP to two
decimal places so money is never under-reported client-side. Applied
explicitly by routes right before jsonify(); services keep exact Decimals.

- int / bool pass through unchanged (ids, counts, page numbers)
- str, UUID, dates, None pass through unchanged (invoice numbers, opaque ids)
- NaN / +-inf come out as plain floats (Decimal ones included)
- float values are ceiled on their shortest repr, so 1.2 (stored as
  1.19999...) stays 1.2 and 1.001 becomes 1.01
- negative values ceil toward +infinity: -1.005 -> -1.0
- formatting an already formatted payload is a no-op
"""

from __future__ import annotations

import math
from decimal import Decimal, ROUND_CEILING
from typing import Any

CENT = Decimal("0.01")


def ceil_to_two_decimals(value):
    """Ceil a float/Decimal to two decimals and return it as a float."""
    if isinstance(value, bool) or isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value) or value.is_integer():
            return value
        exact = Decimal(repr(value))
    elif isinstance(value, Decimal):
        if not value.is_finite():
            return math.nan if value.is_nan() else float(value)
        exact = value
    else:
        return value
    return float(exact.quantize(CENT, rounding=ROUND_CEILING))


def format_money(payload: Any) -> Any:
    """Recursively apply ceil_to_two_decimals to every numeric leaf."""
    if isinstance(payload, dict):
        return {key: format_money(value) for key, value in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [format_money(item) for item in payload]
    if isinstance(payload, (float, Decimal)):
        return ceil_to_two_decimals(payload)
    return payload
