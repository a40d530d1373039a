# Overview: PKR <-> AED conversion helpers used by the invoice computation rule.

"""
Currency conversion

Conversion rates are quoted as PKR per 1 AED (e.g. 80 means 1 AED = 80 PKR).

- PKR -> AED divides by the rate and keeps 4 decimal places (display rounding
  happens at the API boundary, not here).
- AED -> PKR multiplies by the rate and rounds to whole rupees.
- A missing or non-positive rate converts to 0 rather than raising.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

PKR = "PKR"
AED = "AED"
SUPPORTED_CURRENCIES = (PKR, AED)

ZERO = Decimal("0")
# Storage scale of every money column (Numeric(18, 4))
MONEY_QUANTUM = Decimal("0.0001")
AED_QUANTUM = MONEY_QUANTUM
PKR_QUANTUM = Decimal("1")


def to_decimal(value) -> Decimal:
    """Coerce int/float/str/Decimal/None into a Decimal (None -> 0)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # repr keeps the shortest round-tripping form (0.1 -> "0.1")
        return Decimal(repr(value))
    return Decimal(str(value))


def quantize_money(value) -> Decimal:
    """Round to the stored money scale, so guards see what the database keeps."""
    return to_decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def pkr_to_aed(amount_pkr, conversion_rate) -> Decimal:
    rate = to_decimal(conversion_rate)
    if rate <= 0:
        return ZERO
    return (to_decimal(amount_pkr) / rate).quantize(AED_QUANTUM, rounding=ROUND_HALF_UP)


def aed_to_pkr(amount_aed, conversion_rate) -> Decimal:
    rate = to_decimal(conversion_rate)
    if rate <= 0:
        return ZERO
    return (to_decimal(amount_aed) * rate).quantize(PKR_QUANTUM, rounding=ROUND_HALF_UP)


def convert(amount, *, source: str, target: str, conversion_rate) -> Decimal:
    """Convert between the two supported currencies; same-currency is a no-op."""
    if source not in SUPPORTED_CURRENCIES or target not in SUPPORTED_CURRENCIES:
        raise ValueError(f"Unsupported currency pair: {source}->{target}")
    if source == target:
        return to_decimal(amount)
    if source == PKR:
        return pkr_to_aed(amount, conversion_rate)
    return aed_to_pkr(amount, conversion_rate)
