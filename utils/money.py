from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")

# Largest difference between a webhook amount and the stored amount that
# still counts as the same charge
AMOUNT_TOLERANCE = Decimal("0.01")


def to_money(value) -> Decimal:
    """Convert int/str/float/Decimal to a 2-place Decimal"""
    return _as_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _as_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def amounts_match(a, b, tolerance: Decimal = AMOUNT_TOLERANCE) -> bool:
    return abs(_as_decimal(a) - _as_decimal(b)) <= tolerance
