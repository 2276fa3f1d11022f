from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Normalise a database or user value to a two-place Decimal"""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        # str() keeps floats from SQLite aggregates at their printed precision
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)
