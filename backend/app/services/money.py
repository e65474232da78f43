"""Integer minor-unit helpers."""
from decimal import Decimal, ROUND_HALF_UP


def round_half_up(value: Decimal) -> int:
    """Round to a whole minor unit, halves away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
