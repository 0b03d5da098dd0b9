# storepromo/utils/money.py
# Every amount handled by the engine is an integer in minor currency units.

from decimal import Decimal, ROUND_HALF_UP, ROUND_FLOOR

Money = int

def D(x) -> Decimal:
    return x if isinstance(x, Decimal) else Decimal(str(x or "0"))

def round_minor(x) -> Money:
    """Round half-up to a whole number of minor units."""
    return int(D(x).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def floor_int(x) -> int:
    return int(D(x).quantize(Decimal("1"), rounding=ROUND_FLOOR))

def to_major_string(amount) -> str:
    return f"{D(amount) / Decimal(100):.2f}"

def format_minor(amount, currency_code: str | None = None) -> str:
    if currency_code:
        return f"{currency_code} {to_major_string(amount)}"
    return f"${to_major_string(amount)}"
