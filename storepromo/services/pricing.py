"""
Pure pricing helpers shared by every discount source.

Amounts are integers in minor currency units. Nothing here touches the
database; callers pass line items (anything with ``unit_price``,
``quantity`` and ``meta``) and price list entries.
"""
from decimal import Decimal

from ..utils.money import D, round_minor, format_minor
from ..model.cart import (
    COUPON_ADJUSTMENT_PREFIX,
    MEMBERSHIP_PROMO_ADJUSTMENT_PREFIX,
    PWP_ADJUSTMENT_PREFIX,
    POINTS_ADJUSTMENT_CODE,
)

PERCENTAGE = "percentage"
FIXED = "fixed"
DISCOUNT_TYPES = {PERCENTAGE, FIXED}


def _meta(item) -> dict:
    return getattr(item, "meta", None) or {}


def _field(entry, name):
    if isinstance(entry, dict):
        return entry.get(name)
    return getattr(entry, name, None)


def compute_subtotal(items) -> int:
    """Σ unit_price × quantity, recomputed from the items every time."""
    return sum(int(item.unit_price or 0) * int(item.quantity or 0) for item in items)


def cart_value_excluding_pwp(items) -> int:
    return sum(
        int(item.unit_price or 0) * int(item.quantity or 0)
        for item in items
        if not _meta(item).get("is_pwp_item")
    )


def cart_value_at_original_prices(items) -> int:
    total = 0
    for item in items:
        m = _meta(item)
        if m.get("is_pwp_item"):
            continue
        unit = m.get("original_unit_price") or item.unit_price or 0
        total += int(unit) * int(item.quantity or 0)
    return total


def calculate_discount(kind: str, value, subtotal: int) -> int:
    """Percentage rounds half-up, fixed is already in minor units; result is clamped to [0, subtotal]."""
    if kind == PERCENTAGE:
        amount = round_minor(D(subtotal) * D(value) / Decimal(100))
    else:
        amount = round_minor(value)
    return max(0, min(amount, int(subtotal)))


def _number_text(value) -> str:
    d = D(value)
    if d == d.to_integral_value():
        return str(int(d))
    return str(d.normalize())


def format_discount(kind: str, value, amount: int, currency_code: str | None) -> str:
    if kind == PERCENTAGE:
        return f"{_number_text(value)}%"
    return format_minor(amount, currency_code)


def variant_discounted_price(base_price: int, discount_type: str | None, discount_value) -> int:
    value = D(discount_value)
    if not discount_type or value <= 0:
        return base_price
    if discount_type == PERCENTAGE:
        pct = min(value, Decimal(100))
        return round_minor(D(base_price) * (Decimal(1) - pct / Decimal(100)))
    return max(0, base_price - round_minor(value))


def reward_discount(original_price: int, reward_type: str, reward_value) -> int:
    if reward_type == PERCENTAGE:
        return round_minor(D(original_price) * D(reward_value) / Decimal(100))
    return min(round_minor(reward_value), original_price)


# ---- price lists -----------------------------------------------------------

def get_applicable_bulk_tier(quantity: int, prices, currency_code: str):
    """
    Highest bulk tier the quantity qualifies for, or None.
    Only entries in the cart currency with min_quantity > 1 are tiers.
    """
    currency = (currency_code or "").lower()
    tiers = [
        p for p in prices
        if (_field(p, "currency_code") or "").lower() == currency
        and (_field(p, "min_quantity") or 0) > 1
    ]
    tiers.sort(key=lambda p: _field(p, "min_quantity") or 0, reverse=True)

    for tier in tiers:
        min_qty = _field(tier, "min_quantity") or 1
        max_qty = _field(tier, "max_quantity")
        if quantity >= min_qty and (max_qty is None or quantity <= max_qty):
            return {
                "amount": int(_field(tier, "amount")),
                "min_quantity": min_qty,
                "max_quantity": max_qty,
            }
    return None


def get_base_price(prices, currency_code: str) -> int | None:
    currency = (currency_code or "").lower()
    for p in prices:
        if (_field(p, "currency_code") or "").lower() != currency:
            continue
        min_qty = _field(p, "min_quantity")
        if not min_qty or min_qty <= 1:
            return int(_field(p, "amount"))
    return None


# ---- aggregation -----------------------------------------------------------

def _adjustment_source(code: str) -> str:
    if code.startswith(COUPON_ADJUSTMENT_PREFIX):
        return "coupon"
    if code.startswith(MEMBERSHIP_PROMO_ADJUSTMENT_PREFIX):
        return "membership_promo"
    if code.startswith(PWP_ADJUSTMENT_PREFIX):
        return "pwp"
    if code == POINTS_ADJUSTMENT_CODE:
        return "points"
    return "other"


def cart_totals(cart) -> dict:
    """
    One pass over items and their adjustments. Adjustments are summed per
    discount source regardless of which line item carries them; the loyalty
    tier discount lives in cart metadata.
    """
    items = list(cart.items)
    subtotal = compute_subtotal(items)
    discounts = {"pwp": 0, "coupon": 0, "membership_promo": 0, "points": 0, "other": 0}
    for item in items:
        for adj in getattr(item, "adjustments", None) or []:
            discounts[_adjustment_source(adj.code)] += int(adj.amount or 0)
    discounts["tier"] = int((cart.meta or {}).get("tier_discount_amount") or 0)

    discount_total = min(sum(discounts.values()), subtotal)
    return {
        "subtotal": subtotal,
        "cart_value_excluding_pwp": cart_value_excluding_pwp(items),
        "discounts": discounts,
        "discount_total": discount_total,
        "total": max(0, subtotal - discount_total),
    }
