# storepromo/services/price_sync.py
"""
Re-price a cart against the current catalog before checkout.

Ineligible PWP items go, every other item moves to the price its quantity
earns now (bulk tier, then variant discount, then base price), and the
member's loyalty tier discount is recomputed into cart metadata.
"""
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..model import Membership, PWPRule
from ..utils.money import D, round_minor, to_major_string
from . import cart_store, catalog, discounts, tier_service
from .cart_validation import trigger_product_in_cart
from .pricing import cart_totals, cart_value_excluding_pwp


def _pwp_removal_reason(item, items, cart_value, now):
    try:
        rule = db.session.get(PWPRule, (item.meta or {}).get("pwp_rule_id"))
    except Exception as e:
        current_app.logger.warning(f"[SYNC-PRICES] PWP rule lookup failed for item {item.id}: {e}")
        return "Could not verify PWP offer"

    if not rule or rule.status != "active":
        return "PWP offer is no longer active"
    if rule.starts_at and rule.starts_at > now:
        return "PWP offer has not started yet"
    if rule.ends_at and rule.ends_at < now:
        return "PWP offer has expired"
    if rule.trigger_type == "cart_value":
        minimum = rule.trigger_cart_value or 0
        if cart_value < minimum:
            return (
                f"Cart value (${to_major_string(cart_value)}) is below minimum "
                f"(${to_major_string(minimum)})"
            )
    elif rule.trigger_type == "product":
        if not trigger_product_in_cart(items, rule.trigger_product_id):
            return "Required product is no longer in cart"
    return None


def _price_change_message(flags, old, new):
    arrow = f"${to_major_string(old)} → ${to_major_string(new)}"
    if flags.get("is_bulk_price"):
        return f"Bulk price applied (min qty: {flags['bulk_min_quantity']}): {arrow}"
    if flags.get("is_variant_discount"):
        return f"Variant discount applied: {arrow}"
    return f"Price updated: {arrow}"


def _reprice_item(cart, item):
    """Returns a change entry when the item's price or pricing flags moved, else None."""
    variant = catalog.get_variant(item.variant_id)
    priced = catalog.price_for_quantity(variant, int(item.quantity or 0), cart.currency_code)
    if priced is None:
        return None
    price, flags, base = priced

    meta = item.meta or {}
    price_moved = price != item.unit_price
    flags_moved = (
        bool(flags.get("is_bulk_price")) != bool(meta.get("is_bulk_price"))
        or bool(flags.get("is_variant_discount")) != bool(meta.get("is_variant_discount"))
    )
    if not (price_moved or flags_moved):
        return None

    old_price = item.unit_price
    cart_store.update_line_item(item, unit_price=price, metadata=catalog.with_pricing_flags(meta, flags, base))

    if price_moved:
        return {
            "item_id": item.id,
            "type": "price_decreased" if price < old_price else "price_increased",
            "message": _price_change_message(flags, old_price, price),
        }
    if flags.get("is_variant_discount"):
        message = "Variant discount metadata applied"
    elif flags.get("is_bulk_price"):
        message = "Bulk price metadata applied"
    else:
        message = "Metadata updated"
    return {"item_id": item.id, "type": "metadata_updated", "message": message}


def _tier_discount(cart, customer_id):
    """(tier, amount) for the cart owner's loyalty tier, or (None, 0)."""
    if not customer_id or cart.customer_id != customer_id:
        return None, 0
    membership = Membership.query.filter_by(customer_id=customer_id).first()
    if not membership or not membership.is_active or not membership.tier_slug:
        return None, 0
    tier = tier_service.tier_by_slug(membership.tier_slug)
    if not tier or not tier.discount_percentage or tier.discount_percentage <= 0:
        return None, 0

    totals = cart_totals(cart)
    net_subtotal = max(0, totals["subtotal"] - totals["discounts"]["pwp"])
    return tier, round_minor(D(net_subtotal) * D(tier.discount_percentage) / 100)


def sync_prices(cart_id, customer_id=None) -> dict:
    cart = cart_store.retrieve_cart(cart_id)
    items = list(cart.items)
    now = datetime.utcnow()
    changes = []

    cart_value = cart_value_excluding_pwp(items)
    to_remove = []
    for item in items:
        if not item.is_pwp_item or not (item.meta or {}).get("pwp_rule_id"):
            continue
        reason = _pwp_removal_reason(item, items, cart_value, now)
        if reason:
            to_remove.append(item.id)
            changes.append({"item_id": item.id, "type": "pwp_removed", "message": reason})

    updated = 0
    for item in items:
        if item.is_pwp_item or item.id in to_remove or not item.variant_id:
            continue
        try:
            with db.session.begin_nested():
                change = _reprice_item(cart, item)
        except Exception as e:
            current_app.logger.warning(f"[SYNC-PRICES] Failed to check pricing for item {item.id}: {e}")
            continue
        if change:
            updated += 1
            changes.append(change)

    if to_remove:
        cart_store.delete_line_items(cart, to_remove)

    try:
        tier, tier_amount = _tier_discount(cart, customer_id)
    except Exception as e:
        current_app.logger.warning(f"[SYNC-PRICES] Failed to calculate tier discount: {e}")
        tier, tier_amount = None, 0

    if tier_amount > 0 or cart.metadata_value("tier_discount_amount"):
        cart_store.update_cart_metadata(cart, {
            "tier_discount_percentage": tier.discount_percentage if tier_amount else None,
            "tier_discount_amount": tier_amount or None,
            "tier_slug": tier.slug if tier_amount else None,
            "tier_name": tier.name if tier_amount else None,
        })
        if tier_amount:
            current_app.logger.info(
                f"[SYNC-PRICES] Tier discount applied: {tier.discount_percentage}% = {tier_amount} for tier {tier.slug}"
            )

    discounts.rebalance(cart)
    db.session.commit()
    current_app.logger.info(f"[SYNC-PRICES] Cart {cart.id} synced: {len(to_remove)} removed, {updated} updated")

    cart = cart_store.retrieve_cart(cart.id, refresh=True)
    return {
        "success": True,
        "cart": cart.as_api(),
        "changes": changes,
        "totals": cart_totals(cart),
        "tier_info": {
            "slug": tier.slug,
            "name": tier.name,
            "discount_percentage": tier.discount_percentage,
            "discount_amount": tier_amount,
        } if tier_amount else None,
        "summary": {
            "items_removed": len(to_remove),
            "items_updated": updated,
            "has_changes": bool(changes),
        },
    }
