# storepromo/services/discounts.py
"""
Keep cart-level discounts in step with the items underneath them.

Coupon, membership promo and points discounts are stored as one adjustment
on an anchor line item plus a metadata mirror, and the tier discount lives
in metadata alone. Whenever items are added, re-priced or removed the
applied discounts are recomputed against the new subtotal, re-anchored on
the first item when their anchor is gone, and capped in the order
pwp, coupon, membership promo, points, tier so the combined discount never
exceeds the subtotal. A membership promo whose minimum purchase is no
longer met and a points redemption that no longer fits are dropped.
"""
from flask import current_app

from ..extensions import db
from ..model import MembershipPromo
from ..model.cart import (
    COUPON_METADATA_KEYS,
    MEMBERSHIP_PROMO_METADATA_KEYS,
    POINTS_ADJUSTMENT_CODE,
    POINTS_METADATA_KEYS,
    TIER_METADATA_KEYS,
)
from ..utils.money import D, round_minor
from . import cart_store, coupon_service, membership_promo_service
from .pricing import calculate_discount, cart_totals


def _existing(cart, code):
    return [a for item in cart.items for a in item.adjustments if a.code == code]


def _place(cart, code, amount, description):
    """Leave exactly one ``code`` adjustment worth ``amount`` on the cart."""
    rows = _existing(cart, code)
    if len(rows) == 1 and rows[0].amount == amount:
        return
    if rows:
        description = rows[0].description or description
        cart_store.remove_adjustments_by_code(cart, code)
    cart_store.add_line_item_adjustments([{
        "item": cart.items[0],
        "code": code,
        "amount": amount,
        "description": description,
    }])


def _drop(cart, code, keys, changes):
    cart_store.remove_adjustments_by_code(cart, code)
    changes.update({key: None for key in keys})


def rebalance(cart) -> dict:
    """Recompute every applied cart-level discount; returns the metadata changes written."""
    meta = cart.meta or {}
    changes = {}

    if not cart.items:
        for keys in (COUPON_METADATA_KEYS, MEMBERSHIP_PROMO_METADATA_KEYS, POINTS_METADATA_KEYS, TIER_METADATA_KEYS):
            changes.update({key: None for key in keys if meta.get(key) is not None})
        if changes:
            cart_store.update_cart_metadata(cart, changes)
            current_app.logger.info(f"Cart {cart.id} emptied; cart-level discounts cleared")
        return changes

    totals = cart_totals(cart)
    subtotal = totals["subtotal"]
    remaining = max(0, subtotal - totals["discounts"]["pwp"])

    code = meta.get("applied_coupon_code")
    if code:
        amount = min(calculate_discount(meta.get("applied_coupon_type"), meta.get("applied_coupon_value"), subtotal),
                     remaining)
        _place(cart, coupon_service.adjustment_code(code), amount, f"Coupon: {code}")
        remaining -= amount
        if amount != meta.get("applied_coupon_discount"):
            changes["applied_coupon_discount"] = amount

    promo_id = meta.get("applied_membership_promo_id")
    if promo_id:
        promo_code = membership_promo_service.adjustment_code(promo_id)
        promo = db.session.get(MembershipPromo, promo_id)
        if promo and subtotal < (promo.minimum_purchase or 0):
            _drop(cart, promo_code, MEMBERSHIP_PROMO_METADATA_KEYS, changes)
            current_app.logger.info(f"Membership promo {promo_id} dropped from cart {cart.id}: minimum no longer met")
        else:
            amount = min(calculate_discount(
                meta.get("applied_membership_promo_type"), meta.get("applied_membership_promo_value"), subtotal,
            ), remaining)
            _place(cart, promo_code, amount, f"Membership Promo: {meta.get('applied_membership_promo_name')}")
            remaining -= amount
            if amount != meta.get("applied_membership_promo_discount"):
                changes["applied_membership_promo_discount"] = amount

    if meta.get("points_to_redeem"):
        amount = int(meta.get("points_discount_amount") or 0)
        if amount > remaining:
            _drop(cart, POINTS_ADJUSTMENT_CODE, POINTS_METADATA_KEYS, changes)
            current_app.logger.info(f"Points redemption dropped from cart {cart.id}: discount exceeds what is left")
        else:
            _place(cart, POINTS_ADJUSTMENT_CODE, amount, f"Redeemed {meta['points_to_redeem']} points")
            remaining -= amount

    percentage = meta.get("tier_discount_percentage")
    if percentage:
        net_subtotal = max(0, subtotal - totals["discounts"]["pwp"])
        amount = min(round_minor(D(net_subtotal) * D(percentage) / 100), remaining)
        if amount != meta.get("tier_discount_amount"):
            changes["tier_discount_amount"] = amount

    if changes:
        cart_store.update_cart_metadata(cart, changes)
    return changes
