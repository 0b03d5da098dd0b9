# storepromo/services/order_service.py
"""
Order completion and its reversals.

The order row and the cart's status change commit together. Every side
effect after that (coupon usage, PWP redemptions, membership activity,
points earned and redeemed, tier re-evaluation) runs in its own SAVEPOINT
and is logged and skipped on failure; it never fails the order.
"""
from datetime import datetime
from uuid import uuid4

from flask import current_app

from ..extensions import db
from ..errors import InvalidDataError, NotAllowedError, NotFoundError, UnauthorizedError
from ..model import Coupon, Membership, Order, OrderItem, PWPRule
from . import cart_store, points_service, tier_service
from .cart_validation import reconcile_cart
from .pricing import cart_totals


def _order_code() -> str:
    return f"ORD-{datetime.utcnow():%Y%m%d}-{uuid4().hex[:8].upper()}"


def get_order(order_id) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError(f"Order with id {order_id} not found")
    return order


def _best_effort(label, fn):
    try:
        with db.session.begin_nested():
            return fn()
    except Exception as e:
        current_app.logger.warning(f"[ORDER] {label} failed: {e}")
        return None


def _count_coupon_usage(cart):
    coupon_id = cart.metadata_value("applied_coupon_id")
    if not coupon_id:
        return None
    coupon = db.session.get(Coupon, coupon_id)
    if coupon:
        coupon.usage_count = (coupon.usage_count or 0) + 1
        db.session.flush()
    return coupon_id


def _count_pwp_redemptions(cart):
    rule_ids = {(i.meta or {}).get("pwp_rule_id") for i in cart.items if i.is_pwp_item}
    rule_ids.discard(None)
    if not rule_ids:
        return []
    for rule in PWPRule.query.filter(PWPRule.id.in_(rule_ids)).all():
        rule.redemption_count = (rule.redemption_count or 0) + 1
    db.session.flush()
    return sorted(rule_ids)


def _record_membership_activity(customer_id, total):
    membership = Membership.query.filter_by(customer_id=customer_id).first()
    if not membership or not membership.is_active:
        return None
    membership.order_count = (membership.order_count or 0) + 1
    membership.total_spend = (membership.total_spend or 0) + total
    db.session.flush()
    return membership


def complete_order(cart_id, customer_id=None) -> dict:
    cart = cart_store.retrieve_cart(cart_id)
    if cart.status != "active":
        raise InvalidDataError(f"Cart {cart.id} is already completed")
    if cart.customer_id:
        if not customer_id:
            raise UnauthorizedError("Authentication required to complete this cart")
        if cart.customer_id != customer_id:
            raise NotAllowedError("Cannot complete another customer's cart")

    fixes = reconcile_cart(cart)
    if fixes:
        current_app.logger.info(f"[ORDER] Cart {cart.id} reconciled before completion: {len(fixes)} fixes")
    if not cart.items:
        raise InvalidDataError("Cannot complete an empty cart")

    totals = cart_totals(cart)
    order = Order(
        code=_order_code(),
        status="completed",
        cart_id=cart.id,
        customer_id=cart.customer_id,
        currency_code=cart.currency_code,
        subtotal=totals["subtotal"],
        discount_total=totals["discount_total"],
        total=totals["total"],
        meta={**dict(cart.meta or {}), "discounts": totals["discounts"]},
    )
    for item in cart.items:
        adjustment_total = sum(int(a.amount or 0) for a in item.adjustments)
        order.items.append(OrderItem(
            variant_id=item.variant_id,
            title=item.title,
            unit_price=item.unit_price,
            quantity=item.quantity,
            adjustment_total=adjustment_total,
            line_total=item.line_total(),
            meta=dict(item.meta or {}),
        ))
    db.session.add(order)
    cart.status = "completed"
    db.session.commit()
    current_app.logger.info(f"[ORDER] Order {order.code} created from cart {cart.id} - total: {order.total}")

    effects = {
        "coupon_counted": _best_effort("Coupon usage", lambda: _count_coupon_usage(cart)),
        "pwp_rules_counted": _best_effort("PWP redemption count", lambda: _count_pwp_redemptions(cart)) or [],
        "points_earned": None,
        "points_redeemed": None,
        "tier": None,
    }

    if cart.customer_id:
        uid = cart.customer_id
        membership = _best_effort("Membership activity", lambda: _record_membership_activity(uid, order.total))

        points = cart.metadata_value("points_to_redeem")
        if points:
            effects["points_redeemed"] = _best_effort(
                "Points redemption",
                lambda: points_service.redeem_points(
                    uid, int(points), order_id=order.id,
                    reason=f"Redeemed on order {order.code}", commit=False,
                ),
            )

        effects["points_earned"] = _best_effort(
            "Points earning",
            lambda: points_service.earn_points(
                uid, order.id, order.total,
                multiplier=tier_service.points_multiplier_for(uid), commit=False,
            ),
        )

        if membership:
            tier = _best_effort("Tier evaluation", lambda: tier_service.refresh_membership_tier(membership))
            effects["tier"] = tier.slug if tier else None

    db.session.commit()
    return {"order": order.as_api(), "effects": effects}


def cancel_order(order_id) -> dict:
    order = get_order(order_id)
    if order.status == "cancelled":
        raise InvalidDataError(f"Order {order.code} is already cancelled")

    result = {"points_deducted": 0, "points_restored": 0, "new_balance": None}
    if order.customer_id:
        earned, redeemed = points_service.outstanding_order_points(order.customer_id, order.id)
        result = points_service.handle_cancel_order_points(
            order.customer_id,
            order.id,
            points_to_deduct=earned,
            points_to_restore=redeemed,
            commit=False,
        )
    order.status = "cancelled"
    db.session.commit()
    current_app.logger.info(f"[ORDER] Order {order.code} cancelled")
    return {"order": order.as_api(), "points": result}


def _points_arg(value, name, outstanding) -> int:
    if value is None:
        return outstanding
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise InvalidDataError(f"{name} must be an integer")
    if value < 0:
        raise InvalidDataError("points_to_deduct and points_to_restore must be >= 0")
    return min(value, outstanding)


def process_return(order_id, return_id, points_to_deduct=None, points_to_restore=None) -> dict:
    """
    Reverse points for one return. Amounts default to, and are capped at,
    what the order still holds after earlier returns. Each return_id runs once.
    """
    order = get_order(order_id)
    if not return_id:
        raise InvalidDataError("return_id is required")
    if order.status == "cancelled":
        raise InvalidDataError(f"Order {order.code} is cancelled; returns are not accepted")
    if not order.customer_id:
        raise InvalidDataError("Order has no customer; no points to adjust")

    return_id = str(return_id)
    processed = list((order.meta or {}).get("processed_return_ids") or [])
    if return_id in processed:
        raise InvalidDataError(f"Return {return_id} has already been processed for order {order.code}")

    earned, redeemed = points_service.outstanding_order_points(order.customer_id, order.id)
    result = points_service.handle_return_points(
        order.customer_id, order.id, return_id,
        points_to_deduct=_points_arg(points_to_deduct, "points_to_deduct", earned),
        points_to_restore=_points_arg(points_to_restore, "points_to_restore", redeemed),
        commit=False,
    )
    order.meta = {**dict(order.meta or {}), "processed_return_ids": processed + [return_id]}
    db.session.commit()
    current_app.logger.info(f"[ORDER] Return {return_id} processed for order {order.code}")
    return {"order": order.as_api(), "points": result}
