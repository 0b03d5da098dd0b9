# storepromo/services/coupon_service.py
"""
Coupon engine: validate (read only), apply, remove.

A cart holds at most one coupon. The discount is anchored to the cart's
first line item as a ``COUPON_<CODE>`` adjustment and mirrored into the
seven ``applied_coupon_*`` metadata keys; both writes land in one commit.
Usage counting happens at order completion.
"""
from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import InvalidDataError, NotFoundError
from ..model import Coupon
from ..model.cart import COUPON_ADJUSTMENT_PREFIX, COUPON_METADATA_KEYS
from ..utils.dates import parse_iso8601
from . import cart_store
from .pricing import DISCOUNT_TYPES, calculate_discount, compute_subtotal, format_discount


def _normalize(code) -> str:
    return (code or "").strip().upper()


def adjustment_code(code: str) -> str:
    return f"{COUPON_ADJUSTMENT_PREFIX}{_normalize(code)}"


def find_coupon(code):
    code = _normalize(code)
    if not code:
        return None
    return Coupon.query.filter(func.upper(Coupon.code) == code).first()


def coupon_problem(coupon: Coupon, now=None) -> str | None:
    """Why the coupon cannot be used right now, or None when it can."""
    now = now or datetime.utcnow()
    if coupon.status != "active":
        return "This coupon is no longer active"
    if coupon.starts_at and coupon.starts_at > now:
        return "This coupon is not yet active"
    if coupon.ends_at and coupon.ends_at < now:
        return "This coupon has expired"
    if coupon.usage_limit is not None and (coupon.usage_count or 0) >= coupon.usage_limit:
        return "This coupon has reached its usage limit"
    return None


def _already_applied_message(cart) -> str:
    return (
        f'Cart already has coupon "{cart.metadata_value("applied_coupon_code")}" applied. '
        "Remove it first to apply a new one."
    )


def _discount_view(coupon: Coupon, amount: int) -> dict:
    return {
        "amount": amount,
        "formatted": format_discount(coupon.type, coupon.value, amount, coupon.currency_code),
    }


def validate_coupon(code, cart_id) -> dict:
    """Prospective discount for the cart; business rejections come back as valid=False."""
    if not _normalize(code):
        raise InvalidDataError("Missing required fields: code and cart_id are required")
    cart = cart_store.retrieve_cart(cart_id)

    if cart.metadata_value("applied_coupon_code"):
        return {"valid": False, "message": _already_applied_message(cart)}

    coupon = find_coupon(code)
    if not coupon:
        return {"valid": False, "message": "Invalid coupon code"}
    problem = coupon_problem(coupon)
    if problem:
        return {"valid": False, "message": problem}

    subtotal = compute_subtotal(cart.items)
    amount = calculate_discount(coupon.type, coupon.value, subtotal)
    current_app.logger.info(f"Validated coupon {coupon.code} for cart {cart.id} - discount: {amount}")

    return {
        "valid": True,
        "coupon": {
            "id": coupon.id,
            "code": coupon.code,
            "name": coupon.name,
            "type": coupon.type,
            "value": coupon.value,
            "currency_code": coupon.currency_code,
        },
        "discount": _discount_view(coupon, amount),
        "cart_subtotal": subtotal,
        "new_total": subtotal - amount,
    }


def apply_coupon(code, cart_id) -> dict:
    code = _normalize(code)
    if not code:
        raise InvalidDataError("Missing required fields: code and cart_id are required")
    cart = cart_store.retrieve_cart(cart_id)

    if cart.metadata_value("applied_coupon_code"):
        raise InvalidDataError(_already_applied_message(cart))
    if not cart.items:
        raise InvalidDataError("Cannot apply coupon to empty cart")

    coupon = find_coupon(code)
    if not coupon:
        raise NotFoundError("Invalid coupon code")
    problem = coupon_problem(coupon)
    if problem:
        raise InvalidDataError(problem)

    subtotal = compute_subtotal(cart.items)
    amount = calculate_discount(coupon.type, coupon.value, subtotal)

    cart_store.add_line_item_adjustments([{
        "item": cart.items[0],
        "code": adjustment_code(code),
        "amount": amount,
        "description": f"Coupon: {code} ({coupon.name})",
    }])
    cart_store.update_cart_metadata(cart, {
        "applied_coupon_code": code,
        "applied_coupon_id": coupon.id,
        "applied_coupon_name": coupon.name,
        "applied_coupon_type": coupon.type,
        "applied_coupon_value": coupon.value,
        "applied_coupon_discount": amount,
        "applied_coupon_currency": coupon.currency_code,
    })
    db.session.commit()
    current_app.logger.info(f"Applied coupon {code} to cart {cart.id} - discount: {amount}")

    return {
        "success": True,
        "cart": cart.as_api(),
        "applied_coupon": {
            "code": code,
            "name": coupon.name,
            "type": coupon.type,
            "value": coupon.value,
            "discount_amount": amount,
            "discount_formatted": _discount_view(coupon, amount)["formatted"],
            "currency_code": coupon.currency_code,
        },
    }


def remove_coupon(cart_id) -> dict:
    cart = cart_store.retrieve_cart(cart_id)
    applied = cart.metadata_value("applied_coupon_code")
    if not applied:
        return {"success": True, "message": "No coupon applied to this cart", "cart": cart.as_api()}

    removed = cart_store.remove_adjustments_by_code(cart, adjustment_code(applied))
    cart_store.update_cart_metadata(cart, {key: None for key in COUPON_METADATA_KEYS})
    db.session.commit()
    current_app.logger.info(f"Removed coupon {applied} from cart {cart.id} ({removed} adjustments)")

    return {
        "success": True,
        "message": f'Coupon "{applied}" has been removed',
        "cart": cart.as_api(),
    }


# ---- admin -----------------------------------------------------------------

def create_coupon(data: dict) -> Coupon:
    code = _normalize(data.get("code"))
    ctype = (data.get("type") or "percentage").strip().lower()
    try:
        value = float(data.get("value") or 0)
    except (TypeError, ValueError):
        raise InvalidDataError("value must be a number")

    if not code:
        raise InvalidDataError("code is required")
    if ctype not in DISCOUNT_TYPES:
        raise InvalidDataError("type must be 'percentage' or 'fixed'")
    if value <= 0:
        raise InvalidDataError("value must be > 0")
    if ctype == "percentage" and value > 100:
        raise InvalidDataError("percentage value must be <= 100")
    if find_coupon(code):
        raise InvalidDataError("Coupon code already exists")

    starts_at = parse_iso8601(data.get("starts_at"), "starts_at")
    ends_at = parse_iso8601(data.get("ends_at"), "ends_at")
    if starts_at and ends_at and ends_at <= starts_at:
        raise InvalidDataError("ends_at must be after starts_at")

    coupon = Coupon(
        code=code,
        name=(data.get("name") or code).strip(),
        type=ctype,
        value=value,
        currency_code=(data.get("currency_code") or current_app.config["STORE_DEFAULT_CURRENCY"]).lower(),
        status=data.get("status") or "active",
        starts_at=starts_at,
        ends_at=ends_at,
        usage_limit=data.get("usage_limit"),
    )
    db.session.add(coupon)
    db.session.commit()
    current_app.logger.info(f"Coupon created: {coupon.code}")
    return coupon


def list_coupons(status=None):
    q = Coupon.query
    if status:
        q = q.filter(Coupon.status == status)
    return q.order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()


def set_coupon_status(coupon_id, status) -> Coupon:
    if status not in ("active", "inactive"):
        raise InvalidDataError("status must be 'active' or 'inactive'")
    coupon = db.session.get(Coupon, coupon_id)
    if not coupon:
        raise NotFoundError(f"Coupon with id {coupon_id} not found")
    coupon.status = status
    db.session.commit()
    return coupon
