# storepromo/services/membership_promo_service.py
"""
Membership promo auto-selector.

Among active promos whose date window contains now and whose minimum
purchase the cart meets, the one giving the largest discount is applied.
Ties keep the first promo seen.
"""
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..errors import InvalidDataError, NotFoundError
from ..model import Membership, MembershipPromo
from ..model.cart import MEMBERSHIP_PROMO_ADJUSTMENT_PREFIX, MEMBERSHIP_PROMO_METADATA_KEYS
from ..utils.dates import in_window, parse_iso8601
from . import cart_store
from .pricing import DISCOUNT_TYPES, calculate_discount, compute_subtotal, format_discount


def adjustment_code(promo_id) -> str:
    return f"{MEMBERSHIP_PROMO_ADJUSTMENT_PREFIX}{promo_id}"


def is_active_member(customer_id) -> bool:
    membership = Membership.query.filter_by(customer_id=customer_id).first()
    return bool(membership and membership.is_active)


def promos_in_window(now=None):
    now = now or datetime.utcnow()
    promos = MembershipPromo.query.filter_by(status="active").order_by(MembershipPromo.id.asc()).all()
    return [p for p in promos if in_window(p.start_date, p.end_date, now)]


def select_best_promo(promos, subtotal: int):
    """(promo, discount) with the largest discount, or (None, 0)."""
    best, best_amount = None, 0
    for promo in promos:
        minimum = promo.minimum_purchase or 0
        if subtotal < minimum:
            current_app.logger.info(f"Promo {promo.name} requires minimum {minimum}, cart has {subtotal}")
            continue
        amount = calculate_discount(promo.discount_type, promo.discount_value, subtotal)
        if amount > best_amount:
            best, best_amount = promo, amount
    return best, best_amount


def apply_best_promo(customer_id, cart_id) -> dict:
    if not cart_id:
        raise InvalidDataError("Missing required field: cart_id")
    cart = cart_store.retrieve_cart(cart_id)

    if cart.metadata_value("applied_membership_promo_id"):
        raise InvalidDataError("Cart already has a membership promo applied. Remove it first to apply a new one.")
    if not cart.items:
        raise InvalidDataError("Cannot apply membership promo to empty cart")

    if not is_active_member(customer_id):
        return {
            "success": False,
            "message": "Only members can apply membership promos",
            "is_member": False,
            "cart": cart.as_api(),
        }

    promos = promos_in_window()
    if not promos:
        return {"success": False, "message": "No active membership promos available", "cart": cart.as_api()}

    subtotal = compute_subtotal(cart.items)
    promo, amount = select_best_promo(promos, subtotal)
    if not promo:
        return {"success": False, "message": "No applicable membership promos for your cart", "cart": cart.as_api()}

    cart_store.add_line_item_adjustments([{
        "item": cart.items[0],
        "code": adjustment_code(promo.id),
        "amount": amount,
        "description": f"Membership Promo: {promo.name}",
    }])
    cart_store.update_cart_metadata(cart, {
        "applied_membership_promo_id": promo.id,
        "applied_membership_promo_name": promo.name,
        "applied_membership_promo_type": promo.discount_type,
        "applied_membership_promo_value": promo.discount_value,
        "applied_membership_promo_discount": amount,
    })
    db.session.commit()
    current_app.logger.info(f"Applied membership promo {promo.name} to cart {cart.id} - discount: {amount}")

    return {
        "success": True,
        "cart": cart.as_api(),
        "applied_promo": {
            "id": promo.id,
            "name": promo.name,
            "description": promo.description,
            "discount_type": promo.discount_type,
            "discount_value": promo.discount_value,
            "discount_amount": amount,
            "discount_formatted": format_discount(promo.discount_type, promo.discount_value, amount, None),
        },
    }


def remove_promo(cart_id) -> dict:
    cart = cart_store.retrieve_cart(cart_id)
    promo_id = cart.metadata_value("applied_membership_promo_id")
    if not promo_id:
        return {"success": True, "message": "No membership promo applied to this cart", "cart": cart.as_api()}

    cart_store.remove_adjustments_by_code(cart, adjustment_code(promo_id))
    cart_store.update_cart_metadata(cart, {key: None for key in MEMBERSHIP_PROMO_METADATA_KEYS})
    db.session.commit()
    current_app.logger.info(f"Removed membership promo {promo_id} from cart {cart.id}")

    return {"success": True, "message": "Membership promo has been removed", "cart": cart.as_api()}


# ---- admin -----------------------------------------------------------------

def create_promo(data: dict) -> MembershipPromo:
    name = (data.get("name") or "").strip()
    discount_type = data.get("discount_type") or "percentage"
    start_date = parse_iso8601(data.get("start_date"), "start_date")
    end_date = parse_iso8601(data.get("end_date"), "end_date")

    if not name:
        raise InvalidDataError("name is required")
    if not start_date or not end_date:
        raise InvalidDataError("start_date and end_date are required")
    if end_date <= start_date:
        raise InvalidDataError("end_date must be after start_date")
    if discount_type not in DISCOUNT_TYPES:
        raise InvalidDataError("discount_type must be 'percentage' or 'fixed'")

    promo = MembershipPromo(
        name=name,
        description=data.get("description"),
        start_date=start_date,
        end_date=end_date,
        status=data.get("status") or "active",
        discount_type=discount_type,
        discount_value=float(data.get("discount_value") or 0),
        minimum_purchase=data.get("minimum_purchase"),
    )
    db.session.add(promo)
    db.session.commit()
    current_app.logger.info(f"Membership promo created: {promo.id} ({promo.name})")
    return promo


def list_promos(status=None):
    q = MembershipPromo.query
    if status:
        q = q.filter(MembershipPromo.status == status)
    return q.order_by(MembershipPromo.start_date.desc(), MembershipPromo.id.desc()).all()


def get_promo(promo_id) -> MembershipPromo:
    promo = db.session.get(MembershipPromo, promo_id)
    if not promo:
        raise NotFoundError(f"Membership promo with id {promo_id} not found")
    return promo
