# storepromo/admin/routes.py
from flask import request, current_app

from . import bp
from ..extensions import db
from ..errors import InvalidDataError, NotFoundError
from ..model import Customer, Membership
from ..services import (
    coupon_service,
    membership_promo_service,
    order_service,
    points_service,
    pwp_service,
    tier_service,
)
from ..utils.api import ok
from ..utils.decorators import current_customer_id, handles_store_errors, role_at_least

admin_only = role_at_least("admin", "Admin role required")


def _json():
    return request.get_json(silent=True) or {}


# ---- coupons ---------------------------------------------------------------

@bp.post("/coupons")
@admin_only
@handles_store_errors("Failed to create coupon")
def create_coupon():
    coupon = coupon_service.create_coupon(_json())
    return ok("Coupon created", {"coupon": coupon.as_api()}, 201)


@bp.get("/coupons")
@admin_only
def list_coupons():
    rows = coupon_service.list_coupons(request.args.get("status"))
    return ok("OK", [c.as_api() for c in rows])


@bp.post("/coupons/<int:coupon_id>/status")
@admin_only
@handles_store_errors("Failed to update coupon status")
def set_coupon_status(coupon_id):
    coupon = coupon_service.set_coupon_status(coupon_id, _json().get("status"))
    return ok("Coupon status updated", {"coupon": coupon.as_api()})


# ---- PWP rules -------------------------------------------------------------

@bp.post("/pwp-rules")
@admin_only
@handles_store_errors("Failed to create PWP rule")
def create_pwp_rule():
    rule = pwp_service.create_rule(_json())
    return ok("PWP rule created", {"rule": rule.as_api()}, 201)


@bp.get("/pwp-rules")
@admin_only
def list_pwp_rules():
    return ok("OK", [r.as_api() for r in pwp_service.list_rules(request.args.get("status"))])


# ---- membership promos -----------------------------------------------------

@bp.post("/membership-promos")
@admin_only
@handles_store_errors("Failed to create membership promo")
def create_membership_promo():
    promo = membership_promo_service.create_promo(_json())
    return ok("Membership promo created", {"promo": promo.as_api()}, 201)


@bp.get("/membership-promos")
@admin_only
def list_membership_promos():
    rows = membership_promo_service.list_promos(request.args.get("status"))
    return ok("OK", [p.as_api() for p in rows])


@bp.get("/membership-promos/<int:promo_id>")
@admin_only
@handles_store_errors("Failed to load membership promo")
def get_membership_promo(promo_id):
    return ok("OK", {"promo": membership_promo_service.get_promo(promo_id).as_api()})


# ---- memberships & tiers ---------------------------------------------------

@bp.post("/memberships")
@admin_only
@handles_store_errors("Failed to save membership")
def upsert_membership():
    data = _json()
    customer = db.session.get(Customer, data.get("customer_id"))
    if not customer:
        raise NotFoundError(f"Customer with id {data.get('customer_id')} not found")
    status = data.get("status") or "active"
    if status not in ("active", "inactive"):
        raise InvalidDataError("status must be 'active' or 'inactive'")

    membership = Membership.query.filter_by(customer_id=customer.id).first()
    created = membership is None
    if created:
        membership = Membership(customer_id=customer.id, order_count=0, total_spend=0)
        db.session.add(membership)
    membership.status = status

    if data.get("tier_slug"):
        tier = tier_service.tier_by_slug(data["tier_slug"])
        if not tier:
            raise NotFoundError(f"Tier {data['tier_slug']} not found")
        membership.tier_slug = tier.slug
    elif created:
        tier = tier_service.default_tier()
        membership.tier_slug = tier.slug if tier else None

    points_service.initialize_balance(customer.id, commit=False)
    db.session.commit()
    current_app.logger.info(f"Membership saved for customer {customer.id} ({membership.status}, {membership.tier_slug})")
    return ok("Membership saved", {"membership": membership.as_api()}, 201 if created else 200)


@bp.post("/tiers")
@admin_only
@handles_store_errors("Failed to create tier")
def create_tier():
    return ok("Tier created", {"tier": tier_service.create_tier(_json()).as_api()}, 201)


@bp.get("/tiers")
@admin_only
def list_tiers():
    return ok("OK", [t.as_api() for t in tier_service.all_tiers()])


@bp.post("/tiers/<int:tier_id>")
@admin_only
@handles_store_errors("Failed to update tier")
def update_tier(tier_id):
    return ok("Tier updated", {"tier": tier_service.update_tier(tier_id, _json()).as_api()})


# ---- points ----------------------------------------------------------------

@bp.get("/points/config")
@admin_only
@handles_store_errors("Failed to load points config")
def get_points_config():
    config = points_service.get_config()
    db.session.commit()
    return ok("OK", {"config": config.as_api()})


@bp.post("/points/config")
@admin_only
@handles_store_errors("Failed to update points config")
def update_points_config():
    return ok("Points config updated", {"config": points_service.update_config(_json()).as_api()})


@bp.post("/points/adjust")
@admin_only
@handles_store_errors("Failed to adjust points")
def adjust_points():
    data = _json()
    if not data.get("customer_id") or data.get("amount") is None:
        raise InvalidDataError("customer_id and amount are required")
    if not db.session.get(Customer, data["customer_id"]):
        raise NotFoundError(f"Customer with id {data['customer_id']} not found")
    try:
        amount = int(data["amount"])
    except (TypeError, ValueError):
        raise InvalidDataError("amount must be an integer")
    result = points_service.admin_adjust_points(
        data["customer_id"], amount, data.get("reason"), current_customer_id()
    )
    return ok("Points adjusted", result)


@bp.get("/points/stats")
@admin_only
def points_stats():
    return ok("OK", points_service.stats())


# ---- orders ----------------------------------------------------------------

@bp.post("/orders/<int:order_id>/cancel")
@admin_only
@handles_store_errors("Failed to cancel order")
def cancel_order(order_id):
    return ok("Order cancelled", order_service.cancel_order(order_id))


@bp.post("/orders/<int:order_id>/returns")
@admin_only
@handles_store_errors("Failed to process return")
def process_return(order_id):
    data = _json()
    result = order_service.process_return(
        order_id,
        data.get("return_id"),
        points_to_deduct=data.get("points_to_deduct"),
        points_to_restore=data.get("points_to_restore"),
    )
    return ok("Return processed", result)
