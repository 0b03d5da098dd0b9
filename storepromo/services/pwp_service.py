# storepromo/services/pwp_service.py
"""
Purchase-with-purchase offers.

A reward item is added at its original price and discounted through a
``PWP_<rule_id>`` adjustment, so cart values used for triggers can always
leave PWP items out.
"""
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..errors import InvalidDataError, NotFoundError
from ..model import PWPRule
from ..model.cart import PWP_ADJUSTMENT_PREFIX
from ..utils.dates import in_window, parse_iso8601
from ..utils.money import to_major_string
from . import cart_store, catalog
from .pricing import DISCOUNT_TYPES, cart_value_excluding_pwp, get_base_price, reward_discount

TRIGGER_TYPES = {"cart_value", "product"}


def _cart_product_ids(items) -> set:
    ids = set()
    for item in items:
        if not item.variant_id:
            continue
        pid = catalog.product_id_for_variant(item.variant_id)
        if pid:
            ids.add(pid)
    return ids


def _trigger_met(rule, cart_value, product_ids) -> bool:
    if rule.trigger_type == "cart_value":
        return bool(rule.trigger_cart_value) and cart_value >= rule.trigger_cart_value
    if rule.trigger_type == "product":
        return bool(rule.trigger_product_id) and rule.trigger_product_id in product_ids
    return False


def _exhausted(rule) -> bool:
    return bool(rule.usage_limit) and (rule.redemption_count or 0) >= rule.usage_limit


def _applied_rule_ids(items) -> set:
    return {
        (i.meta or {}).get("pwp_rule_id")
        for i in items
        if i.is_pwp_item and (i.meta or {}).get("pwp_rule_id")
    }


def _reward_offer(rule, currency_code):
    """Reward product view plus pricing and stock for the first variant."""
    product = catalog.get_product(rule.reward_product_id)
    variants, total_inventory = [], 0
    for v in product.variants:
        stock = catalog.available_inventory(v.id)
        total_inventory += stock
        variants.append({
            "id": v.id,
            "title": v.title or "",
            "sku": v.sku,
            "prices": [{"amount": p.amount, "currency_code": p.currency_code} for p in v.prices],
            "inventory_quantity": None if stock == float("inf") else stock,
        })

    original = discounted = None
    if product.variants:
        original = get_base_price(product.variants[0].prices, currency_code)
    if original is not None:
        discounted = original - reward_discount(original, rule.reward_type, rule.reward_value)

    view = {
        "id": product.id,
        "title": product.title,
        "thumbnail": product.thumbnail,
        "variants": variants,
    }
    return view, original, discounted, total_inventory


def check_pwp(cart_id) -> dict:
    cart = cart_store.retrieve_cart(cart_id)
    items = list(cart.items)
    cart_value = cart_value_excluding_pwp(items)
    product_ids = _cart_product_ids(items)
    applied = _applied_rule_ids(items)
    now = datetime.utcnow()

    offers = []
    for rule in PWPRule.query.filter_by(status="active").order_by(PWPRule.id.asc()).all():
        if not in_window(rule.starts_at, rule.ends_at, now) or _exhausted(rule):
            continue

        reward = original = discounted = None
        total_inventory = 0
        if rule.reward_product_id:
            try:
                reward, original, discounted, total_inventory = _reward_offer(rule, cart.currency_code)
            except Exception as e:
                current_app.logger.warning(f"Failed to retrieve reward product {rule.reward_product_id}: {e}")

        offers.append({
            "rule_id": rule.id,
            "name": rule.name,
            "description": rule.rule_description,
            "trigger_type": rule.trigger_type,
            "trigger_cart_value": rule.trigger_cart_value or None,
            "trigger_product_id": rule.trigger_product_id or None,
            "trigger_met": _trigger_met(rule, cart_value, product_ids),
            "reward_product_id": rule.reward_product_id,
            "reward_product": reward,
            "reward_type": rule.reward_type,
            "reward_value": rule.reward_value,
            "original_price": original,
            "discounted_price": discounted,
            "already_applied": rule.id in applied,
            "is_out_of_stock": total_inventory <= 0,
            "total_inventory": None if total_inventory == float("inf") else total_inventory,
        })

    offers.sort(key=lambda o: (
        not o["trigger_met"],
        -((o["original_price"] or 0) - (o["discounted_price"] or 0)),
    ))
    return {
        "success": True,
        "cart_value": cart_value,
        "currency_code": cart.currency_code,
        "eligible_offers": [o for o in offers if o["trigger_met"] and not o["already_applied"]],
        "all_offers": offers,
    }


def apply_pwp(cart_id, rule_id, variant_id) -> dict:
    if not cart_id or not rule_id or not variant_id:
        raise InvalidDataError("Missing required fields: cart_id, pwp_rule_id, and variant_id are required")
    cart = cart_store.retrieve_cart(cart_id)

    rule = db.session.get(PWPRule, rule_id)
    if not rule:
        raise NotFoundError(f"PWP rule with id {rule_id} not found")
    now = datetime.utcnow()
    if rule.status != "active":
        raise InvalidDataError("This PWP offer is no longer active")
    if rule.starts_at and rule.starts_at > now:
        raise InvalidDataError("This PWP offer has not started yet")
    if rule.ends_at and rule.ends_at < now:
        raise InvalidDataError("This PWP offer has expired")
    if _exhausted(rule):
        raise InvalidDataError("This PWP offer has reached its usage limit")

    items = list(cart.items)
    if rule.id in _applied_rule_ids(items):
        raise InvalidDataError("This PWP offer is already applied to your cart")

    if not _trigger_met(rule, cart_value_excluding_pwp(items), _cart_product_ids(items)):
        if rule.trigger_type == "cart_value":
            raise InvalidDataError(
                f"Cart value must be at least {to_major_string(rule.trigger_cart_value or 0)} to qualify for this offer"
            )
        raise InvalidDataError("You must have the trigger product in your cart to qualify for this offer")

    variant = catalog.get_variant(variant_id)
    if variant.product_id != rule.reward_product_id:
        raise InvalidDataError("Selected variant does not belong to the reward product")
    if catalog.available_inventory(variant.id) <= 0:
        raise InvalidDataError("Sorry, this PWP item is currently out of stock")

    original = get_base_price(catalog.list_prices(variant.id), cart.currency_code)
    if not original:
        raise InvalidDataError("No price found for the selected variant")
    discount = reward_discount(original, rule.reward_type, rule.reward_value)

    item = cart_store.add_line_item(
        cart,
        variant_id=variant.id,
        title=variant.product.title or "PWP Item",
        quantity=1,
        unit_price=original,
        metadata={
            "is_pwp_item": True,
            "pwp_rule_id": rule.id,
            "pwp_rule_name": rule.name,
            "pwp_original_price": original,
            "pwp_discount_amount": discount,
            "pwp_discount_type": rule.reward_type,
            "pwp_discount_value": rule.reward_value,
            "pwp_trigger_type": rule.trigger_type,
            "pwp_trigger_cart_value": rule.trigger_cart_value if rule.trigger_type == "cart_value" else None,
            "pwp_trigger_product_id": rule.trigger_product_id if rule.trigger_type == "product" else None,
        },
    )
    cart_store.add_line_item_adjustments([{
        "item": item,
        "code": f"{PWP_ADJUSTMENT_PREFIX}{rule.id}",
        "amount": discount,
        "description": f"PWP: {rule.name}",
    }])
    db.session.commit()
    current_app.logger.info(f"Applied PWP rule {rule.id} ({rule.name}) to cart {cart.id} - discount: {discount}")

    return {
        "success": True,
        "message": f'PWP offer "{rule.name}" applied successfully',
        "pwp_item": {
            "line_item_id": item.id,
            "variant_id": variant.id,
            "original_price": original,
            "discounted_price": original - discount,
            "discount_amount": discount,
            "rule_name": rule.name,
        },
        "cart": cart.as_api(),
    }


# ---- admin -----------------------------------------------------------------

def create_rule(data: dict) -> PWPRule:
    name = (data.get("name") or "").strip()
    trigger_type = data.get("trigger_type") or "cart_value"
    reward_type = data.get("reward_type") or "percentage"
    if not name:
        raise InvalidDataError("name is required")
    if trigger_type not in TRIGGER_TYPES:
        raise InvalidDataError("trigger_type must be 'cart_value' or 'product'")
    if reward_type not in DISCOUNT_TYPES:
        raise InvalidDataError("reward_type must be 'percentage' or 'fixed'")
    if trigger_type == "cart_value" and not data.get("trigger_cart_value"):
        raise InvalidDataError("trigger_cart_value is required for cart_value rules")
    if trigger_type == "product" and not data.get("trigger_product_id"):
        raise InvalidDataError("trigger_product_id is required for product rules")
    if not data.get("reward_product_id"):
        raise InvalidDataError("reward_product_id is required")
    catalog.get_product(data["reward_product_id"])

    rule = PWPRule(
        name=name,
        rule_description=data.get("rule_description") or "",
        trigger_type=trigger_type,
        trigger_cart_value=data.get("trigger_cart_value"),
        trigger_product_id=data.get("trigger_product_id"),
        reward_product_id=data["reward_product_id"],
        reward_type=reward_type,
        reward_value=float(data.get("reward_value") or 0),
        status=data.get("status") or "active",
        starts_at=parse_iso8601(data.get("starts_at"), "starts_at"),
        ends_at=parse_iso8601(data.get("ends_at"), "ends_at"),
        usage_limit=data.get("usage_limit"),
    )
    db.session.add(rule)
    db.session.commit()
    current_app.logger.info(f"PWP rule created: {rule.id} ({rule.name})")
    return rule


def list_rules(status=None):
    q = PWPRule.query
    if status:
        q = q.filter(PWPRule.status == status)
    return q.order_by(PWPRule.id.desc()).all()
