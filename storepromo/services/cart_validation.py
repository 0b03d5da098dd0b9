# storepromo/services/cart_validation.py
"""
Cart integrity check for special pricing.

PWP reward items are re-checked against their rule and the current cart
value (which never counts PWP items), bulk-priced items against their tier
minimum. With ``auto_fix`` the offending items are removed or re-priced;
a failure while fixing one item is logged and that item is left alone.
"""
from flask import current_app

from ..extensions import db
from ..model import PWPRule
from ..utils.money import format_minor
from . import cart_store, catalog, discounts
from .pricing import cart_value_excluding_pwp, get_applicable_bulk_tier, get_base_price

PWP_INELIGIBLE = "pwp_ineligible"
TRIGGER_PRODUCT_REMOVED = "trigger_product_removed"
BULK_BELOW_MINIMUM = "bulk_quantity_below_minimum"


def _issue(item, issue_type, message, action, current=None, required=None):
    issue = {
        "item_id": item.id,
        "variant_id": item.variant_id,
        "issue_type": issue_type,
        "message": message,
        "recommended_action": action,
    }
    if current is not None:
        issue["current_value"] = current
    if required is not None:
        issue["required_value"] = required
    return issue


def trigger_product_in_cart(items, product_id) -> bool:
    for other in items:
        if other.is_pwp_item or not other.variant_id:
            continue
        if catalog.product_id_for_variant(other.variant_id) == product_id:
            return True
    return False


def _check_pwp_item(item, items, cart_value):
    """Returns (issue, message) for an ineligible PWP item, or (None, None)."""
    meta = item.meta or {}
    rule_name = meta.get("pwp_rule_name") or ""
    try:
        rule = db.session.get(PWPRule, meta.get("pwp_rule_id"))
        if not rule or rule.status != "active":
            msg = f'PWP offer "{rule_name}" is no longer active'
            return _issue(item, PWP_INELIGIBLE, msg, "remove_item"), msg

        if rule.trigger_type == "cart_value":
            minimum = rule.trigger_cart_value or 0
            if cart_value < minimum:
                msg = (
                    f"Cart value ({format_minor(cart_value)}) is below the minimum "
                    f'({format_minor(minimum)}) required for "{rule.name}" offer'
                )
                return _issue(item, PWP_INELIGIBLE, msg, "remove_item", cart_value, minimum), msg

        elif rule.trigger_type == "product":
            if not trigger_product_in_cart(items, rule.trigger_product_id):
                msg = f'Trigger product for "{rule.name}" offer is no longer in cart'
                return _issue(item, TRIGGER_PRODUCT_REMOVED, msg, "remove_item"), msg
    except Exception as e:
        current_app.logger.warning(f"PWP rule check failed for item {item.id}: {e}")
        msg = f'PWP offer "{rule_name}" could not be verified'
        return _issue(item, PWP_INELIGIBLE, msg, "remove_item"), msg
    return None, None


def _reprice_bulk_item(cart, item, below_minimum: bool):
    """Move the item to the tier its quantity earns now; returns a fix entry or None."""
    prices = catalog.list_prices(item.variant_id)
    tier = get_applicable_bulk_tier(item.quantity, prices, cart.currency_code)
    old_price = item.unit_price

    if tier:
        if not below_minimum and tier["amount"] == old_price:
            return None
        meta = dict(item.meta or {})
        meta.update(bulk_min_quantity=tier["min_quantity"], bulk_tier_price=tier["amount"])
        cart_store.update_line_item(item, unit_price=tier["amount"], metadata=meta)
        label = "Adjusted to applicable" if below_minimum else "Upgraded to better"
        return {
            "item_id": item.id,
            "action": "price_reverted",
            "old_price": old_price,
            "new_price": tier["amount"],
            "message": f"{label} bulk tier (min qty: {tier['min_quantity']})",
        }

    if not below_minimum:
        return None

    base = get_base_price(prices, cart.currency_code)
    if base is None:
        return None
    meta = dict(item.meta or {})
    meta.update(is_bulk_price=False, bulk_min_quantity=None, bulk_tier_price=None)
    cart_store.update_line_item(item, unit_price=base, metadata=meta)
    return {
        "item_id": item.id,
        "action": "price_reverted",
        "old_price": old_price,
        "new_price": base,
        "message": "Reverted to regular price (quantity below bulk threshold)",
    }


def _run_fix(cart_id, item_id, fix):
    """Run one per-item fix inside a SAVEPOINT; a failure only loses that item."""
    try:
        with db.session.begin_nested():
            return fix()
    except Exception as e:
        current_app.logger.warning(f"Failed to fix item {item_id} in cart {cart_id}: {e}")
        return None


def check_special_pricing(cart, auto_fix: bool = False):
    """
    Walk the cart's PWP and bulk-priced items. Returns (issues, fixes,
    unresolved) where ``unresolved`` holds the issues no fix cleared.
    Flushes only; the caller commits.
    """
    items = list(cart.items)
    issues, fixes, unresolved = [], [], []
    removed = set()

    cart_value = cart_value_excluding_pwp(items)

    for item in items:
        if not item.is_pwp_item or not (item.meta or {}).get("pwp_rule_id"):
            continue
        issue, message = _check_pwp_item(item, items, cart_value)
        if not issue:
            continue
        issues.append(issue)
        fix = None
        if auto_fix:
            def remove(item=item, message=message):
                cart_store.delete_line_items(cart, [item.id])
                return {"item_id": item.id, "action": "removed", "message": f"Removed PWP item: {message}"}

            fix = _run_fix(cart.id, item.id, remove)
            if fix:
                removed.add(item.id)
                fixes.append(fix)
                current_app.logger.info(f"Auto-removed ineligible PWP item {item.id} from cart {cart.id}")
        if not fix:
            unresolved.append(issue)

    for item in items:
        if item.id in removed or item.is_pwp_item or not item.is_bulk_price:
            continue
        minimum = (item.meta or {}).get("bulk_min_quantity") or 1
        quantity = item.quantity or 0
        below = quantity < minimum

        issue = None
        if below:
            issue = _issue(
                item,
                BULK_BELOW_MINIMUM,
                f"Quantity ({quantity}) is below the minimum ({minimum}) required for bulk pricing",
                "revert_to_regular_price",
                quantity,
                minimum,
            )
            issues.append(issue)

        fix = None
        if auto_fix and item.variant_id:
            fix = _run_fix(cart.id, item.id, lambda item=item, below=below: _reprice_bulk_item(cart, item, below))
            if fix:
                fixes.append(fix)
                current_app.logger.info(f"Auto-adjusted bulk pricing for item {item.id} in cart {cart.id}")
        if issue and not fix:
            unresolved.append(issue)

    return issues, fixes, unresolved


def validate_cart(cart_id, auto_fix: bool = False) -> dict:
    cart = cart_store.retrieve_cart(cart_id)
    issues, fixes, unresolved = check_special_pricing(cart, auto_fix)

    if auto_fix and fixes:
        discounts.rebalance(cart)
        db.session.commit()
        cart = cart_store.retrieve_cart(cart.id, refresh=True)

    result = {
        "is_valid": not unresolved,
        "issues": unresolved if auto_fix else issues,
        "fixes_applied": fixes,
        "cart_value_excluding_pwp": cart_value_excluding_pwp(cart.items),
    }
    if auto_fix:
        result["cart"] = cart.as_api()
    return result


def reconcile_cart(cart) -> list:
    """Auto-fix special pricing and rebalance cart-level discounts after a cart change; flushes only."""
    _, fixes, _ = check_special_pricing(cart, auto_fix=True)
    discounts.rebalance(cart)
    return fixes
