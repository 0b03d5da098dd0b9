# storepromo/cart/routes.py
from flask import request, current_app

from . import bp
from ..extensions import db
from ..errors import InvalidDataError, NotFoundError
from ..services import cart_store, catalog
from ..services.cart_validation import reconcile_cart, validate_cart
from ..services.price_sync import sync_prices
from ..utils.api import ok
from ..utils.decorators import current_customer_id, handles_store_errors


def _int_field(data, name, minimum=None):
    value = data.get(name)
    if value is None or isinstance(value, bool):
        raise InvalidDataError(f"{name} is required")
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise InvalidDataError(f"{name} must be an integer")
    if minimum is not None and value < minimum:
        raise InvalidDataError(f"{name} must be >= {minimum}")
    return value


def _find_item(cart, item_id):
    for item in cart.items:
        if item.id == item_id:
            return item
    raise NotFoundError(f"Line item with id {item_id} not found in cart {cart.id}")


@bp.post("/carts")
@handles_store_errors("Failed to create cart")
def create_cart():
    data = request.get_json(silent=True) or {}
    cart = cart_store.create_cart(current_customer_id(optional=True), data.get("currency_code"))
    db.session.commit()
    return ok("Cart created", {"cart": cart.as_api()}, 201)


@bp.get("/carts/<int:cart_id>")
@handles_store_errors("Failed to retrieve cart")
def get_cart(cart_id):
    return ok("OK", {"cart": cart_store.retrieve_cart(cart_id).as_api()})


@bp.post("/carts/<int:cart_id>/line-items")
@handles_store_errors("Failed to add line item")
def add_line_item(cart_id):
    data = request.get_json(silent=True) or {}
    variant_id = _int_field(data, "variant_id")
    quantity = _int_field(data, "quantity", minimum=1)

    cart = cart_store.retrieve_cart(cart_id)
    variant = catalog.get_variant(variant_id)
    if quantity > catalog.available_inventory(variant.id):
        raise InvalidDataError("Requested quantity exceeds available inventory")

    priced = catalog.price_for_quantity(variant, quantity, cart.currency_code)
    if priced is None:
        raise InvalidDataError(f"No {cart.currency_code.upper()} price for variant {variant.id}")
    price, flags, base = priced

    item = cart_store.add_line_item(
        cart,
        variant_id=variant.id,
        title=variant.product.title if not variant.title else f"{variant.product.title} - {variant.title}",
        quantity=quantity,
        unit_price=price,
        metadata=catalog.with_pricing_flags({}, flags, base),
    )
    reconcile_cart(cart)
    db.session.commit()
    current_app.logger.info(f"Added variant {variant.id} x{quantity} to cart {cart.id} at {price}")
    return ok("Item added", {"item": item.as_api(), "cart": cart.as_api()}, 201)


@bp.post("/carts/<int:cart_id>/line-items/<int:item_id>")
@handles_store_errors("Failed to update line item")
def update_line_item(cart_id, item_id):
    data = request.get_json(silent=True) or {}
    quantity = _int_field(data, "quantity", minimum=1)

    cart = cart_store.retrieve_cart(cart_id)
    item = _find_item(cart, item_id)
    if item.is_pwp_item and quantity != 1:
        raise InvalidDataError("PWP items are limited to a quantity of 1")
    if item.variant_id and quantity > catalog.available_inventory(item.variant_id):
        raise InvalidDataError("Requested quantity exceeds available inventory")

    priced = None
    if item.variant_id and not item.is_pwp_item:
        priced = catalog.price_for_quantity(catalog.get_variant(item.variant_id), quantity, cart.currency_code)
    if priced:
        price, flags, base = priced
        cart_store.update_line_item(
            item,
            quantity=quantity,
            unit_price=price,
            metadata=catalog.with_pricing_flags(item.meta, flags, base),
        )
    else:
        cart_store.update_line_item(item, quantity=quantity)
    reconcile_cart(cart)
    db.session.commit()
    current_app.logger.info(f"Updated item {item.id} in cart {cart.id} to x{quantity} at {item.unit_price}")
    return ok("Item updated", {"item": item.as_api(), "cart": cart.as_api()})


@bp.delete("/carts/<int:cart_id>/line-items/<int:item_id>")
@handles_store_errors("Failed to delete line item")
def delete_line_item(cart_id, item_id):
    cart = cart_store.retrieve_cart(cart_id)
    _find_item(cart, item_id)
    cart_store.delete_line_items(cart, [item_id])
    reconcile_cart(cart)
    db.session.commit()
    return ok("Item removed", {"cart": cart.as_api()})


@bp.get("/cart/<int:cart_id>/validate")
@handles_store_errors("Cart validation failed")
def validate(cart_id):
    auto_fix = (request.args.get("auto_fix") or "").lower() == "true"
    return ok("Cart validated", validate_cart(cart_id, auto_fix=auto_fix))


@bp.post("/carts/<int:cart_id>/sync-prices")
@handles_store_errors("Failed to sync prices")
def sync(cart_id):
    return ok("Cart prices synced", sync_prices(cart_id, current_customer_id(optional=True)))
