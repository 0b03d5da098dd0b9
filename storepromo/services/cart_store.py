# storepromo/services/cart_store.py
"""
Cart persistence verbs used by the discount engine.

Each verb flushes so later reads in the same request see the change; the
operation that called them commits once at the end.
"""
from flask import current_app

from ..extensions import db
from ..errors import NotFoundError
from ..model import Cart, LineItem, LineItemAdjustment


def retrieve_cart(cart_id, *, refresh: bool = False) -> Cart:
    try:
        cart_id = int(cart_id)
    except (TypeError, ValueError):
        raise NotFoundError(f"Cart with id {cart_id} not found")
    cart = db.session.get(Cart, cart_id, populate_existing=refresh)
    if not cart:
        raise NotFoundError(f"Cart with id {cart_id} not found")
    return cart


def create_cart(customer_id=None, currency_code=None) -> Cart:
    cart = Cart(
        customer_id=customer_id,
        currency_code=(currency_code or current_app.config["STORE_DEFAULT_CURRENCY"]).lower(),
        meta={},
    )
    db.session.add(cart)
    db.session.flush()
    return cart


def add_line_item(cart: Cart, *, variant_id, title, quantity, unit_price, metadata=None) -> LineItem:
    item = LineItem(
        variant_id=variant_id,
        title=title,
        quantity=quantity,
        unit_price=unit_price,
        meta=dict(metadata or {}),
    )
    cart.items.append(item)
    db.session.flush()
    return item


def update_line_item(item: LineItem, *, unit_price=None, quantity=None, metadata=None) -> LineItem:
    if unit_price is not None:
        item.unit_price = unit_price
    if quantity is not None:
        item.quantity = quantity
    if metadata is not None:
        item.meta = dict(metadata)
    db.session.flush()
    return item


def delete_line_items(cart: Cart, item_ids) -> None:
    ids = set(item_ids)
    for item in [i for i in cart.items if i.id in ids]:
        cart.items.remove(item)
    db.session.flush()


def add_line_item_adjustments(adjustments) -> list[LineItemAdjustment]:
    """adjustments: iterable of {item, code, amount, description}"""
    rows = []
    for a in adjustments:
        row = LineItemAdjustment(code=a["code"], amount=int(a["amount"]), description=a.get("description"))
        a["item"].adjustments.append(row)
        rows.append(row)
    db.session.flush()
    return rows


def set_line_item_adjustments(item: LineItem, keep) -> None:
    """Replace the item's adjustment list with ``keep`` (rows already on the item)."""
    keep_ids = {a.id for a in keep}
    for adj in list(item.adjustments):
        if adj.id not in keep_ids:
            item.adjustments.remove(adj)
    db.session.flush()


def remove_adjustments_by_code(cart: Cart, code: str) -> int:
    """Drop every adjustment carrying ``code`` from the cart's items; returns how many went."""
    removed = 0
    for item in cart.items:
        remaining = [a for a in item.adjustments if a.code != code]
        if len(remaining) != len(item.adjustments):
            removed += len(item.adjustments) - len(remaining)
            set_line_item_adjustments(item, remaining)
    return removed


def update_cart_metadata(cart: Cart, changes: dict) -> Cart:
    """
    Merge ``changes`` into a fresh copy of the metadata bag. Assigning a new
    dict marks the row dirty so the optimistic version check runs.
    """
    metadata = dict(cart.meta or {})
    metadata.update(changes)
    cart.meta = metadata
    db.session.flush()
    return cart
