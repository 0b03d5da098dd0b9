# storepromo/services/catalog.py
from ..extensions import db
from ..errors import NotFoundError
from ..model import Product, ProductVariant, Price
from .pricing import get_applicable_bulk_tier, get_base_price, variant_discounted_price
from ..model.cart import ITEM_PRICING_KEYS


def get_variant(variant_id) -> ProductVariant:
    variant = db.session.get(ProductVariant, variant_id)
    if not variant:
        raise NotFoundError(f"Variant with id {variant_id} not found")
    return variant


def get_product(product_id) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product with id {product_id} not found")
    return product


def product_id_for_variant(variant_id) -> int | None:
    if variant_id is None:
        return None
    return db.session.query(ProductVariant.product_id).filter(ProductVariant.id == variant_id).scalar()


def list_prices(variant_id) -> list[Price]:
    return (
        Price.query.filter(Price.variant_id == variant_id)
        .order_by(Price.min_quantity.asc(), Price.id.asc())
        .all()
    )


def available_inventory(variant_id) -> float:
    """Units that can still be sold; untracked inventory counts as unlimited."""
    variant = db.session.get(ProductVariant, variant_id)
    if not variant or variant.inventory_quantity is None:
        return float("inf")
    return int(variant.inventory_quantity)


def price_for_quantity(variant: ProductVariant, quantity: int, currency_code: str):
    """
    Correct unit price for ``quantity`` with the metadata flags describing it.
    Bulk tier wins over a variant markdown, which wins over the base price.
    Returns (unit_price, flags, base_price) or None when the variant has no
    price in this currency.
    """
    prices = list_prices(variant.id)
    base = get_base_price(prices, currency_code)
    tier = get_applicable_bulk_tier(quantity, prices, currency_code)

    if tier:
        return tier["amount"], {
            "is_bulk_price": True,
            "bulk_min_quantity": tier["min_quantity"],
            "bulk_tier_price": tier["amount"],
        }, base

    if base is None:
        return None

    discounted = variant_discounted_price(base, variant.discount_type, variant.discount_value)
    if discounted < base:
        return discounted, {
            "is_variant_discount": True,
            "variant_discount_amount": base - discounted,
            "variant_discount_type": variant.discount_type,
        }, base

    return base, {}, base


def with_pricing_flags(metadata: dict, flags: dict, base_price) -> dict:
    """Copy of ``metadata`` with every pricing flag replaced by ``flags``."""
    out = {k: v for k, v in (metadata or {}).items() if k not in ITEM_PRICING_KEYS}
    if base_price is not None:
        out["original_unit_price"] = base_price
    out.update(flags)
    return out
