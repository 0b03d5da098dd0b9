# ------ storepromo/model/__init__.py ------

from .customer import Customer
from .membership import Membership, MembershipPromo, TierConfig
from .product import Product, ProductVariant, Price
from .cart import Cart, LineItem, LineItemAdjustment, PricingReason
from .promo import Coupon, PWPRule
from .points import PointsConfig, PointsBalance, PointsTransaction
from .order import Order, OrderItem

__all__ = [
    "Customer",
    "Membership",
    "MembershipPromo",
    "TierConfig",
    "Product",
    "ProductVariant",
    "Price",
    "Cart",
    "LineItem",
    "LineItemAdjustment",
    "PricingReason",
    "Coupon",
    "PWPRule",
    "PointsConfig",
    "PointsBalance",
    "PointsTransaction",
    "Order",
    "OrderItem",
]
