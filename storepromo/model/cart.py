# storepromo/model/cart.py
from __future__ import annotations
import enum
import uuid as _uuid
from dataclasses import dataclass, asdict
from sqlalchemy.sql import func
from ..extensions import db

# adjustment codes written on line items
COUPON_ADJUSTMENT_PREFIX = "COUPON_"
MEMBERSHIP_PROMO_ADJUSTMENT_PREFIX = "MEMBERSHIP_PROMO_"
PWP_ADJUSTMENT_PREFIX = "PWP_"
POINTS_ADJUSTMENT_CODE = "POINTS_REDEMPTION"

# cart metadata keys; cleared by writing None, never by deleting the key
COUPON_METADATA_KEYS = (
    "applied_coupon_code",
    "applied_coupon_id",
    "applied_coupon_name",
    "applied_coupon_type",
    "applied_coupon_value",
    "applied_coupon_discount",
    "applied_coupon_currency",
)
MEMBERSHIP_PROMO_METADATA_KEYS = (
    "applied_membership_promo_id",
    "applied_membership_promo_name",
    "applied_membership_promo_type",
    "applied_membership_promo_value",
    "applied_membership_promo_discount",
)
POINTS_METADATA_KEYS = ("points_to_redeem", "points_discount_amount")
TIER_METADATA_KEYS = ("tier_discount_percentage", "tier_discount_amount", "tier_slug", "tier_name")

# line item pricing flags rewritten whenever an item is re-priced
ITEM_PRICING_KEYS = (
    "is_bulk_price",
    "bulk_min_quantity",
    "bulk_tier_price",
    "is_variant_discount",
    "variant_discount_amount",
    "variant_discount_type",
)


class PricingReason(str, enum.Enum):
    REGULAR = "regular"
    BULK = "bulk"
    VARIANT_DISCOUNT = "variant_discount"
    PWP = "pwp"


@dataclass(frozen=True)
class AppliedCoupon:
    code: str
    id: int
    name: str | None
    type: str
    value: float
    discount: int
    currency: str | None


@dataclass(frozen=True)
class AppliedMembershipPromo:
    id: int
    name: str | None
    type: str
    value: float
    discount: int


@dataclass(frozen=True)
class AppliedPoints:
    points: int
    discount: int


@dataclass(frozen=True)
class AppliedDiscounts:
    coupon: AppliedCoupon | None = None
    membership_promo: AppliedMembershipPromo | None = None
    points: AppliedPoints | None = None

    def as_api(self):
        return {
            "coupon": asdict(self.coupon) if self.coupon else None,
            "membership_promo": asdict(self.membership_promo) if self.membership_promo else None,
            "points": asdict(self.points) if self.points else None,
        }


class Cart(db.Model):
    __tablename__ = "cart"

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, index=True, default=lambda: str(_uuid.uuid4()))
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=True, index=True)
    currency_code = db.Column(db.String(3), nullable=False, default="sgd")
    status = db.Column(db.String(16), default="active", index=True)  # active | completed
    meta = db.Column("metadata", db.JSON, nullable=False, default=dict)
    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    __mapper_args__ = {"version_id_col": version}

    items = db.relationship(
        "LineItem",
        backref="cart",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="LineItem.id.asc()",
    )

    def metadata_value(self, key, default=None):
        value = (self.meta or {}).get(key)
        return default if value is None else value

    def applied_discounts(self) -> AppliedDiscounts:
        m = self.meta or {}
        coupon = promo = points = None
        if m.get("applied_coupon_code"):
            coupon = AppliedCoupon(
                code=m["applied_coupon_code"],
                id=m.get("applied_coupon_id"),
                name=m.get("applied_coupon_name"),
                type=m.get("applied_coupon_type"),
                value=m.get("applied_coupon_value"),
                discount=int(m.get("applied_coupon_discount") or 0),
                currency=m.get("applied_coupon_currency"),
            )
        if m.get("applied_membership_promo_id"):
            promo = AppliedMembershipPromo(
                id=m["applied_membership_promo_id"],
                name=m.get("applied_membership_promo_name"),
                type=m.get("applied_membership_promo_type"),
                value=m.get("applied_membership_promo_value"),
                discount=int(m.get("applied_membership_promo_discount") or 0),
            )
        if m.get("points_to_redeem"):
            points = AppliedPoints(
                points=int(m["points_to_redeem"]),
                discount=int(m.get("points_discount_amount") or 0),
            )
        return AppliedDiscounts(coupon=coupon, membership_promo=promo, points=points)

    def as_api(self):
        from ..services.pricing import cart_totals

        return {
            "id": self.id,
            "uuid": self.uuid,
            "customer_id": self.customer_id,
            "currency_code": self.currency_code,
            "status": self.status,
            "items": [i.as_api() for i in self.items],
            "metadata": dict(self.meta or {}),
            "applied_discounts": self.applied_discounts().as_api(),
            "totals": cart_totals(self),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class LineItem(db.Model):
    __tablename__ = "line_item"

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("cart.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variant.id"), nullable=True, index=True)
    title = db.Column(db.String(255), nullable=False, default="")
    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Integer, nullable=False, default=0)
    meta = db.Column("metadata", db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    adjustments = db.relationship(
        "LineItemAdjustment",
        backref="item",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="LineItemAdjustment.id.asc()",
    )

    @property
    def is_pwp_item(self) -> bool:
        return bool((self.meta or {}).get("is_pwp_item"))

    @property
    def is_bulk_price(self) -> bool:
        return bool((self.meta or {}).get("is_bulk_price"))

    @property
    def pricing_reason(self) -> PricingReason:
        m = self.meta or {}
        if m.get("is_pwp_item"):
            return PricingReason.PWP
        if m.get("is_bulk_price"):
            return PricingReason.BULK
        if m.get("is_variant_discount"):
            return PricingReason.VARIANT_DISCOUNT
        return PricingReason.REGULAR

    def line_total(self) -> int:
        return int(self.unit_price or 0) * int(self.quantity or 0)

    def as_api(self):
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "title": self.title,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "line_total": self.line_total(),
            "pricing_reason": self.pricing_reason.value,
            "metadata": dict(self.meta or {}),
            "adjustments": [a.as_api() for a in self.adjustments],
        }


class LineItemAdjustment(db.Model):
    __tablename__ = "line_item_adjustment"

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("line_item.id", ondelete="CASCADE"), nullable=False, index=True)
    code = db.Column(db.String(128), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False, default=0)  # positive, subtracted from the total
    description = db.Column(db.String(255))

    def as_api(self):
        return {
            "id": self.id,
            "item_id": self.item_id,
            "code": self.code,
            "amount": self.amount,
            "description": self.description,
        }
