# --- storepromo/model/promo.py ---

from ..extensions import db
from sqlalchemy.sql import func

class Coupon(db.Model):
    __tablename__ = "coupon"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), unique=True, nullable=False, index=True)  # stored uppercase
    name = db.Column(db.String(255), nullable=False, default="")

    # "percentage" (value is %) or "fixed" (value in minor units)
    type = db.Column(db.String(16), nullable=False, default="percentage")
    value = db.Column(db.Float, nullable=False, default=0.0)
    currency_code = db.Column(db.String(3), nullable=False, default="sgd")

    status = db.Column(db.String(16), nullable=False, default="active", index=True)  # active | inactive

    # None on either bound = unbounded
    starts_at = db.Column(db.DateTime, nullable=True)
    ends_at = db.Column(db.DateTime, nullable=True)

    # None = unlimited; usage_count moves on order completion only
    usage_limit = db.Column(db.Integer, nullable=True)
    usage_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    def as_api(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "type": self.type,
            "value": self.value,
            "currency_code": self.currency_code,
            "status": self.status,
            "starts_at": self.starts_at.isoformat() if self.starts_at else None,
            "ends_at": self.ends_at.isoformat() if self.ends_at else None,
            "usage_limit": self.usage_limit,
            "usage_count": self.usage_count,
        }


class PWPRule(db.Model):
    __tablename__ = "pwp_rule"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    rule_description = db.Column(db.Text, nullable=False, default="")

    # "cart_value" | "product"
    trigger_type = db.Column(db.String(16), nullable=False, default="cart_value")
    trigger_cart_value = db.Column(db.Integer, nullable=True)
    trigger_product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=True)

    reward_product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=True)
    reward_type = db.Column(db.String(16), nullable=False, default="percentage")  # percentage | fixed
    reward_value = db.Column(db.Float, nullable=False, default=0.0)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)
    starts_at = db.Column(db.DateTime, nullable=True)
    ends_at = db.Column(db.DateTime, nullable=True)
    usage_limit = db.Column(db.Integer, nullable=True)
    redemption_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, server_default=func.now())

    def as_api(self):
        return {
            "id": self.id,
            "name": self.name,
            "rule_description": self.rule_description,
            "trigger_type": self.trigger_type,
            "trigger_cart_value": self.trigger_cart_value,
            "trigger_product_id": self.trigger_product_id,
            "reward_product_id": self.reward_product_id,
            "reward_type": self.reward_type,
            "reward_value": self.reward_value,
            "status": self.status,
            "starts_at": self.starts_at.isoformat() if self.starts_at else None,
            "ends_at": self.ends_at.isoformat() if self.ends_at else None,
            "usage_limit": self.usage_limit,
            "redemption_count": self.redemption_count,
        }
