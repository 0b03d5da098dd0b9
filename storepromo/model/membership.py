# storepromo/model/membership.py
from sqlalchemy.sql import func
from ..extensions import db


class Membership(db.Model):
    __tablename__ = "membership"

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), unique=True, nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)  # active | inactive
    tier_slug = db.Column(db.String(64), nullable=True)

    # rolling activity used for tier evaluation
    order_count = db.Column(db.Integer, nullable=False, default=0)
    total_spend = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    customer = db.relationship("Customer", back_populates="membership")

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def as_api(self):
        return {
            "customer_id": self.customer_id,
            "status": self.status,
            "tier_slug": self.tier_slug,
            "order_count": self.order_count,
            "total_spend": self.total_spend,
        }


class MembershipPromo(db.Model):
    __tablename__ = "membership_promo"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)  # active | inactive
    discount_type = db.Column(db.String(16), nullable=False, default="percentage")  # percentage | fixed
    discount_value = db.Column(db.Float, nullable=False, default=0)
    minimum_purchase = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, server_default=func.now())

    def as_api(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "status": self.status,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "minimum_purchase": self.minimum_purchase,
        }


class TierConfig(db.Model):
    __tablename__ = "tier_config"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(64), unique=True, nullable=False, index=True)
    rank = db.Column(db.Integer, nullable=False, default=0)
    order_threshold = db.Column(db.Integer, nullable=False, default=0)
    spend_threshold = db.Column(db.Integer, nullable=False, default=0)
    points_multiplier = db.Column(db.Float, nullable=False, default=1.0)
    discount_percentage = db.Column(db.Float, nullable=False, default=0.0)
    is_default = db.Column(db.Boolean, default=False)
    is_active = db.Column(db.Boolean, default=True, index=True)

    def as_api(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "rank": self.rank,
            "order_threshold": self.order_threshold,
            "spend_threshold": self.spend_threshold,
            "points_multiplier": self.points_multiplier,
            "discount_percentage": self.discount_percentage,
            "is_default": self.is_default,
            "is_active": self.is_active,
        }
