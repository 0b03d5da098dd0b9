# storepromo/model/points.py
from datetime import datetime
from ..extensions import db


class PointsConfig(db.Model):
    __tablename__ = "points_config"

    id = db.Column(db.Integer, primary_key=True)
    earning_type = db.Column(db.String(16), nullable=False, default="percentage")  # percentage | per_currency
    earning_rate = db.Column(db.Float, nullable=False, default=5.0)
    # points x rate = discount in minor units
    redemption_rate = db.Column(db.Float, nullable=False, default=0.01)
    is_enabled = db.Column(db.Boolean, nullable=False, default=True)
    min_redemption_points = db.Column(db.Integer, nullable=False, default=0)
    max_redemption_points = db.Column(db.Integer, nullable=True)

    def as_api(self):
        return {
            "earning_type": self.earning_type,
            "earning_rate": self.earning_rate,
            "redemption_rate": self.redemption_rate,
            "is_enabled": self.is_enabled,
            "min_redemption_points": self.min_redemption_points,
            "max_redemption_points": self.max_redemption_points,
        }


class PointsBalance(db.Model):
    __tablename__ = "points_balance"

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), unique=True, nullable=False, index=True)
    balance = db.Column(db.Integer, nullable=False, default=0)
    total_earned = db.Column(db.Integer, nullable=False, default=0)
    total_redeemed = db.Column(db.Integer, nullable=False, default=0)

    def as_api(self):
        return {
            "customer_id": self.customer_id,
            "balance": self.balance,
            "total_earned": self.total_earned,
            "total_redeemed": self.total_redeemed,
        }


class PointsTransaction(db.Model):
    """Append-only ledger row; balance_after is the post-operation snapshot."""
    __tablename__ = "points_transaction"

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=False, index=True)
    # earned | redeemed | admin_added | admin_removed
    # return_deducted | return_restored | cancel_deducted | cancel_restored
    type = db.Column(db.String(24), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)
    order_id = db.Column(db.Integer, nullable=True, index=True)
    reason = db.Column(db.String(255))
    balance_after = db.Column(db.Integer, nullable=False)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def as_api(self):
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "type": self.type,
            "amount": self.amount,
            "order_id": self.order_id,
            "reason": self.reason,
            "balance_after": self.balance_after,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
