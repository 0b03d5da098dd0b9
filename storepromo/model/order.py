from datetime import datetime
from ..extensions import db

class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), unique=True, index=True)  # e.g., "ORD-20251022-0001"
    status = db.Column(db.String(20), default="completed", index=True)  # completed | cancelled

    cart_id = db.Column(db.Integer, index=True)  # audit link, not a FK
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=True, index=True)
    currency_code = db.Column(db.String(3), nullable=False, default="sgd")

    # Money snapshot (minor units)
    subtotal = db.Column(db.Integer, nullable=False, default=0)
    discount_total = db.Column(db.Integer, nullable=False, default=0)
    total = db.Column(db.Integer, nullable=False, default=0)

    # discount bookkeeping copied from the cart
    meta = db.Column("metadata", db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    items = db.relationship(
        "OrderItem",
        backref="order",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    def as_api(self):
        return {
            "id": self.id,
            "code": self.code,
            "status": self.status,
            "cart_id": self.cart_id,
            "customer_id": self.customer_id,
            "currency_code": self.currency_code,
            "money": {
                "subtotal": self.subtotal,
                "discount_total": self.discount_total,
                "total": self.total,
            },
            "metadata": dict(self.meta or {}),
            "items": [i.as_api() for i in self.items],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    variant_id = db.Column(db.Integer, index=True)
    title = db.Column(db.String(255))
    unit_price = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False)
    adjustment_total = db.Column(db.Integer, nullable=False, default=0)
    line_total = db.Column(db.Integer, nullable=False, default=0)
    meta = db.Column("metadata", db.JSON, nullable=False, default=dict)

    def as_api(self):
        return {
            "variant_id": self.variant_id,
            "title": self.title,
            "unit_price": self.unit_price,
            "quantity": self.quantity,
            "adjustment_total": self.adjustment_total,
            "line_total": self.line_total,
            "metadata": dict(self.meta or {}),
        }
