# storepromo/model/product.py
from ..extensions import db
from sqlalchemy.sql import func

class Product(db.Model):
    __tablename__ = "product"
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False, index=True)
    slug = db.Column(db.String(255), index=True)
    thumbnail = db.Column(db.String(1024))
    status = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    variants = db.relationship(
        "ProductVariant",
        backref="product",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ProductVariant.id.asc()",
    )

    def as_api(self):
        return {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "thumbnail": self.thumbnail,
            "status": self.status,
            "variants": [v.as_api() for v in self.variants],
        }


class ProductVariant(db.Model):
    __tablename__ = "product_variant"
    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False, index=True)
    title = db.Column(db.String(255))
    sku = db.Column(db.String(64), unique=True, index=True)

    # simple per-variant markdown: "percentage" (value is %) | "fixed" (value in minor units)
    discount_type = db.Column(db.String(16), nullable=True)
    discount_value = db.Column(db.Float, nullable=True)

    # None = inventory not tracked
    inventory_quantity = db.Column(db.Integer, nullable=True)

    prices = db.relationship(
        "Price",
        backref="variant",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Price.id.asc()",
    )

    def as_api(self):
        return {
            "id": self.id,
            "title": self.title or "",
            "sku": self.sku,
            "prices": [p.as_api() for p in self.prices],
            "inventory_quantity": self.inventory_quantity,
        }


class Price(db.Model):
    """One price list entry; min_quantity > 1 makes it a bulk tier."""
    __tablename__ = "price"
    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variant.id"), nullable=False, index=True)
    currency_code = db.Column(db.String(3), nullable=False, default="sgd")
    amount = db.Column(db.Integer, nullable=False)
    min_quantity = db.Column(db.Integer, nullable=True)
    max_quantity = db.Column(db.Integer, nullable=True)

    def as_api(self):
        return {
            "amount": self.amount,
            "currency_code": self.currency_code,
            "min_quantity": self.min_quantity,
            "max_quantity": self.max_quantity,
        }
