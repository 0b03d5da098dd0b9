from datetime import datetime, timedelta

import pytest
from flask_jwt_extended import create_access_token
from werkzeug.security import generate_password_hash

from storepromo import create_app
from storepromo.extensions import db
from storepromo.model import (
    Cart,
    Coupon,
    Customer,
    LineItem,
    Membership,
    MembershipPromo,
    Price,
    Product,
    ProductVariant,
    PWPRule,
    TierConfig,
)


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "JWT_SECRET_KEY": "test-secret-key-with-enough-length-for-hs256",
        "STORE_DEFAULT_CURRENCY": "sgd",
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


# -- Factories ----------------------------------------------------------------


@pytest.fixture
def make_customer(app):
    def _make(email="shopper@example.com", role="customer", member=False, tier_slug=None):
        customer = Customer(
            email=email,
            name=email.split("@")[0],
            password_hash=generate_password_hash("secret123"),
            role=role,
        )
        db.session.add(customer)
        db.session.flush()
        if member:
            db.session.add(Membership(customer_id=customer.id, status="active", tier_slug=tier_slug))
        db.session.commit()
        return customer
    return _make


@pytest.fixture
def auth_header(app):
    def _header(customer):
        return {"Authorization": f"Bearer {create_access_token(identity=str(customer.id))}"}
    return _header


@pytest.fixture
def make_variant(app):
    """Product with one variant; ``prices`` is a list of (amount, min_qty, max_qty)."""
    counter = {"n": 0}

    def _make(title="Widget", prices=((1000, None, None),), currency="sgd", inventory=None,
              discount_type=None, discount_value=None):
        counter["n"] += 1
        product = Product(title=title, slug=f"{title.lower()}-{counter['n']}")
        variant = ProductVariant(
            sku=f"SKU-{counter['n']}",
            title="Default",
            inventory_quantity=inventory,
            discount_type=discount_type,
            discount_value=discount_value,
        )
        for amount, min_qty, max_qty in prices:
            variant.prices.append(Price(
                currency_code=currency, amount=amount, min_quantity=min_qty, max_quantity=max_qty,
            ))
        product.variants.append(variant)
        db.session.add(product)
        db.session.commit()
        return variant
    return _make


@pytest.fixture
def make_cart(app):
    """Cart with raw line items: (unit_price, quantity, metadata, variant_or_None)."""
    def _make(lines=(), customer=None, metadata=None):
        cart = Cart(customer_id=customer.id if customer else None, currency_code="sgd", meta=dict(metadata or {}))
        for unit_price, quantity, meta, variant in lines:
            cart.items.append(LineItem(
                variant_id=variant.id if variant else None,
                title=variant.product.title if variant else "Item",
                unit_price=unit_price,
                quantity=quantity,
                meta=dict(meta or {}),
            ))
        db.session.add(cart)
        db.session.commit()
        return cart
    return _make


@pytest.fixture
def make_coupon(app):
    def _make(code="SUMMER20", type="percentage", value=20, **kwargs):
        coupon = Coupon(code=code, name=kwargs.pop("name", code.title()), type=type, value=value,
                        currency_code="sgd", **kwargs)
        db.session.add(coupon)
        db.session.commit()
        return coupon
    return _make


@pytest.fixture
def make_promo(app):
    def _make(name, discount_type="fixed", discount_value=500, minimum_purchase=None, **kwargs):
        now = datetime.utcnow()
        promo = MembershipPromo(
            name=name,
            start_date=kwargs.pop("start_date", now - timedelta(days=1)),
            end_date=kwargs.pop("end_date", now + timedelta(days=1)),
            status=kwargs.pop("status", "active"),
            discount_type=discount_type,
            discount_value=discount_value,
            minimum_purchase=minimum_purchase,
        )
        db.session.add(promo)
        db.session.commit()
        return promo
    return _make


@pytest.fixture
def make_pwp_rule(app):
    def _make(reward_product_id, trigger_type="cart_value", trigger_cart_value=5000, **kwargs):
        rule = PWPRule(
            name=kwargs.pop("name", "Add-on deal"),
            rule_description="",
            trigger_type=trigger_type,
            trigger_cart_value=trigger_cart_value if trigger_type == "cart_value" else None,
            reward_product_id=reward_product_id,
            reward_type=kwargs.pop("reward_type", "percentage"),
            reward_value=kwargs.pop("reward_value", 50),
            status=kwargs.pop("status", "active"),
            **kwargs,
        )
        db.session.add(rule)
        db.session.commit()
        return rule
    return _make


@pytest.fixture
def make_tier(app):
    def _make(slug, rank, order_threshold=0, spend_threshold=0, multiplier=1.0, discount=0.0, is_default=False):
        tier = TierConfig(
            name=slug.title(), slug=slug, rank=rank,
            order_threshold=order_threshold, spend_threshold=spend_threshold,
            points_multiplier=multiplier, discount_percentage=discount,
            is_default=is_default, is_active=True,
        )
        db.session.add(tier)
        db.session.commit()
        return tier
    return _make
