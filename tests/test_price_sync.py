"""Price sync: re-pricing against the catalog, PWP pruning and the loyalty tier discount."""
from datetime import datetime, timedelta

import pytest

from storepromo.services.price_sync import sync_prices


@pytest.fixture
def bulk_variant(make_variant):
    return make_variant("Paper", prices=[(1000, None, None), (800, 5, None)])


def test_quantity_reaching_tier_gets_bulk_price(make_cart, bulk_variant):
    cart = make_cart(lines=[(1000, 6, {}, bulk_variant)])
    result = sync_prices(cart.id)

    [change] = result["changes"]
    assert change["type"] == "price_decreased"
    item = result["cart"]["items"][0]
    assert item["unit_price"] == 800
    assert item["metadata"]["is_bulk_price"] is True
    assert item["metadata"]["original_unit_price"] == 1000
    assert result["summary"] == {"items_removed": 0, "items_updated": 1, "has_changes": True}


def test_variant_discount_applied(make_cart, make_variant):
    variant = make_variant("Lamp", prices=[(2000, None, None)], discount_type="percentage", discount_value=10)
    cart = make_cart(lines=[(2000, 1, {}, variant)])
    item = sync_prices(cart.id)["cart"]["items"][0]
    assert item["unit_price"] == 1800
    assert item["metadata"]["variant_discount_amount"] == 200
    assert item["pricing_reason"] == "variant_discount"


def test_stale_price_increases(make_cart, make_variant):
    variant = make_variant("Lamp", prices=[(2500, None, None)])
    cart = make_cart(lines=[(2000, 1, {}, variant)])
    [change] = sync_prices(cart.id)["changes"]
    assert change["type"] == "price_increased"


def test_up_to_date_cart_has_no_changes(make_cart, bulk_variant):
    cart = make_cart(lines=[(1000, 2, {}, bulk_variant)])
    result = sync_prices(cart.id)
    assert result["changes"] == []
    assert result["summary"]["has_changes"] is False


def test_expired_pwp_item_is_removed(make_cart, make_variant, make_pwp_rule):
    reward = make_variant("Mug", prices=[(2000, None, None)])
    rule = make_pwp_rule(reward.product_id, trigger_cart_value=1000, ends_at=datetime.utcnow() - timedelta(days=1))
    cart = make_cart(lines=[(5000, 1, {}, None), (2000, 1, {"is_pwp_item": True, "pwp_rule_id": rule.id}, reward)])

    result = sync_prices(cart.id)
    assert [c["type"] for c in result["changes"]] == ["pwp_removed"]
    assert result["changes"][0]["message"] == "PWP offer has expired"
    assert len(result["cart"]["items"]) == 1


def test_tier_discount_for_member(make_customer, make_tier, make_cart, bulk_variant):
    make_tier("gold", 2, discount=5.0)
    member = make_customer("member@example.com", member=True, tier_slug="gold")
    cart = make_cart(lines=[(1000, 2, {}, bulk_variant)], customer=member)

    result = sync_prices(cart.id, member.id)
    assert result["tier_info"]["discount_amount"] == 100
    assert result["cart"]["metadata"]["tier_slug"] == "gold"
    assert result["totals"]["discounts"]["tier"] == 100
    assert result["totals"]["total"] == 1900


def test_tier_discount_cleared_for_other_customer(make_customer, make_tier, make_cart, bulk_variant):
    make_tier("gold", 2, discount=5.0)
    member = make_customer("member@example.com", member=True, tier_slug="gold")
    cart = make_cart(lines=[(1000, 2, {}, bulk_variant)], customer=member,
                     metadata={"tier_discount_amount": 100, "tier_slug": "gold"})

    result = sync_prices(cart.id, customer_id=None)
    assert result["tier_info"] is None
    assert result["cart"]["metadata"]["tier_discount_amount"] is None
    assert result["totals"]["total"] == 2000


def test_sync_route(client, make_cart, bulk_variant):
    cart = make_cart(lines=[(1000, 5, {}, bulk_variant)])
    resp = client.post(f"/store/carts/{cart.id}/sync-prices")
    assert resp.status_code == 200
    assert resp.get_json()["data"]["cart"]["items"][0]["unit_price"] == 800
