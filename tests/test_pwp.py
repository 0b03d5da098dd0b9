"""Purchase-with-purchase offers: eligibility listing and applying a reward item."""
import pytest

from storepromo.errors import InvalidDataError
from storepromo.services import pwp_service
from storepromo.services.pricing import cart_totals


@pytest.fixture
def reward(make_variant):
    return make_variant("Mug", prices=[(2000, None, None)], inventory=5)


def test_check_lists_eligible_offers_first(make_cart, make_pwp_rule, reward):
    high = make_pwp_rule(reward.product_id, trigger_cart_value=50000, name="Spend more")
    low = make_pwp_rule(reward.product_id, trigger_cart_value=3000, name="Easy deal")
    cart = make_cart(lines=[(5000, 1, {}, None)])

    result = pwp_service.check_pwp(cart.id)
    assert result["cart_value"] == 5000
    assert [o["rule_id"] for o in result["all_offers"]] == [low.id, high.id]
    assert [o["rule_id"] for o in result["eligible_offers"]] == [low.id]
    offer = result["eligible_offers"][0]
    assert (offer["original_price"], offer["discounted_price"]) == (2000, 1000)
    assert offer["total_inventory"] == 5


def test_apply_adds_reward_at_original_price(make_cart, make_pwp_rule, reward):
    rule = make_pwp_rule(reward.product_id, trigger_cart_value=3000)
    cart = make_cart(lines=[(5000, 1, {}, None)])

    result = pwp_service.apply_pwp(cart.id, rule.id, reward.id)
    assert result["pwp_item"]["discount_amount"] == 1000
    item = cart.items[-1]
    assert item.unit_price == 2000
    assert item.is_pwp_item
    assert [a.code for a in item.adjustments] == [f"PWP_{rule.id}"]

    totals = cart_totals(cart)
    assert totals["cart_value_excluding_pwp"] == 5000
    assert totals["total"] == 6000


def test_apply_twice_is_rejected(make_cart, make_pwp_rule, reward):
    rule = make_pwp_rule(reward.product_id, trigger_cart_value=3000)
    cart = make_cart(lines=[(5000, 1, {}, None)])
    pwp_service.apply_pwp(cart.id, rule.id, reward.id)
    with pytest.raises(InvalidDataError, match="already applied"):
        pwp_service.apply_pwp(cart.id, rule.id, reward.id)


def test_apply_below_threshold_is_rejected(make_cart, make_pwp_rule, reward):
    rule = make_pwp_rule(reward.product_id, trigger_cart_value=10000)
    cart = make_cart(lines=[(5000, 1, {}, None)])
    with pytest.raises(InvalidDataError, match="Cart value must be at least 100.00"):
        pwp_service.apply_pwp(cart.id, rule.id, reward.id)


def test_variant_must_belong_to_reward_product(make_cart, make_pwp_rule, make_variant, reward):
    rule = make_pwp_rule(reward.product_id, trigger_cart_value=1000)
    stranger = make_variant("Spoon", prices=[(500, None, None)])
    cart = make_cart(lines=[(5000, 1, {}, None)])
    with pytest.raises(InvalidDataError, match="does not belong"):
        pwp_service.apply_pwp(cart.id, rule.id, stranger.id)


def test_out_of_stock_reward(make_cart, make_pwp_rule, make_variant):
    empty = make_variant("Mug", prices=[(2000, None, None)], inventory=0)
    rule = make_pwp_rule(empty.product_id, trigger_cart_value=1000)
    cart = make_cart(lines=[(5000, 1, {}, None)])
    with pytest.raises(InvalidDataError, match="out of stock"):
        pwp_service.apply_pwp(cart.id, rule.id, empty.id)


def test_apply_route_missing_fields(client):
    resp = client.post("/store/pwp/apply", json={"cart_id": 1})
    assert resp.status_code == 400


def test_removing_the_qualifying_item_drops_the_reward(client, make_variant, make_pwp_rule, reward):
    rule = make_pwp_rule(reward.product_id, trigger_cart_value=3000)
    lamp = make_variant("Lamp", prices=[(5000, None, None)])
    cart_id = client.post("/store/carts", json={}).get_json()["data"]["cart"]["id"]
    added = client.post(f"/store/carts/{cart_id}/line-items", json={"variant_id": lamp.id, "quantity": 1})
    lamp_item_id = added.get_json()["data"]["item"]["id"]
    pwp_service.apply_pwp(cart_id, rule.id, reward.id)

    resp = client.delete(f"/store/carts/{cart_id}/line-items/{lamp_item_id}")
    assert resp.status_code == 200
    assert resp.get_json()["data"]["cart"]["items"] == []
