"""Cart validation: PWP eligibility and bulk tier minimums, with and without auto-fix."""
import pytest

from storepromo.services.cart_validation import (
    BULK_BELOW_MINIMUM,
    PWP_INELIGIBLE,
    TRIGGER_PRODUCT_REMOVED,
    validate_cart,
)


# -- Fixtures -----------------------------------------------------------------


@pytest.fixture
def bulk_variant(make_variant):
    return make_variant("Paper", prices=[(1000, None, None), (800, 5, 9), (700, 10, None)])


@pytest.fixture
def reward_variant(make_variant):
    return make_variant("Mug", prices=[(2000, None, None)])


def _pwp_meta(rule):
    return {
        "is_pwp_item": True,
        "pwp_rule_id": rule.id,
        "pwp_rule_name": rule.name,
        "pwp_original_price": 2000,
    }


def _bulk_meta(min_quantity, tier_price):
    return {"is_bulk_price": True, "bulk_min_quantity": min_quantity, "bulk_tier_price": tier_price,
            "original_unit_price": 1000}


# -- Bulk pricing -------------------------------------------------------------


def test_bulk_item_below_minimum_is_flagged(make_cart, bulk_variant):
    cart = make_cart(lines=[(800, 3, _bulk_meta(5, 800), bulk_variant)])
    result = validate_cart(cart.id)

    assert result["is_valid"] is False
    [issue] = result["issues"]
    assert issue["issue_type"] == BULK_BELOW_MINIMUM
    assert issue["current_value"] == 3
    assert issue["required_value"] == 5
    assert result["fixes_applied"] == []


def test_auto_fix_reverts_to_base_price(make_cart, bulk_variant):
    cart = make_cart(lines=[(800, 3, _bulk_meta(5, 800), bulk_variant)])
    result = validate_cart(cart.id, auto_fix=True)

    assert result["is_valid"] is True
    assert result["issues"] == []
    [fix] = result["fixes_applied"]
    assert (fix["action"], fix["old_price"], fix["new_price"]) == ("price_reverted", 800, 1000)

    item = result["cart"]["items"][0]
    assert item["unit_price"] == 1000
    assert item["metadata"]["is_bulk_price"] is False
    assert item["metadata"]["bulk_min_quantity"] is None


def test_auto_fix_moves_to_lower_tier(make_cart, bulk_variant):
    cart = make_cart(lines=[(700, 6, _bulk_meta(10, 700), bulk_variant)])
    result = validate_cart(cart.id, auto_fix=True)

    [fix] = result["fixes_applied"]
    assert fix["new_price"] == 800
    assert result["cart"]["items"][0]["metadata"]["bulk_min_quantity"] == 5


def test_auto_fix_upgrades_to_better_tier(make_cart, bulk_variant):
    cart = make_cart(lines=[(800, 12, _bulk_meta(5, 800), bulk_variant)])
    result = validate_cart(cart.id, auto_fix=True)

    [fix] = result["fixes_applied"]
    assert fix["new_price"] == 700
    assert "Upgraded" in fix["message"]


def test_valid_bulk_item_is_left_alone(make_cart, bulk_variant):
    cart = make_cart(lines=[(800, 6, _bulk_meta(5, 800), bulk_variant)])
    result = validate_cart(cart.id, auto_fix=True)
    assert result["is_valid"] is True
    assert result["fixes_applied"] == []


def test_unfixable_item_keeps_cart_invalid(make_cart, make_variant, bulk_variant):
    tier_only = make_variant("Ink", prices=[(800, 5, None)])
    cart = make_cart(lines=[
        (800, 3, _bulk_meta(5, 800), bulk_variant),
        (800, 3, _bulk_meta(5, 800), tier_only),
    ])
    result = validate_cart(cart.id, auto_fix=True)

    assert [f["new_price"] for f in result["fixes_applied"]] == [1000]
    assert result["is_valid"] is False
    [issue] = result["issues"]
    assert issue["variant_id"] == tier_only.id
    assert issue["issue_type"] == BULK_BELOW_MINIMUM


# -- PWP ----------------------------------------------------------------------


def test_pwp_below_cart_value_is_flagged(make_cart, make_pwp_rule, reward_variant):
    rule = make_pwp_rule(reward_variant.product_id, trigger_cart_value=5000)
    cart = make_cart(lines=[(3000, 1, {}, None), (1000, 1, _pwp_meta(rule), reward_variant)])

    result = validate_cart(cart.id)
    [issue] = result["issues"]
    assert issue["issue_type"] == PWP_INELIGIBLE
    assert issue["current_value"] == 3000
    assert issue["required_value"] == 5000
    assert result["cart_value_excluding_pwp"] == 3000


def test_pwp_item_does_not_count_towards_its_own_threshold(make_cart, make_pwp_rule, reward_variant):
    rule = make_pwp_rule(reward_variant.product_id, trigger_cart_value=5000)
    # 4000 + 1000 would reach 5000 only if the reward item counted
    cart = make_cart(lines=[(1000, 1, _pwp_meta(rule), reward_variant), (4000, 1, {}, None)])
    assert validate_cart(cart.id)["is_valid"] is False


def test_auto_fix_removes_ineligible_pwp_item(make_cart, make_pwp_rule, reward_variant):
    rule = make_pwp_rule(reward_variant.product_id, trigger_cart_value=5000)
    cart = make_cart(lines=[(3000, 1, {}, None), (1000, 1, _pwp_meta(rule), reward_variant)])

    result = validate_cart(cart.id, auto_fix=True)
    assert result["is_valid"] is True
    assert [f["action"] for f in result["fixes_applied"]] == ["removed"]
    assert len(result["cart"]["items"]) == 1


def test_inactive_rule_makes_item_ineligible(make_cart, make_pwp_rule, reward_variant):
    rule = make_pwp_rule(reward_variant.product_id, trigger_cart_value=100, status="inactive")
    cart = make_cart(lines=[(3000, 1, {}, None), (1000, 1, _pwp_meta(rule), reward_variant)])
    [issue] = validate_cart(cart.id)["issues"]
    assert issue["issue_type"] == PWP_INELIGIBLE


def test_product_trigger_removed(make_cart, make_pwp_rule, make_variant, reward_variant):
    trigger = make_variant("Printer", prices=[(20000, None, None)])
    other = make_variant("Pen", prices=[(300, None, None)])
    rule = make_pwp_rule(reward_variant.product_id, trigger_type="product",
                         trigger_product_id=trigger.product_id)

    with_trigger = make_cart(lines=[(20000, 1, {}, trigger), (1000, 1, _pwp_meta(rule), reward_variant)])
    assert validate_cart(with_trigger.id)["is_valid"] is True

    without = make_cart(lines=[(300, 1, {}, other), (1000, 1, _pwp_meta(rule), reward_variant)])
    [issue] = validate_cart(without.id)["issues"]
    assert issue["issue_type"] == TRIGGER_PRODUCT_REMOVED


# -- HTTP ---------------------------------------------------------------------


def test_validate_route(client, make_cart, bulk_variant):
    cart = make_cart(lines=[(800, 3, _bulk_meta(5, 800), bulk_variant)])
    resp = client.get(f"/store/cart/{cart.id}/validate?auto_fix=true")
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["is_valid"] is True
    assert data["cart"]["items"][0]["unit_price"] == 1000
