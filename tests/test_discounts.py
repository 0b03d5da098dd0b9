"""Cart-level discounts follow the items after the cart changes."""
from storepromo.extensions import db
from storepromo.model.cart import COUPON_METADATA_KEYS
from storepromo.services import cart_store, coupon_service, discounts, membership_promo_service, points_service
from storepromo.services.pricing import cart_totals


def _codes(cart):
    return [a.code for item in cart.items for a in item.adjustments]


def test_percentage_coupon_follows_quantity_change(make_cart, make_coupon):
    make_coupon("SUMMER20", "percentage", 20)
    cart = make_cart(lines=[(5000, 2, {}, None)])
    coupon_service.apply_coupon("SUMMER20", cart.id)

    cart_store.update_line_item(cart.items[0], quantity=1)
    discounts.rebalance(cart)
    assert cart.meta["applied_coupon_discount"] == 1000
    assert cart_totals(cart)["total"] == 4000


def test_coupon_moves_to_first_item_when_anchor_goes(make_cart, make_coupon):
    make_coupon("TENOFF", "fixed", 1000)
    cart = make_cart(lines=[(3000, 1, {}, None), (4000, 1, {}, None)])
    coupon_service.apply_coupon("TENOFF", cart.id)

    cart_store.delete_line_items(cart, [cart.items[0].id])
    discounts.rebalance(cart)
    assert [(a.code, a.amount) for a in cart.items[0].adjustments] == [("COUPON_TENOFF", 1000)]
    assert cart_totals(cart)["total"] == 3000


def test_promo_below_minimum_is_dropped(make_customer, make_cart, make_promo):
    member = make_customer("member@example.com", member=True)
    make_promo("Big basket", "fixed", 500, minimum_purchase=5000)
    cart = make_cart(lines=[(3000, 1, {}, None), (3000, 1, {}, None)], customer=member)
    assert membership_promo_service.apply_best_promo(member.id, cart.id)["success"] is True

    cart_store.delete_line_items(cart, [cart.items[1].id])
    discounts.rebalance(cart)
    assert cart.meta["applied_membership_promo_id"] is None
    assert _codes(cart) == []
    assert cart_totals(cart)["total"] == 3000


def test_points_that_no_longer_fit_are_dropped(make_customer, make_cart):
    member = make_customer("member@example.com", member=True)
    balance = points_service.initialize_balance(member.id)
    balance.balance = 5000
    db.session.commit()
    points_service.update_config({"redemption_rate": 1})
    cart = make_cart(lines=[(4000, 1, {}, None), (1000, 1, {}, None)], customer=member)
    points_service.apply_points_to_cart(member.id, cart.id, 3000)

    cart_store.delete_line_items(cart, [cart.items[0].id])
    discounts.rebalance(cart)
    assert cart.meta["points_to_redeem"] is None
    assert cart_totals(cart)["discounts"]["points"] == 0


def test_stacked_discounts_are_capped_at_subtotal(make_cart, make_coupon):
    cart = make_cart(lines=[(2000, 1, {}, None)], metadata={"tier_discount_percentage": 10, "tier_discount_amount": 200})
    make_coupon("ALMOST", "fixed", 1900)
    coupon_service.apply_coupon("ALMOST", cart.id)
    assert cart_totals(cart)["discount_total"] == 2000

    discounts.rebalance(cart)
    totals = cart_totals(cart)
    assert (totals["discounts"]["coupon"], totals["discounts"]["tier"]) == (1900, 100)
    assert totals["total"] == 0


def test_emptied_cart_clears_discount_keys(make_cart, make_coupon):
    make_coupon("SUMMER20")
    cart = make_cart(lines=[(5000, 1, {}, None)])
    coupon_service.apply_coupon("SUMMER20", cart.id)

    cart_store.delete_line_items(cart, [cart.items[0].id])
    discounts.rebalance(cart)
    for key in COUPON_METADATA_KEYS:
        assert cart.meta[key] is None
