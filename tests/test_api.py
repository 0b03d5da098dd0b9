"""Auth, cart and admin endpoints end to end."""
import pytest


@pytest.fixture
def admin(make_customer):
    return make_customer("admin@example.com", role="admin")


def _data(resp):
    return resp.get_json()["data"]


def test_health(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.get_json()["message"] == "API running"


def test_first_registration_becomes_admin(client):
    first = client.post("/auth/register", json={"email": "Boss@Example.com", "password": "secret123"})
    second = client.post("/auth/register", json={"email": "shopper@example.com", "password": "secret123"})
    assert first.status_code == 201
    assert _data(first)["customer"]["role"] == "admin"
    assert _data(first)["customer"]["email"] == "boss@example.com"
    assert _data(second)["customer"]["role"] == "customer"


def test_login_and_me(client):
    client.post("/auth/register", json={"email": "a@example.com", "password": "secret123"})
    bad = client.post("/auth/login", json={"email": "a@example.com", "password": "wrong"})
    assert bad.status_code == 401

    token = _data(client.post("/auth/login", json={"email": "a@example.com", "password": "secret123"}))["access_token"]
    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert _data(me)["customer"]["email"] == "a@example.com"


def test_cart_line_item_lifecycle(client, make_variant):
    variant = make_variant("Paper", prices=[(1000, None, None), (800, 5, None)], inventory=10)
    cart_id = _data(client.post("/store/carts", json={}))["cart"]["id"]

    added = client.post(f"/store/carts/{cart_id}/line-items", json={"variant_id": variant.id, "quantity": 5})
    assert added.status_code == 201
    item = _data(added)["item"]
    assert item["unit_price"] == 800
    assert item["pricing_reason"] == "bulk"

    updated = client.post(f"/store/carts/{cart_id}/line-items/{item['id']}", json={"quantity": 2})
    assert _data(updated)["item"]["quantity"] == 2
    assert _data(updated)["item"]["unit_price"] == 1000
    assert _data(updated)["item"]["pricing_reason"] == "regular"

    too_many = client.post(f"/store/carts/{cart_id}/line-items/{item['id']}", json={"quantity": 50})
    assert too_many.status_code == 400

    deleted = client.delete(f"/store/carts/{cart_id}/line-items/{item['id']}")
    assert _data(deleted)["cart"]["items"] == []


def test_add_line_item_validates_input(client, make_variant):
    variant = make_variant()
    cart_id = _data(client.post("/store/carts", json={}))["cart"]["id"]
    assert client.post(f"/store/carts/{cart_id}/line-items", json={"variant_id": variant.id}).status_code == 400
    assert client.post(f"/store/carts/{cart_id}/line-items",
                       json={"variant_id": variant.id, "quantity": 0}).status_code == 400
    assert client.post(f"/store/carts/{cart_id}/line-items",
                       json={"variant_id": 999, "quantity": 1}).status_code == 404


def test_missing_cart_is_404(client):
    resp = client.get("/store/carts/12345")
    assert resp.status_code == 404
    assert resp.get_json()["data"]["type"] == "not_found"


def test_admin_creates_coupon(client, auth_header, admin):
    resp = client.post("/admin/coupons", json={"code": "welcome10", "type": "percentage", "value": 10},
                       headers=auth_header(admin))
    assert resp.status_code == 201
    assert _data(resp)["coupon"]["code"] == "WELCOME10"

    dup = client.post("/admin/coupons", json={"code": "WELCOME10", "value": 10}, headers=auth_header(admin))
    assert dup.status_code == 400


def test_admin_rejects_bad_dates(client, auth_header, admin):
    resp = client.post("/admin/membership-promos", json={
        "name": "Spring", "start_date": "not-a-date", "end_date": "2030-01-01T00:00:00Z",
    }, headers=auth_header(admin))
    assert resp.status_code == 400


def test_admin_membership_upsert_assigns_default_tier(client, auth_header, admin, make_customer, make_tier):
    make_tier("classic", 1, is_default=True)
    customer = make_customer("member@example.com")

    created = client.post("/admin/memberships", json={"customer_id": customer.id}, headers=auth_header(admin))
    assert created.status_code == 201
    assert _data(created)["membership"]["tier_slug"] == "classic"

    again = client.post("/admin/memberships", json={"customer_id": customer.id, "status": "inactive"},
                        headers=auth_header(admin))
    assert again.status_code == 200
    assert _data(again)["membership"]["status"] == "inactive"


def test_admin_routes_need_token(client):
    assert client.get("/admin/coupons").status_code == 401


def test_quantity_change_reprices_before_checkout(client, make_variant):
    variant = make_variant("Paper", prices=[(1000, None, None), (800, 5, None)], inventory=20)
    cart_id = _data(client.post("/store/carts", json={}))["cart"]["id"]
    item = _data(client.post(f"/store/carts/{cart_id}/line-items", json={"variant_id": variant.id, "quantity": 2}))["item"]
    assert item["unit_price"] == 1000

    raised = _data(client.post(f"/store/carts/{cart_id}/line-items/{item['id']}", json={"quantity": 6}))["item"]
    assert (raised["unit_price"], raised["metadata"]["bulk_min_quantity"]) == (800, 5)

    client.post(f"/store/carts/{cart_id}/line-items/{item['id']}", json={"quantity": 2})
    order = _data(client.post("/store/orders/complete", json={"cart_id": cart_id}))["order"]
    assert order["money"]["subtotal"] == 2000
    assert order["items"][0]["unit_price"] == 1000
