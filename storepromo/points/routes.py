# storepromo/points/routes.py
from flask import request

from . import bp
from ..errors import InvalidDataError
from ..services import points_service
from ..utils.api import ok
from ..utils.decorators import customer_required, handles_store_errors


def _optional_int(data, name):
    value = data.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise InvalidDataError(f"{name} must be a non-negative number")
    return int(value)


@bp.post("/cart/<int:cart_id>/apply-points")
@customer_required
@handles_store_errors("Failed to apply points")
def apply_points(uid, cart_id):
    data = request.get_json(silent=True) or {}
    result = points_service.apply_points_to_cart(uid, cart_id, data.get("points_to_redeem"))
    return ok("Points applied", result)


@bp.post("/cart/<int:cart_id>/remove-points")
@customer_required
@handles_store_errors("Failed to remove points")
def remove_points(uid, cart_id):
    result = points_service.remove_points_from_cart(uid, cart_id)
    return ok(result["message"], result)


@bp.post("/points/calculate")
@customer_required
@handles_store_errors("Failed to calculate points")
def calculate(uid):
    data = request.get_json(silent=True) or {}
    result = points_service.calculate(
        uid,
        points_to_redeem=_optional_int(data, "points_to_redeem"),
        order_total=_optional_int(data, "order_total"),
    )
    return ok("OK", result)


@bp.get("/points/balance")
@customer_required
@handles_store_errors("Failed to load points balance")
def balance(uid):
    row = points_service.get_balance(uid)
    config = points_service.get_config()
    return ok("OK", {
        "balance": row.as_api() if row else {"customer_id": uid, "balance": 0, "total_earned": 0, "total_redeemed": 0},
        "config": config.as_api(),
    })


@bp.get("/points/history")
@customer_required
@handles_store_errors("Failed to load points history")
def history(uid):
    limit = min(max(request.args.get("limit", default=50, type=int), 1), 200)
    offset = max(request.args.get("offset", default=0, type=int), 0)
    rows, total = points_service.transaction_history(uid, limit=limit, offset=offset)
    return ok("OK", {
        "transactions": [t.as_api() for t in rows],
        "count": total,
        "limit": limit,
        "offset": offset,
    })
