# storepromo/coupon/routes.py
from flask import request

from . import bp
from ..errors import InvalidDataError
from ..services import coupon_service
from ..utils.api import ok
from ..utils.decorators import handles_store_errors


def _body():
    data = request.get_json(silent=True) or {}
    if not data.get("cart_id"):
        raise InvalidDataError("Missing required field: cart_id")
    return data


@bp.post("/validate")
@handles_store_errors("Failed to validate coupon")
def validate():
    data = _body()
    result = coupon_service.validate_coupon(data.get("code"), data["cart_id"])
    return ok("Coupon is valid" if result["valid"] else result["message"], result)


@bp.post("/apply")
@handles_store_errors("Failed to apply coupon")
def apply():
    data = _body()
    return ok("Coupon applied", coupon_service.apply_coupon(data.get("code"), data["cart_id"]))


@bp.post("/remove")
@handles_store_errors("Failed to remove coupon")
def remove():
    data = _body()
    result = coupon_service.remove_coupon(data["cart_id"])
    return ok(result["message"], result)
