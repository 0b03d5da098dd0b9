# storepromo/membership_promo/routes.py
from flask import request

from . import bp
from ..errors import InvalidDataError
from ..services import membership_promo_service
from ..utils.api import ok
from ..utils.decorators import customer_required, handles_store_errors


@bp.post("/apply")
@customer_required
@handles_store_errors("Failed to apply membership promo")
def apply(uid):
    data = request.get_json(silent=True) or {}
    result = membership_promo_service.apply_best_promo(uid, data.get("cart_id"))
    return ok("Membership promo applied" if result["success"] else result["message"], result)


@bp.post("/remove")
@customer_required
@handles_store_errors("Failed to remove membership promo")
def remove(uid):
    data = request.get_json(silent=True) or {}
    if not data.get("cart_id"):
        raise InvalidDataError("Missing required field: cart_id")
    result = membership_promo_service.remove_promo(data["cart_id"])
    return ok(result["message"], result)
