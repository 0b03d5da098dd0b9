# storepromo/pwp/routes.py
from flask import request

from . import bp
from ..errors import InvalidDataError
from ..services import pwp_service
from ..utils.api import ok
from ..utils.decorators import handles_store_errors


@bp.post("/check")
@handles_store_errors("Failed to check PWP eligibility")
def check():
    data = request.get_json(silent=True) or {}
    if not data.get("cart_id"):
        raise InvalidDataError("Missing required field: cart_id is required")
    return ok("OK", pwp_service.check_pwp(data["cart_id"]))


@bp.post("/apply")
@handles_store_errors("Failed to apply PWP")
def apply():
    data = request.get_json(silent=True) or {}
    result = pwp_service.apply_pwp(data.get("cart_id"), data.get("pwp_rule_id"), data.get("variant_id"))
    return ok(result["message"], result)
