# storepromo/order/routes.py
from flask import request

from . import bp
from ..errors import InvalidDataError
from ..services import order_service
from ..utils.api import ok
from ..utils.decorators import current_customer_id, handles_store_errors


@bp.post("/complete")
@handles_store_errors("Failed to complete order")
def complete():
    data = request.get_json(silent=True) or {}
    if not data.get("cart_id"):
        raise InvalidDataError("Missing required field: cart_id")
    result = order_service.complete_order(data["cart_id"], current_customer_id(optional=True))
    return ok("Order completed", result, 201)
