from flask import Blueprint

bp = Blueprint("coupon", __name__, url_prefix="/store/coupons")

from . import routes  # noqa: E402,F401
