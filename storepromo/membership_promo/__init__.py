from flask import Blueprint

bp = Blueprint("membership_promo", __name__, url_prefix="/store/membership-promo")

from . import routes  # noqa: E402,F401
