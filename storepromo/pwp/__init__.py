from flask import Blueprint

bp = Blueprint("pwp", __name__, url_prefix="/store/pwp")

from . import routes  # noqa: E402,F401
