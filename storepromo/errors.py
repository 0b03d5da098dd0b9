# storepromo/errors.py
from flask import jsonify, current_app
from sqlalchemy.orm.exc import StaleDataError

from .utils.api import api_error


class StoreError(Exception):
    """Base for every error the API turns into a structured response."""
    status_code = 500
    kind = "unexpected_state"

    def __init__(self, message, data=None):
        super().__init__(message)
        self.message = message
        self.data = data


class NotFoundError(StoreError):
    status_code = 404
    kind = "not_found"


class InvalidDataError(StoreError):
    status_code = 400
    kind = "invalid_data"


class UnauthorizedError(StoreError):
    status_code = 401
    kind = "unauthorized"


class NotAllowedError(StoreError):
    status_code = 403
    kind = "not_allowed"


class ConflictError(StoreError):
    status_code = 409
    kind = "conflict"


class UnexpectedStateError(StoreError):
    status_code = 500
    kind = "unexpected_state"


def register_error_handlers(app):
    @app.errorhandler(StoreError)
    def handle_store_error(e):
        r = jsonify(api_error(e.message, {"type": e.kind, **(e.data or {})}))
        r.status_code = e.status_code
        return r

    @app.errorhandler(StaleDataError)
    def handle_stale_cart(e):
        current_app.logger.warning(f"Concurrent cart update rejected: {e}")
        r = jsonify(api_error("Cart was modified by another request, please retry", {"type": ConflictError.kind}))
        r.status_code = ConflictError.status_code
        return r
