# ------- storepromo/utils/decorators.py -------
from functools import wraps
from flask import current_app
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
from sqlalchemy.orm.exc import StaleDataError
from werkzeug.exceptions import HTTPException

from ..extensions import db
from ..errors import StoreError, ConflictError, UnauthorizedError, NotAllowedError, UnexpectedStateError
from ..model.customer import Customer

ROLE_LEVEL = {"customer": 1, "admin": 2}


def current_customer_id(optional: bool = False) -> int | None:
    """Customer id carried by the bearer token, or None when no token is sent."""
    verify_jwt_in_request(optional=optional)
    uid = get_jwt_identity()
    try:
        return int(uid) if uid is not None else None
    except (TypeError, ValueError):
        return None


def _current_customer():
    uid = current_customer_id()
    return db.session.get(Customer, uid) if uid else None


def customer_required(fn):
    """Resolve the customer before anything else; 401 short-circuits the handler."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        uid = current_customer_id(optional=True)
        if not uid:
            raise UnauthorizedError("Authentication required")
        return fn(uid, *args, **kwargs)
    return wrapper


def role_at_least(min_role: str, message: str | None = None):
    min_level = ROLE_LEVEL[min_role]
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            u = _current_customer()
            if not u:
                raise UnauthorizedError("Unauthorized")
            if ROLE_LEVEL.get(u.role, 0) < min_level:
                raise NotAllowedError(message or "Forbidden")
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def handles_store_errors(context: str):
    """
    Roll back on failure. Structured store errors pass through untouched,
    anything else is logged and re-raised as an unexpected-state error.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except (StoreError, HTTPException, JWTExtendedException, PyJWTError):
                db.session.rollback()
                raise
            except StaleDataError as e:
                db.session.rollback()
                raise ConflictError("Cart was modified by another request, please retry") from e
            except Exception as e:
                db.session.rollback()
                current_app.logger.error(f"{context}: {e}")
                raise UnexpectedStateError(f"{context}: {e}") from e
        return wrapper
    return decorator
