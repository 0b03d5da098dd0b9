# storepromo/services/points_service.py
"""
Points ledger.

Every movement updates the balance row first and then appends a
PointsTransaction stamped with the resulting balance, so the ledger is
always a trailing snapshot of the balance. Redemption value is
``points x redemption_rate`` in minor currency units (0.01 means 100 points
buy one minor unit).

Ledger functions commit by default; callers composing several movements
into one unit of work pass ``commit=False`` and commit themselves.
"""
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..errors import InvalidDataError, NotAllowedError, NotFoundError
from ..model import PointsBalance, PointsConfig, PointsTransaction
from ..model.cart import POINTS_ADJUSTMENT_CODE, POINTS_METADATA_KEYS
from ..utils.money import D, floor_int, format_minor, round_minor
from . import cart_store
from .membership_promo_service import is_active_member
from .pricing import compute_subtotal

EARNING_TYPES = {"percentage", "per_currency"}
_CONFIG_FIELDS = (
    "earning_type", "earning_rate", "redemption_rate", "is_enabled",
    "min_redemption_points", "max_redemption_points",
)


def _done(commit: bool):
    if commit:
        db.session.commit()
    else:
        db.session.flush()


# ---- configuration ---------------------------------------------------------

def get_config() -> PointsConfig:
    """The single config row, created with defaults on first use."""
    config = PointsConfig.query.order_by(PointsConfig.id.asc()).first()
    if not config:
        config = PointsConfig(
            earning_type="percentage",
            earning_rate=5,
            redemption_rate=0.01,
            is_enabled=True,
            min_redemption_points=0,
        )
        db.session.add(config)
        db.session.flush()
    return config


def update_config(data: dict) -> PointsConfig:
    config = get_config()
    if "earning_type" in data and data["earning_type"] not in EARNING_TYPES:
        raise InvalidDataError("earning_type must be 'percentage' or 'per_currency'")
    for field in ("earning_rate", "redemption_rate"):
        if field in data and (data[field] is None or float(data[field]) < 0):
            raise InvalidDataError(f"{field} must be >= 0")

    for field in _CONFIG_FIELDS:
        if field in data:
            setattr(config, field, data[field])
    db.session.commit()
    current_app.logger.info("Points configuration updated")
    return config


# ---- balances --------------------------------------------------------------

def get_balance(customer_id) -> PointsBalance | None:
    return PointsBalance.query.filter_by(customer_id=customer_id).first()


def initialize_balance(customer_id, commit: bool = True) -> PointsBalance:
    balance = get_balance(customer_id)
    if balance:
        current_app.logger.warning(f"Points balance already exists for customer {customer_id}")
        return balance
    balance = PointsBalance(customer_id=customer_id, balance=0, total_earned=0, total_redeemed=0)
    db.session.add(balance)
    _done(commit)
    current_app.logger.info(f"Points balance initialized for customer {customer_id}")
    return balance


def _balance_row(customer_id) -> PointsBalance:
    return get_balance(customer_id) or initialize_balance(customer_id, commit=False)


def _record(customer_id, type_, amount, balance_after, order_id=None, reason=None, created_by=None):
    tx = PointsTransaction(
        customer_id=customer_id,
        type=type_,
        amount=amount,
        order_id=order_id,
        reason=reason,
        balance_after=balance_after,
        created_by=created_by,
    )
    db.session.add(tx)
    return tx


def delete_balance(customer_id) -> dict:
    balance = get_balance(customer_id)
    if not balance:
        current_app.logger.warning(f"[POINTS] No points balance found for customer {customer_id}")
        return {"deleted": False}
    PointsTransaction.query.filter_by(customer_id=customer_id).delete()
    db.session.delete(balance)
    db.session.commit()
    current_app.logger.info(f"[POINTS] Points data deleted for customer {customer_id}")
    return {"deleted": True}


# ---- arithmetic ------------------------------------------------------------

def base_points_for(order_total: int, config: PointsConfig) -> Decimal:
    if config.earning_type == "per_currency":
        return D(order_total) / Decimal(100) * D(config.earning_rate)
    return D(order_total) * D(config.earning_rate) / Decimal(100)


def calculate_potential_earnings(order_total: int) -> int:
    config = get_config()
    if not config.is_enabled:
        return 0
    return floor_int(base_points_for(order_total, config))


def calculate_redemption_discount(points: int) -> int:
    config = get_config()
    return round_minor(D(points) * D(config.redemption_rate or 0.01))


def max_redeemable_points(customer_id, order_total: int) -> int:
    balance = get_balance(customer_id)
    if not balance:
        return 0
    rate = D(get_config().redemption_rate or 0.01)
    return max(0, min(balance.balance, floor_int(D(order_total) / rate)))


def validate_redemption(points: int, available: int, config: PointsConfig, order_total=None) -> str | None:
    """Why ``points`` cannot be redeemed, or None."""
    if points <= 0:
        return "Points to redeem must be greater than zero"
    if points > available:
        return "Insufficient points balance"
    if config.min_redemption_points and points < config.min_redemption_points:
        return f"Minimum redemption is {config.min_redemption_points} points"
    if config.max_redemption_points is not None and points > config.max_redemption_points:
        return f"Maximum redemption is {config.max_redemption_points} points"
    if order_total is not None:
        discount = round_minor(D(points) * D(config.redemption_rate))
        if discount > order_total:
            return "Points discount cannot exceed order total"
    return None


# ---- movements -------------------------------------------------------------

def earn_points(customer_id, order_id, order_total: int, multiplier: float = 1.0, commit: bool = True) -> dict:
    config = get_config()
    if not config.is_enabled:
        current_app.logger.info("Points system is disabled, skipping point award")
        return {"points_earned": 0, "new_balance": 0, "base_points": 0, "multiplier": 1}

    multiplier = multiplier or 1
    base = base_points_for(order_total, config)
    earned = floor_int(base * D(multiplier))
    if earned <= 0:
        current_app.logger.info(f"No points earned for order {order_id}")
        return {"points_earned": 0, "new_balance": 0, "base_points": 0, "multiplier": multiplier}

    balance = _balance_row(customer_id)
    balance.balance += earned
    balance.total_earned += earned
    reason = f"Earned from order {order_id}"
    if multiplier > 1:
        reason += f" ({multiplier}x tier bonus)"
    _record(customer_id, "earned", earned, balance.balance, order_id=order_id, reason=reason)
    _done(commit)

    current_app.logger.info(
        f"Customer {customer_id} earned {earned} points (base: {base}, multiplier: {multiplier}x) from order {order_id}"
    )
    return {
        "points_earned": earned,
        "new_balance": balance.balance,
        "base_points": floor_int(base),
        "multiplier": multiplier,
    }


def redeem_points(customer_id, points: int, order_id=None, reason=None, order_total=None, commit: bool = True) -> dict:
    config = get_config()
    if not config.is_enabled:
        raise NotAllowedError("Points system is currently disabled")
    balance = get_balance(customer_id)
    if not balance:
        raise NotFoundError("Customer has no points balance")

    points = int(points)
    problem = validate_redemption(points, balance.balance, config, order_total)
    if problem:
        raise InvalidDataError(problem)

    discount = round_minor(D(points) * D(config.redemption_rate))
    balance.balance -= points
    balance.total_redeemed += points
    _record(
        customer_id, "redeemed", -points, balance.balance,
        order_id=order_id, reason=reason or "Redeemed for discount",
    )
    _done(commit)

    current_app.logger.info(f"Customer {customer_id} redeemed {points} points for {format_minor(discount)} discount")
    return {"points_redeemed": points, "discount_amount": discount, "new_balance": balance.balance}


def admin_adjust_points(customer_id, amount: int, reason: str, admin_id) -> dict:
    if not reason or not str(reason).strip():
        raise InvalidDataError("reason is required")
    amount = int(amount)
    if amount == 0:
        raise InvalidDataError("amount must not be zero")

    balance = _balance_row(customer_id)
    new_balance = balance.balance + amount
    if new_balance < 0:
        raise InvalidDataError("Cannot adjust points below zero")

    balance.balance = new_balance
    _record(
        customer_id, "admin_added" if amount > 0 else "admin_removed", amount, new_balance,
        reason=reason, created_by=admin_id,
    )
    db.session.commit()
    current_app.logger.info(f"Admin {admin_id} adjusted points for customer {customer_id} by {amount}")
    return {"amount": amount, "new_balance": new_balance}


def _reverse(customer_id, order_id, points_to_deduct, points_to_restore, kind, label, commit):
    """
    Deduct earned points (capped at the balance) and restore redeemed points
    (unconditional). Each leg writes its own transaction.
    """
    balance = _balance_row(customer_id)
    current = balance.balance
    deducted = restored = 0

    if points_to_deduct and points_to_deduct > 0:
        deducted = min(int(points_to_deduct), current)
        if deducted > 0:
            current -= deducted
            _record(customer_id, f"{kind}_deducted", -deducted, current,
                    order_id=order_id, reason=f"Points deducted for {label}")
            current_app.logger.info(f"[POINTS] Deducted {deducted} points from customer {customer_id} for {label}")

    if points_to_restore and points_to_restore > 0:
        restored = int(points_to_restore)
        current += restored
        _record(customer_id, f"{kind}_restored", restored, current,
                order_id=order_id, reason=f"Points restored for {label}")
        current_app.logger.info(f"[POINTS] Restored {restored} points to customer {customer_id} for {label}")

    balance.balance = current
    balance.total_redeemed = max(0, balance.total_redeemed - restored)
    _done(commit)
    return {"points_deducted": deducted, "points_restored": restored, "new_balance": current}


def handle_return_points(customer_id, order_id, return_id, points_to_deduct, points_to_restore=0, commit=True) -> dict:
    current_app.logger.info(f"[POINTS] Processing return points for order {order_id}, return {return_id}")
    return _reverse(
        customer_id, order_id, points_to_deduct, points_to_restore,
        "return", f"return {return_id} (order {order_id})", commit,
    )


def handle_cancel_order_points(customer_id, order_id, points_to_deduct, points_to_restore=0, commit=True) -> dict:
    current_app.logger.info(f"[POINTS] Processing cancel order points for order {order_id}")
    return _reverse(
        customer_id, order_id, points_to_deduct, points_to_restore,
        "cancel", f"cancelled order {order_id}", commit,
    )


# ---- queries ---------------------------------------------------------------

def points_earned_from_order(customer_id, order_id) -> int:
    rows = PointsTransaction.query.filter_by(customer_id=customer_id, order_id=order_id, type="earned").all()
    return sum(int(t.amount) for t in rows)


def points_redeemed_on_order(customer_id, order_id) -> int:
    rows = PointsTransaction.query.filter_by(customer_id=customer_id, order_id=order_id, type="redeemed").all()
    return sum(abs(int(t.amount)) for t in rows)


def _reversed_on_order(customer_id, order_id, kinds) -> int:
    rows = PointsTransaction.query.filter(
        PointsTransaction.customer_id == customer_id,
        PointsTransaction.order_id == order_id,
        PointsTransaction.type.in_(kinds),
    ).all()
    return sum(abs(int(t.amount)) for t in rows)


def outstanding_order_points(customer_id, order_id) -> tuple[int, int]:
    """(earned points not yet taken back, redeemed points not yet restored) for one order."""
    earned = points_earned_from_order(customer_id, order_id) - _reversed_on_order(
        customer_id, order_id, ("return_deducted", "cancel_deducted"))
    redeemed = points_redeemed_on_order(customer_id, order_id) - _reversed_on_order(
        customer_id, order_id, ("return_restored", "cancel_restored"))
    return max(0, earned), max(0, redeemed)


def transaction_history(customer_id, limit: int = 50, offset: int = 0):
    q = PointsTransaction.query.filter_by(customer_id=customer_id)
    total = q.count()
    rows = (
        q.order_by(PointsTransaction.created_at.desc(), PointsTransaction.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total


def stats() -> dict:
    totals = db.session.query(
        db.func.coalesce(db.func.sum(PointsBalance.total_earned), 0),
        db.func.coalesce(db.func.sum(PointsBalance.total_redeemed), 0),
        db.func.coalesce(db.func.sum(PointsBalance.balance), 0),
    ).one()
    return {
        "total_points_issued": int(totals[0]),
        "total_points_redeemed": int(totals[1]),
        "total_points_outstanding": int(totals[2]),
    }


# ---- cart side -------------------------------------------------------------

def _require_member(customer_id, message="Membership required to use points"):
    if not is_active_member(customer_id):
        raise NotAllowedError(message)


def apply_points_to_cart(customer_id, cart_id, points) -> dict:
    if isinstance(points, bool) or not isinstance(points, (int, float)) or points <= 0:
        raise InvalidDataError("Invalid points_to_redeem: must be a positive number")
    points = int(points)
    _require_member(customer_id)

    cart = cart_store.retrieve_cart(cart_id)
    if cart.customer_id != customer_id:
        raise NotAllowedError("Cannot apply points to another customer's cart")
    if not cart.items:
        raise InvalidDataError("Cannot apply points to empty cart")
    if cart.metadata_value("points_to_redeem"):
        raise InvalidDataError("Points are already applied to this cart. Remove them first to apply again.")

    config = get_config()
    if not config.is_enabled:
        raise NotAllowedError("Points system is currently disabled")
    balance = get_balance(customer_id)
    subtotal = compute_subtotal(cart.items)
    problem = validate_redemption(points, balance.balance if balance else 0, config)
    if problem:
        raise InvalidDataError(problem)

    discount = calculate_redemption_discount(points)
    if discount > subtotal:
        raise InvalidDataError(
            f"Points discount ({format_minor(discount)}) cannot exceed cart subtotal ({format_minor(subtotal)})"
        )

    cart_store.add_line_item_adjustments([{
        "item": cart.items[0],
        "code": POINTS_ADJUSTMENT_CODE,
        "amount": discount,
        "description": f"Redeemed {points} points",
    }])
    cart_store.update_cart_metadata(cart, {"points_to_redeem": points, "points_discount_amount": discount})
    db.session.commit()
    current_app.logger.info(f"Applied {points} points - discount: {format_minor(discount)}, cart: {cart.id}")

    return {
        "cart": cart.as_api(),
        "points_applied": {
            "points": points,
            "discount_amount": discount,
            "discount_formatted": format_minor(discount),
        },
    }


def remove_points_from_cart(customer_id, cart_id) -> dict:
    cart = cart_store.retrieve_cart(cart_id)
    if cart.customer_id != customer_id:
        raise NotAllowedError("Cannot remove points from another customer's cart")
    if not cart.metadata_value("points_to_redeem"):
        return {"success": True, "message": "No points applied to this cart", "cart": cart.as_api()}

    cart_store.remove_adjustments_by_code(cart, POINTS_ADJUSTMENT_CODE)
    cart_store.update_cart_metadata(cart, {key: None for key in POINTS_METADATA_KEYS})
    db.session.commit()
    current_app.logger.info(f"Removed points redemption from cart {cart.id}")
    return {"success": True, "message": "Points removed from cart", "cart": cart.as_api()}


def calculate(customer_id, points_to_redeem=None, order_total=None) -> dict:
    """Preview of a redemption and/or the earnings of an order total."""
    _require_member(customer_id, "Membership required")
    response = {}

    if points_to_redeem is not None:
        balance = get_balance(customer_id)
        if not balance or balance.balance < int(points_to_redeem):
            raise InvalidDataError("Insufficient points balance")
        discount = calculate_redemption_discount(int(points_to_redeem))
        response["redemption"] = {
            "points": int(points_to_redeem),
            "discount_amount": discount,
            "discount_formatted": format_minor(discount),
        }

    if order_total is not None:
        response["earning"] = {
            "order_total": int(order_total),
            "points_earned": calculate_potential_earnings(int(order_total)),
        }

    if points_to_redeem and order_total:
        net = response["earning"]["points_earned"] - int(points_to_redeem)
        response["net_effect"] = {
            "points_change": net,
            "description": (
                f"You will gain {net} points from this order"
                if net >= 0
                else f"You will use {abs(net)} more points than you earn"
            ),
        }
    return response
