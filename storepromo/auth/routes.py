from flask import request
from werkzeug.security import generate_password_hash, check_password_hash
from flask_jwt_extended import create_access_token

from . import bp
from ..extensions import db
from ..model import Customer
from ..utils.api import ok, err
from ..utils.decorators import customer_required, _current_customer


@bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    name = (data.get("name") or "").strip()

    if not email:
        return err("Email required")
    if not password or len(password) < 6:
        return err("Password required, min 6 chars")
    if Customer.query.filter_by(email=email).first():
        return err("Email already registered", 409)

    # Bootstrap: very first account becomes admin
    is_first = db.session.query(Customer.id).count() == 0
    customer = Customer(
        email=email,
        name=name or None,
        password_hash=generate_password_hash(password),
        role="admin" if is_first else "customer",
    )
    db.session.add(customer)
    db.session.commit()

    token = create_access_token(identity=str(customer.id))
    return ok("Account created successfully", {"customer": customer.as_dict(), "access_token": token}, 201)


@bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        return err("Email and password are required")

    customer = Customer.query.filter_by(email=email).first()
    if not customer or not check_password_hash(customer.password_hash, password):
        return err("Invalid email or password", 401)

    token = create_access_token(identity=str(customer.id))
    return ok("Login successful", {"customer": customer.as_dict(), "access_token": token})


@bp.get("/me")
@customer_required
def me(uid):
    return ok("OK", {"customer": _current_customer().as_dict()})
