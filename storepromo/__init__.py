# storepromo/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, jwt, cors, migrate
from .utils.api import ok


def create_app(config_overrides=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)
    Config.init_app(app)

    app.logger.setLevel(getattr(logging, str(app.config["LOG_LEVEL"]).upper(), logging.INFO))

    # Init extensions
    db.init_app(app)
    jwt.init_app(app)
    cors.init_app(app, resources={r"/*": {"origins": "*"}})
    migrate.init_app(app, db)

    from .errors import register_error_handlers
    register_error_handlers(app)

    # Register blueprints
    from .auth import bp as auth_bp; app.register_blueprint(auth_bp)
    from .cart import bp as cart_bp; app.register_blueprint(cart_bp)
    from .coupon import bp as coupon_bp; app.register_blueprint(coupon_bp)
    from .pwp import bp as pwp_bp; app.register_blueprint(pwp_bp)
    from .membership_promo import bp as membership_promo_bp; app.register_blueprint(membership_promo_bp)
    from .points import bp as points_bp; app.register_blueprint(points_bp)
    from .order import bp as order_bp; app.register_blueprint(order_bp)
    from .admin import bp as admin_bp; app.register_blueprint(admin_bp)

    from .cli import register_cli
    register_cli(app)

    @app.get("/")
    def health():
        return ok("API running")

    with app.app_context():
        from . import model  # noqa: F401
        db.create_all()

    app.logger.info(f"storepromo ready ({len(app.blueprints)} blueprints)")
    return app
