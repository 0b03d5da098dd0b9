# storepromo/cli.py
import click
from werkzeug.security import generate_password_hash

from .extensions import db
from .model import Customer, TierConfig
from .services import points_service

DEFAULT_TIERS = (
    # name, slug, rank, orders, spend (minor units), multiplier, discount %
    ("Classic", "classic", 0, 0, 0, 1.0, 0.0),
    ("Silver", "silver", 1, 3, 30000, 1.5, 2.0),
    ("Gold", "gold", 2, 6, 80000, 2.0, 5.0),
    ("Platinum", "platinum", 3, 12, 200000, 3.0, 8.0),
)


@click.command("create-admin")
@click.option("--email", required=True)
@click.option("--password", required=True)
@click.option("--name", required=True)
def create_admin(email, password, name):
    email = email.strip().lower()
    if Customer.query.filter_by(email=email).first():
        click.echo("Email already exists"); return
    u = Customer(email=email, name=name, password_hash=generate_password_hash(password), role="admin")
    db.session.add(u); db.session.commit()
    click.echo(f"Admin created: {u.id} {u.email}")


@click.command("seed-points-config")
@click.option("--earning-type", type=click.Choice(["percentage", "per_currency"]), default="percentage")
@click.option("--earning-rate", type=float, default=5.0)
@click.option("--redemption-rate", type=float, default=0.01)
def seed_points_config(earning_type, earning_rate, redemption_rate):
    config = points_service.update_config({
        "earning_type": earning_type,
        "earning_rate": earning_rate,
        "redemption_rate": redemption_rate,
        "is_enabled": True,
    })
    click.echo(f"Points config: {config.as_api()}")


@click.command("seed-tiers")
def seed_tiers():
    created = 0
    for name, slug, rank, orders, spend, multiplier, discount in DEFAULT_TIERS:
        if TierConfig.query.filter_by(slug=slug).first():
            continue
        db.session.add(TierConfig(
            name=name, slug=slug, rank=rank,
            order_threshold=orders, spend_threshold=spend,
            points_multiplier=multiplier, discount_percentage=discount,
            is_default=(rank == 0), is_active=True,
        ))
        created += 1
    db.session.commit()
    click.echo(f"Tiers created: {created}")


def register_cli(app):
    app.cli.add_command(create_admin)
    app.cli.add_command(seed_points_config)
    app.cli.add_command(seed_tiers)
