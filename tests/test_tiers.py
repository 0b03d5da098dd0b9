"""Loyalty tiers and the seeding commands."""
import pytest

from storepromo.errors import InvalidDataError
from storepromo.model import Customer, TierConfig
from storepromo.services import points_service, tier_service


def _seed(app):
    result = app.test_cli_runner().invoke(args=["seed-tiers"])
    assert result.exit_code == 0, result.output
    return result


def test_seed_tiers_is_idempotent(app):
    assert "Tiers created: 4" in _seed(app).output
    assert "Tiers created: 0" in _seed(app).output
    assert tier_service.default_tier().slug == "classic"


def test_determine_tier_needs_both_thresholds(app):
    _seed(app)
    assert tier_service.determine_tier_for_activity(0, 0).slug == "classic"
    assert tier_service.determine_tier_for_activity(3, 30000).slug == "silver"
    # enough spend for gold but not enough orders
    assert tier_service.determine_tier_for_activity(3, 90000).slug == "silver"
    assert tier_service.determine_tier_for_activity(12, 250000).slug == "platinum"


def test_inactive_tier_is_skipped(app):
    _seed(app)
    platinum = tier_service.tier_by_slug("PLATINUM")
    tier_service.update_tier(platinum.id, {"is_active": False})
    assert tier_service.determine_tier_for_activity(12, 250000).slug == "gold"


def test_multiplier_for_non_member_is_one(make_customer, make_tier):
    make_tier("gold", 2, multiplier=2.0)
    guest = make_customer("guest@example.com")
    member = make_customer("member@example.com", member=True, tier_slug="gold")
    assert tier_service.points_multiplier_for(guest.id) == 1.0
    assert tier_service.points_multiplier_for(member.id) == 2.0


def test_create_tier_rejects_duplicate_slug(make_tier):
    make_tier("gold", 2)
    with pytest.raises(InvalidDataError, match="already exists"):
        tier_service.create_tier({"name": "Gold again", "slug": "Gold"})
    assert TierConfig.query.count() == 1


def test_create_admin_command(app):
    result = app.test_cli_runner().invoke(args=[
        "create-admin", "--email", "Root@Example.com", "--password", "secret123", "--name", "Root",
    ])
    assert "Admin created" in result.output
    assert Customer.query.filter_by(email="root@example.com").one().role == "admin"


def test_seed_points_config_command(app):
    result = app.test_cli_runner().invoke(args=[
        "seed-points-config", "--earning-type", "per_currency", "--earning-rate", "2",
    ])
    assert result.exit_code == 0, result.output
    config = points_service.get_config()
    assert (config.earning_type, config.earning_rate) == ("per_currency", 2.0)
