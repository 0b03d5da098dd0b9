# storepromo/services/tier_service.py
from flask import current_app

from ..extensions import db
from ..errors import InvalidDataError, NotFoundError
from ..model import Membership, TierConfig

_TIER_FIELDS = (
    "name", "rank", "order_threshold", "spend_threshold",
    "points_multiplier", "discount_percentage", "is_default", "is_active",
)


def active_tiers():
    return TierConfig.query.filter_by(is_active=True).order_by(TierConfig.rank.asc()).all()


def all_tiers():
    return TierConfig.query.order_by(TierConfig.rank.asc()).all()


def default_tier():
    """Tier flagged is_default, else the lowest ranked active tier."""
    tier = TierConfig.query.filter_by(is_default=True, is_active=True).first()
    if tier:
        return tier
    tiers = active_tiers()
    return tiers[0] if tiers else None


def tier_by_slug(slug: str | None):
    if not slug:
        return None
    return TierConfig.query.filter_by(slug=slug.lower()).first()


def determine_tier_for_activity(order_count: int, total_spend: int):
    """Highest ranked active tier whose order and spend thresholds are both met."""
    for tier in reversed(active_tiers()):
        if order_count >= (tier.order_threshold or 0) and total_spend >= (tier.spend_threshold or 0):
            current_app.logger.info(
                f"[TIER-CONFIG] Activity qualifies for tier {tier.slug!r} "
                f"(orders: {order_count}>={tier.order_threshold}, spend: {total_spend}>={tier.spend_threshold})"
            )
            return tier
    return default_tier()


def points_multiplier_for(customer_id) -> float:
    """Points multiplier of the customer's current tier; 1 for non-members."""
    membership = Membership.query.filter_by(customer_id=customer_id).first()
    if not membership or not membership.is_active:
        return 1.0
    tier = tier_by_slug(membership.tier_slug) or default_tier()
    if not tier or not tier.is_active or not tier.points_multiplier:
        return 1.0
    return float(tier.points_multiplier)


def create_tier(data: dict) -> TierConfig:
    name = (data.get("name") or "").strip()
    slug = (data.get("slug") or "").strip().lower()
    if not name or not slug:
        raise InvalidDataError("name and slug are required")
    if tier_by_slug(slug):
        raise InvalidDataError(f"Tier with slug {slug} already exists")

    tier = TierConfig(
        name=name,
        slug=slug,
        rank=int(data.get("rank") or 0),
        order_threshold=int(data.get("order_threshold") or 0),
        spend_threshold=int(data.get("spend_threshold") or 0),
        points_multiplier=float(data.get("points_multiplier") or 1),
        discount_percentage=float(data.get("discount_percentage") or 0),
        is_default=bool(data.get("is_default", False)),
        is_active=data.get("is_active") is not False,
    )
    db.session.add(tier)
    db.session.commit()
    current_app.logger.info(f"[TIER-CONFIG] Tier created: {tier.slug} ({tier.id})")
    return tier


def update_tier(tier_id, data: dict) -> TierConfig:
    tier = db.session.get(TierConfig, tier_id)
    if not tier:
        raise NotFoundError(f"Tier with id {tier_id} not found")

    if data.get("slug") is not None:
        slug = data["slug"].strip().lower()
        other = tier_by_slug(slug)
        if other and other.id != tier.id:
            raise InvalidDataError(f"Tier with slug {slug} already exists")
        tier.slug = slug
    for field in _TIER_FIELDS:
        if field in data and data[field] is not None:
            setattr(tier, field, data[field])

    db.session.commit()
    current_app.logger.info(f"[TIER-CONFIG] Tier updated: {tier.slug} ({tier.id})")
    return tier


def refresh_membership_tier(membership: Membership):
    """Re-evaluate the member's tier from rolling activity; returns the tier or None."""
    tier = determine_tier_for_activity(membership.order_count or 0, membership.total_spend or 0)
    if tier and membership.tier_slug != tier.slug:
        current_app.logger.info(
            f"[TIER-CONFIG] Customer {membership.customer_id} moved {membership.tier_slug} -> {tier.slug}"
        )
        membership.tier_slug = tier.slug
        db.session.flush()
    return tier
