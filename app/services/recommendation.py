"""Ranked discount suggestions for a student."""
from datetime import datetime, timedelta
from app.extensions import db
from app.errors import NotFoundError
from app.models import Discount, DiscountClaim, User
from app.helpers.geo import haversine_distance

VALUE_WEIGHT = 0.3
BRAND_RATING_WEIGHT = 20
EXPIRING_SOON_BONUS = 15
EXPIRING_SOON_WINDOW = timedelta(days=7)
CATEGORY_AFFINITY_BONUS = 15
BRAND_AFFINITY_BONUS = 10
NEARBY_BONUS = 20
NEARBY_RADIUS_M = 5000
FEATURED_BONUS = 10

AFFINITY_HISTORY = 50


def user_affinity(user_id):
    recent = (
        DiscountClaim.query.filter_by(user_id=user_id)
        .order_by(DiscountClaim.claimed_at.desc())
        .limit(AFFINITY_HISTORY)
        .all()
    )
    categories = {c.discount.category_id for c in recent if c.discount.category_id}
    brands = {c.discount.brand_id for c in recent}
    return categories, brands


def score_discount(discount, now, categories=(), brands=(), location=None):
    score = float(discount.discount_value or 0) * VALUE_WEIGHT
    if discount.brand is not None:
        score += float(discount.brand.rating or 0) * BRAND_RATING_WEIGHT

    if discount.end_date - now < EXPIRING_SOON_WINDOW:
        score += EXPIRING_SOON_BONUS

    if discount.category_id in categories:
        score += CATEGORY_AFFINITY_BONUS
    if discount.brand_id in brands:
        score += BRAND_AFFINITY_BONUS

    if location and discount.location_lat is not None and discount.location_lng is not None:
        distance = haversine_distance(location[0], location[1], discount.location_lat, discount.location_lng)
        if distance < NEARBY_RADIUS_M:
            score += NEARBY_BONUS

    if discount.is_featured:
        score += FEATURED_BONUS
    return score


def candidate_discounts(user, limit, now):
    query = Discount.query.filter(
        Discount.is_active.is_(True),
        Discount.approval_status == "approved",
        Discount.start_date <= now,
        Discount.end_date >= now,
    ).order_by(Discount.id.asc())

    candidates = []
    # university allow-lists live in a JSON column, so filter here
    for discount in query:
        allowed = discount.university_ids or []
        if user.university_id and allowed and user.university_id not in allowed:
            continue
        candidates.append(discount)
        if len(candidates) >= limit * 2:
            break
    return candidates


def recommend(user_id, location=None, limit=20, now=None):
    now = now or datetime.utcnow()
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")

    categories, brands = user_affinity(user.id)
    scored = [
        (score_discount(d, now, categories, brands, location), d)
        for d in candidate_discounts(user, limit, now)
    ]
    # sorted() is stable, so equal scores keep query order
    scored = sorted(scored, key=lambda pair: pair[0], reverse=True)
    return [d for _, d in scored[:limit]]
