"""Claim eligibility for a (discount, user) pair.

Checks run in a fixed order and stop at the first failure, so the reason
reported is always the earliest unmet condition.
"""
from datetime import datetime, timedelta
from app.models import DiscountClaim, DiscountUsage
from app.models.states import ClaimStatus
from app.helpers.clock import to_local, local_to_utc, js_weekday
from app.helpers.geo import haversine_distance


def _allowed():
    return {"allowed": True, "reason": None}


def _denied(reason):
    return {"allowed": False, "reason": reason}


def within_active_hours(discount, local_now):
    if not discount.active_time_start or not discount.active_time_end:
        return True
    # HH:MM strings compare lexically; windows across midnight are not supported
    current = local_now.strftime("%H:%M")
    return discount.active_time_start <= current <= discount.active_time_end


def active_today(discount, local_now):
    days = discount.active_days_of_week or []
    if not days:
        return True
    return js_weekday(local_now) in days


def period_start(limit_type, now):
    """Start of the current quota period as naive UTC, or None for all-time."""
    local_now = to_local(now)
    midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)

    if limit_type == "daily":
        start = midnight
    elif limit_type == "weekly":
        start = midnight - timedelta(days=js_weekday(local_now))
    elif limit_type == "monthly":
        start = midnight.replace(day=1)
    else:
        return None
    return local_to_utc(start)


def claim_cap(discount):
    """Maximum claims per period; None means no cap."""
    limit_type = discount.usage_limit_type
    if limit_type == "one_time":
        return 1
    if limit_type == "daily":
        return discount.daily_claim_limit or 1
    if limit_type == "weekly":
        return discount.weekly_claim_limit or 1
    if limit_type == "monthly":
        return discount.monthly_claim_limit or 1
    if limit_type == "unlimited":
        return None
    return discount.usage_limit_per_user


def claims_in_period(discount, user_id, now):
    query = DiscountClaim.query.filter_by(discount_id=discount.id, user_id=user_id)
    start = period_start(discount.usage_limit_type, now)
    if start is not None:
        query = query.filter(DiscountClaim.claimed_at >= start)
    return query.count()


def has_prior_usage(user_id):
    if DiscountUsage.query.filter_by(user_id=user_id).first():
        return True
    return DiscountClaim.query.filter_by(
        user_id=user_id, status=ClaimStatus.REDEEMED.value
    ).first() is not None


def evaluate(discount, user, location=None, now=None):
    """Return ``{"allowed": bool, "reason": str | None}``.

    ``location`` is an optional ``(lat, lng)`` pair supplied by the caller.
    ``now`` is naive UTC and defaults to the current time.
    """
    now = now or datetime.utcnow()

    if not discount.is_active:
        return _denied("Discount is not active")

    if discount.approval_status != "approved":
        return _denied("Discount is not approved")

    if discount.start_date > now:
        return _denied("Discount has not started yet")
    if discount.end_date < now:
        return _denied("Discount has expired")

    local_now = to_local(now)
    if not within_active_hours(discount, local_now):
        return _denied(
            f"Discount is only active between {discount.active_time_start} and {discount.active_time_end}"
        )

    if not active_today(discount, local_now):
        return _denied("Discount is not active today")

    university_ids = discount.university_ids or []
    if university_ids and user.university_id:
        if user.university_id not in university_ids:
            return _denied("Discount is not available for your university")

    if discount.min_course_year and user.course_year:
        if user.course_year < discount.min_course_year:
            return _denied(f"Discount requires minimum course year {discount.min_course_year}")

    if discount.is_first_time_only and has_prior_usage(user.id):
        return _denied("Discount is only for first-time users")

    if discount.requires_location and discount.location_lat is not None and discount.location_lng is not None:
        if not location or location[0] is None or location[1] is None:
            return _denied("Location verification required")
        distance = haversine_distance(
            discount.location_lat, discount.location_lng, location[0], location[1]
        )
        if discount.location_radius and distance > discount.location_radius:
            return _denied("You are too far from the discount location")

    cap = claim_cap(discount)
    if cap is not None and claims_in_period(discount, user.id, now) >= cap:
        return _denied("You have reached the usage limit for this discount")

    if discount.total_usage_limit is not None and discount.current_usage_count >= discount.total_usage_limit:
        return _denied("This discount has reached its total usage limit")

    return _allowed()
