from datetime import datetime, timedelta

from app.models import DiscountClaim, DiscountUsage
from app.services.eligibility import claim_cap, evaluate, period_start

from conftest import NOW


def _claim(db, discount, user, claimed_at, status="claimed", code="STU-TEST0001-2026"):
    claim = DiscountClaim(
        discount_id=discount.id,
        user_id=user.id,
        claim_code=code,
        status=status,
        claimed_at=claimed_at,
        expires_at=claimed_at + timedelta(hours=24),
    )
    db.session.add(claim)
    db.session.commit()
    return claim


def test_active_approved_discount_is_allowed(make_discount, student):
    result = evaluate(make_discount(), student, now=NOW)
    assert result == {"allowed": True, "reason": None}


def test_inactive_is_reported_before_unapproved(make_discount, student):
    discount = make_discount(is_active=False, approval_status="pending")
    assert evaluate(discount, student, now=NOW)["reason"] == "Discount is not active"


def test_pending_discount_is_not_claimable(make_discount, student):
    discount = make_discount(approval_status="pending")
    assert evaluate(discount, student, now=NOW)["reason"] == "Discount is not approved"


def test_date_window(make_discount, student):
    future = make_discount(start_date=NOW + timedelta(days=1))
    past = make_discount(start_date=NOW - timedelta(days=10), end_date=NOW - timedelta(days=1))
    assert evaluate(future, student, now=NOW)["reason"] == "Discount has not started yet"
    assert evaluate(past, student, now=NOW)["reason"] == "Discount has expired"


def test_active_hours(make_discount, student):
    discount = make_discount(active_time_start="12:00", active_time_end="15:00")
    result = evaluate(discount, student, now=NOW)
    assert result["reason"] == "Discount is only active between 12:00 and 15:00"
    assert evaluate(discount, student, now=NOW.replace(hour=13))["allowed"]


def test_active_days_use_sunday_as_zero(make_discount, student):
    # NOW is a Wednesday
    assert evaluate(make_discount(active_days_of_week=[3]), student, now=NOW)["allowed"]
    result = evaluate(make_discount(active_days_of_week=[0, 6]), student, now=NOW)
    assert result["reason"] == "Discount is not active today"


def test_active_days_follow_configured_timezone(app, make_discount, student):
    app.config["DISCOUNT_TIMEZONE"] = "Asia/Tashkent"
    # 22:00 UTC on Wednesday is 03:00 Thursday in Tashkent
    late = NOW.replace(hour=22)
    assert evaluate(make_discount(active_days_of_week=[4]), student, now=late)["allowed"]
    assert not evaluate(make_discount(active_days_of_week=[3]), student, now=late)["allowed"]


def test_university_allow_list(make_discount, make_user, university):
    discount = make_discount(university_ids=[university.id + 100])
    member = make_user(university_id=university.id)
    unaffiliated = make_user()
    assert evaluate(discount, member, now=NOW)["reason"] == "Discount is not available for your university"
    assert evaluate(discount, unaffiliated, now=NOW)["allowed"]


def test_min_course_year(make_discount, make_user):
    discount = make_discount(min_course_year=3)
    first_year = make_user(course_year=1)
    assert evaluate(discount, first_year, now=NOW)["reason"] == "Discount requires minimum course year 3"
    assert evaluate(discount, make_user(), now=NOW)["allowed"]


def test_first_time_only_counts_legacy_usage_and_redeemed_claims(db, make_discount, make_user):
    discount = make_discount(is_first_time_only=True)
    other = make_discount()

    legacy = make_user()
    db.session.add(DiscountUsage(discount_id=other.id, user_id=legacy.id))
    db.session.commit()

    redeemed = make_user()
    _claim(db, other, redeemed, NOW - timedelta(days=2), status="redeemed")

    assert evaluate(discount, legacy, now=NOW)["reason"] == "Discount is only for first-time users"
    assert evaluate(discount, redeemed, now=NOW)["reason"] == "Discount is only for first-time users"
    assert evaluate(discount, make_user(), now=NOW)["allowed"]


def test_location_required(make_discount, student):
    discount = make_discount(
        requires_location=True, location_lat=41.3111, location_lng=69.2797, location_radius=500
    )
    assert evaluate(discount, student, now=NOW)["reason"] == "Location verification required"
    assert evaluate(discount, student, location=(41.3112, 69.2798), now=NOW)["allowed"]
    far = evaluate(discount, student, location=(41.35, 69.35), now=NOW)
    assert far["reason"] == "You are too far from the discount location"


def test_location_ignored_without_coordinates(make_discount, student):
    discount = make_discount(requires_location=True)
    assert evaluate(discount, student, now=NOW)["allowed"]


def test_one_time_counts_all_claims(db, make_discount, student):
    discount = make_discount(usage_limit_type="one_time")
    _claim(db, discount, student, NOW - timedelta(days=5), status="expired")
    result = evaluate(discount, student, now=NOW)
    assert result["reason"] == "You have reached the usage limit for this discount"


def test_weekly_period_starts_on_sunday(db, make_discount, student):
    discount = make_discount(usage_limit_type="weekly", weekly_claim_limit=1)
    assert period_start("weekly", NOW) == datetime(2026, 3, 1)

    _claim(db, discount, student, datetime(2026, 2, 28, 12, 0), status="redeemed")
    assert evaluate(discount, student, now=NOW)["allowed"]

    _claim(db, discount, student, datetime(2026, 3, 1, 9, 0), code="STU-TEST0002-2026")
    assert not evaluate(discount, student, now=NOW)["allowed"]


def test_daily_and_monthly_periods():
    assert period_start("daily", NOW) == datetime(2026, 3, 4)
    assert period_start("monthly", NOW) == datetime(2026, 3, 1)
    assert period_start("one_time", NOW) is None
    assert period_start("unlimited", NOW) is None


def test_claim_caps(make_discount):
    assert claim_cap(make_discount(usage_limit_type="one_time")) == 1
    assert claim_cap(make_discount(usage_limit_type="daily")) == 1
    assert claim_cap(make_discount(usage_limit_type="daily", daily_claim_limit=3)) == 3
    assert claim_cap(make_discount(usage_limit_type="unlimited")) is None


def test_global_limit(make_discount, student):
    discount = make_discount(usage_limit_type="unlimited", total_usage_limit=5, current_usage_count=5)
    result = evaluate(discount, student, now=NOW)
    assert result["reason"] == "This discount has reached its total usage limit"
