from datetime import timedelta
from decimal import Decimal

import pytest

from app.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from app.models import Discount, DiscountUsage
from app.services import discounts

from conftest import NOW


def _payload(brand, **kwargs):
    data = {
        "brand_id": brand.id,
        "title": "Half Price Coffee!",
        "discount_type": "percentage",
        "discount_value": Decimal("50"),
        "start_date": NOW - timedelta(days=1),
        "end_date": NOW + timedelta(days=10),
        "usage_limit_type": "one_time",
    }
    data.update(kwargs)
    return data


def test_slugify():
    assert discounts.slugify("Half Price Coffee!") == "half-price-coffee"
    assert discounts.slugify("!!!") == "discount"


def test_partner_creates_pending_discount(partner, brand):
    discount = discounts.create_discount(_payload(brand), partner)
    assert discount.approval_status == "pending"
    assert discount.slug == "half-price-coffee"
    assert discount.active_days_of_week == []

    again = discounts.create_discount(_payload(brand), partner)
    assert again.slug == "half-price-coffee-2"


def test_partner_cannot_create_for_other_brand(partner, make_brand):
    other = make_brand(name="Other")
    with pytest.raises(ForbiddenError):
        discounts.create_discount(_payload(other), partner)


def test_unknown_category(admin, brand):
    with pytest.raises(NotFoundError) as exc:
        discounts.create_discount(_payload(brand, category_id=99), admin)
    assert exc.value.message == "Category not found"


def test_promo_code_must_be_unique(admin, brand):
    discounts.create_discount(_payload(brand, promo_code="STUDENT10"), admin)
    with pytest.raises(ConflictError):
        discounts.create_discount(_payload(brand, title="Another", promo_code="STUDENT10"), admin)


def test_update_checks_dates_and_reslugs(make_discount, partner):
    discount = make_discount()
    with pytest.raises(BadRequestError):
        discounts.update_discount(discount.id, {"end_date": discount.start_date - timedelta(days=1)}, partner)

    updated = discounts.update_discount(discount.id, {"title": "Lunch Deal"}, partner)
    assert updated.slug == "lunch-deal"


def test_delete_is_soft(db, make_discount, admin):
    discount = make_discount()
    discounts.delete_discount(discount.id, admin)
    assert db.session.get(Discount, discount.id).is_active is False


def test_list_filters_by_university(make_discount, university):
    make_discount(university_ids=[university.id])
    make_discount(university_ids=[])

    everything = discounts.list_discounts(now=NOW)
    only_members = discounts.list_discounts(university_id=university.id, now=NOW)
    assert everything["meta"]["total"] == 2
    assert only_members["meta"]["total"] == 1
    assert only_members["meta"]["total_pages"] == 1


def test_view_and_click_counters(make_discount):
    discount = make_discount()
    discounts.increment_view_count(discount.id)
    discounts.increment_view_count(discount.id)
    result = discounts.increment_click_count(discount.id)
    assert result == {"id": discount.id, "view_count": 2, "click_count": 1}
    assert discounts.get_stats(discount.id)["conversion_rate"] == 50.0


def test_legacy_usage_respects_limits(db, make_discount, student):
    discount = make_discount(usage_limit_per_user=1, total_usage_limit=10)
    assert discounts.can_use(discount.id, student.id, now=NOW)

    discounts.record_usage(discount.id, student.id, Decimal("1000"), now=NOW)
    assert not discounts.can_use(discount.id, student.id, now=NOW)
    with pytest.raises(BadRequestError):
        discounts.record_usage(discount.id, student.id, now=NOW)

    assert DiscountUsage.query.count() == 1
    assert db.session.get(Discount, discount.id).current_usage_count == 1


def test_legacy_usage_global_cap(make_discount, make_user):
    discount = make_discount(total_usage_limit=1)
    discounts.record_usage(discount.id, make_user().id, now=NOW)
    with pytest.raises(BadRequestError) as exc:
        discounts.record_usage(discount.id, make_user().id, now=NOW)
    assert exc.value.message == "This discount has reached its total usage limit"


def test_deactivate_expired(db, make_discount):
    expired = make_discount(end_date=NOW - timedelta(hours=1))
    live = make_discount()
    assert discounts.deactivate_expired_discounts(now=NOW) == 1
    assert db.session.get(Discount, expired.id).is_active is False
    assert db.session.get(Discount, live.id).is_active is True
