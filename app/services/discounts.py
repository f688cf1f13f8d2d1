"""Discount catalogue: CRUD, counters, stats and the legacy one-step usage path."""
import logging
import re
from datetime import datetime
from sqlalchemy import update, or_
from app.extensions import db
from app.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from app.models import Brand, Category, Discount, DiscountUsage
from app.models.states import ApprovalStatus
from app.services import audit
from app.utils.pagination import paginated

logger = logging.getLogger(__name__)


def slugify(text):
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug or "discount"


def unique_slug(title, exclude_id=None):
    base = slugify(title)
    slug = base
    n = 2
    while True:
        query = Discount.query.filter_by(slug=slug)
        if exclude_id is not None:
            query = query.filter(Discount.id != exclude_id)
        if not query.first():
            return slug
        slug = f"{base}-{n}"
        n += 1


def get_discount(discount_id):
    discount = db.session.get(Discount, discount_id)
    if not discount:
        raise NotFoundError("Discount not found")
    return discount


def _check_brand_access(actor, brand_id):
    if actor.role == "admin":
        return
    if actor.role != "partner" or actor.brand_id != brand_id:
        raise ForbiddenError("You can only manage discounts for your own brand")


def _check_references(brand_id=None, category_id=None):
    if brand_id is not None and not db.session.get(Brand, brand_id):
        raise NotFoundError("Brand not found")
    if category_id is not None and not db.session.get(Category, category_id):
        raise NotFoundError("Category not found")


def _check_promo_code(promo_code, exclude_id=None):
    if not promo_code:
        return
    query = Discount.query.filter_by(promo_code=promo_code)
    if exclude_id is not None:
        query = query.filter(Discount.id != exclude_id)
    if query.first():
        raise ConflictError("Promo code already exists")


def create_discount(data, actor):
    """``data`` is the validated create payload as a dict."""
    _check_references(data["brand_id"], data.get("category_id"))
    _check_brand_access(actor, data["brand_id"])
    _check_promo_code(data.get("promo_code"))

    fields = {k: v for k, v in data.items() if v is not None}
    discount = Discount(**fields)
    discount.slug = unique_slug(discount.title)
    discount.approval_status = ApprovalStatus.PENDING.value
    discount.active_days_of_week = data.get("active_days_of_week") or []
    discount.university_ids = data.get("university_ids") or []

    db.session.add(discount)
    db.session.flush()
    audit.record(
        "discount_created", "discount", discount.id, actor_id=actor.id,
        new_status=discount.approval_status, details={"brand_id": discount.brand_id},
    )
    db.session.commit()
    logger.info(f"Discount {discount.id} created by user {actor.id}")
    return discount


def update_discount(discount_id, data, actor):
    """``data`` holds only the fields the caller sent."""
    discount = get_discount(discount_id)
    _check_brand_access(actor, discount.brand_id)

    brand_id = data.get("brand_id")
    if brand_id is not None and brand_id != discount.brand_id:
        _check_references(brand_id=brand_id)
        _check_brand_access(actor, brand_id)

    category_id = data.get("category_id")
    if category_id is not None and category_id != discount.category_id:
        _check_references(category_id=category_id)

    promo_code = data.get("promo_code")
    if promo_code and promo_code != discount.promo_code:
        _check_promo_code(promo_code, exclude_id=discount.id)

    start = data.get("start_date", discount.start_date)
    end = data.get("end_date", discount.end_date)
    if start and end and end <= start:
        raise BadRequestError("end_date must be after start_date")

    for key, value in data.items():
        setattr(discount, key, value)
    if "title" in data:
        discount.slug = unique_slug(discount.title, exclude_id=discount.id)

    db.session.commit()
    return discount


def delete_discount(discount_id, actor):
    discount = get_discount(discount_id)
    _check_brand_access(actor, discount.brand_id)
    discount.is_active = False
    audit.record("discount_deleted", "discount", discount.id, actor_id=actor.id)
    db.session.commit()
    return {"message": "Discount deleted successfully"}


def list_discounts(page=1, limit=20, brand_id=None, category_id=None, university_id=None,
                   is_active=None, is_featured=None, now=None):
    now = now or datetime.utcnow()
    query = Discount.query.filter(Discount.start_date <= now, Discount.end_date >= now)
    if brand_id is not None:
        query = query.filter_by(brand_id=brand_id)
    if category_id is not None:
        query = query.filter_by(category_id=category_id)
    if is_active is not None:
        query = query.filter_by(is_active=is_active)
    if is_featured is not None:
        query = query.filter_by(is_featured=is_featured)
    query = query.order_by(Discount.is_featured.desc(), Discount.created_at.desc(), Discount.id.desc())

    if university_id is None:
        return paginated(query, page, limit)

    # JSON allow-list; filtered in Python
    matching = [d for d in query if university_id in (d.university_ids or [])]
    start = (page - 1) * limit
    total = len(matching)
    return {
        "data": [d.to_dict() for d in matching[start:start + limit]],
        "meta": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": (total + limit - 1) // limit,
        },
    }


def _bump(discount_id, column):
    get_discount(discount_id)
    db.session.execute(
        update(Discount)
        .where(Discount.id == discount_id)
        .values({column: getattr(Discount, column) + 1})
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    discount = get_discount(discount_id)
    return {"id": discount.id, "view_count": discount.view_count, "click_count": discount.click_count}


def increment_view_count(discount_id):
    return _bump(discount_id, "view_count")


def increment_click_count(discount_id):
    return _bump(discount_id, "click_count")


def get_stats(discount_id):
    discount = get_discount(discount_id)
    conversion_rate = (
        round(discount.click_count / discount.view_count * 100, 2) if discount.view_count else 0
    )
    remaining = (
        discount.total_usage_limit - discount.current_usage_count
        if discount.total_usage_limit is not None else None
    )
    return {
        "discount_id": discount.id,
        "title": discount.title,
        "view_count": discount.view_count,
        "click_count": discount.click_count,
        "conversion_rate": conversion_rate,
        "total_usages": discount.usages.count(),
        "total_claims": discount.total_claims_count,
        "total_redemptions": discount.total_redemptions,
        "current_usage_count": discount.current_usage_count,
        "total_usage_limit": discount.total_usage_limit,
        "usage_limit_per_user": discount.usage_limit_per_user,
        "remaining_global_usage": remaining,
    }


def _date_valid(discount, now):
    return discount.start_date <= now <= discount.end_date


def can_use(discount_id, user_id, now=None):
    now = now or datetime.utcnow()
    discount = get_discount(discount_id)
    if not discount.is_active or not _date_valid(discount, now):
        return False
    used = DiscountUsage.query.filter_by(discount_id=discount.id, user_id=user_id).count()
    if used >= discount.usage_limit_per_user:
        return False
    if discount.total_usage_limit is not None and discount.current_usage_count >= discount.total_usage_limit:
        return False
    return True


def record_usage(discount_id, user_id, transaction_amount=None, now=None):
    now = now or datetime.utcnow()
    discount = get_discount(discount_id)

    if not discount.is_active:
        raise BadRequestError("Discount is not active")
    if not _date_valid(discount, now):
        raise BadRequestError("Discount is not valid for the current date")

    used = DiscountUsage.query.filter_by(discount_id=discount.id, user_id=user_id).count()
    if used >= discount.usage_limit_per_user:
        raise BadRequestError(
            f"You have reached the usage limit for this discount ({discount.usage_limit_per_user})"
        )

    counted = db.session.execute(
        update(Discount)
        .where(
            Discount.id == discount.id,
            or_(
                Discount.total_usage_limit.is_(None),
                Discount.current_usage_count < Discount.total_usage_limit,
            ),
        )
        .values(current_usage_count=Discount.current_usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    if counted.rowcount != 1:
        db.session.rollback()
        raise BadRequestError("This discount has reached its total usage limit")

    usage = DiscountUsage(
        discount_id=discount.id,
        user_id=user_id,
        transaction_amount=transaction_amount,
        used_at=now,
    )
    db.session.add(usage)
    db.session.commit()
    return usage


def deactivate_expired_discounts(now=None):
    now = now or datetime.utcnow()
    result = db.session.execute(
        update(Discount)
        .where(Discount.is_active.is_(True), Discount.end_date < now)
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    logger.info(f"Deactivated {result.rowcount} expired discounts")
    return result.rowcount
