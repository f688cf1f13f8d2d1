from datetime import datetime
from decimal import Decimal
from app.extensions import db
from app.errors import BadRequestError, ForbiddenError, NotFoundError
from app.models import Discount, DiscountClaim, User
from app.models.states import ClaimStatus
from app.utils.pagination import paginated


def partner_brand_id(partner):
    if not partner.brand_id:
        raise ForbiddenError("Your account is not linked to a brand")
    return partner.brand_id


def partner_discounts(brand_id, page=1, limit=20):
    query = Discount.query.filter_by(brand_id=brand_id).order_by(Discount.created_at.desc(), Discount.id.desc())

    def serialize(discount):
        data = discount.to_dict()
        data["claims_count"] = discount.claims.count()
        data["usages_count"] = discount.usages.count()
        return data

    return paginated(query, page, limit, serialize)


def partner_pending_verifications(brand_id, page=1, limit=20, now=None):
    now = now or datetime.utcnow()
    query = (
        DiscountClaim.query.join(Discount)
        .filter(
            Discount.brand_id == brand_id,
            DiscountClaim.status == ClaimStatus.CLAIMED.value,
            DiscountClaim.expires_at > now,
        )
        .order_by(DiscountClaim.claimed_at.desc())
    )

    def serialize(claim):
        data = claim.to_dict()
        data["user"] = {
            "id": claim.user.id,
            "full_name": claim.user.full_name,
            "student_id_number": claim.user.student_id_number,
        }
        return data

    return paginated(query, page, limit, serialize)


def _parse_date(value, name):
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise BadRequestError(f"Invalid {name}, expected ISO format")


def partner_analytics(brand_id, start_date=None, end_date=None):
    query = Discount.query.filter_by(brand_id=brand_id)
    if start_date and end_date:
        query = query.filter(
            Discount.created_at >= _parse_date(start_date, "start_date"),
            Discount.created_at <= _parse_date(end_date, "end_date"),
        )
    discounts = query.all()

    totals = {
        "total_views": sum(d.view_count for d in discounts),
        "total_clicks": sum(d.click_count for d in discounts),
        "total_claims": sum(d.total_claims_count for d in discounts),
        "total_redemptions": sum(d.total_redemptions for d in discounts),
        "total_savings_generated": float(sum((d.total_savings_generated or Decimal("0") for d in discounts), Decimal("0"))),
    }
    claim_rate = round(totals["total_claims"] / totals["total_views"] * 100, 2) if totals["total_views"] else 0
    redemption_rate = (
        round(totals["total_redemptions"] / totals["total_claims"] * 100, 2) if totals["total_claims"] else 0
    )

    return {
        **totals,
        "claim_rate": claim_rate,
        "redemption_rate": redemption_rate,
        "discount_breakdown": [
            {
                "id": d.id,
                "title": d.title,
                "view_count": d.view_count,
                "click_count": d.click_count,
                "total_claims_count": d.total_claims_count,
                "total_redemptions": d.total_redemptions,
                "total_savings_generated": float(d.total_savings_generated or 0),
            }
            for d in discounts
        ],
    }


def student_savings(user_id):
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")

    by_category = {}
    by_brand = {}
    redeemed = DiscountClaim.query.filter_by(user_id=user_id, status=ClaimStatus.REDEEMED.value)
    for claim in redeemed:
        savings = float(claim.discount_amount or 0) + float(claim.cashback_amount or 0)
        discount = claim.discount
        if discount.category:
            name = discount.category.name
            by_category[name] = by_category.get(name, 0) + savings
        brand_name = discount.brand.name
        by_brand[brand_name] = by_brand.get(brand_name, 0) + savings

    return {
        "total_discounts_used": user.total_discounts_used,
        "total_savings": float(user.total_savings or 0),
        "savings_by_category": by_category,
        "savings_by_brand": by_brand,
    }
