"""Partner-side redemption of claim codes."""
import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from sqlalchemy import update, or_
from app.extensions import db
from app.errors import BadRequestError, ForbiddenError, NotFoundError
from app.models import Discount, DiscountClaim, User
from app.models.states import ClaimStatus, transition
from app.services import audit
from app.services.claims import expire_claim

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def to_money(value):
    if value is None:
        return None
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def compute_discount_amount(discount, transaction_amount):
    """Discount for percentage and fixed-amount deals; None for other types."""
    transaction_amount = to_money(transaction_amount)
    value = Decimal(str(discount.discount_value))

    if discount.discount_type == "percentage":
        amount = transaction_amount * value / 100
        if discount.max_discount_amount is not None:
            amount = min(amount, Decimal(str(discount.max_discount_amount)))
        return to_money(amount)
    if discount.discount_type == "fixed_amount":
        return to_money(value)
    return None


def compute_cashback_amount(discount, transaction_amount):
    if discount.discount_type != "cashback" or discount.cashback_percentage is None:
        return None
    amount = to_money(transaction_amount) * Decimal(str(discount.cashback_percentage)) / 100
    if discount.max_cashback_amount is not None:
        amount = min(amount, Decimal(str(discount.max_cashback_amount)))
    return to_money(amount)


def _check_partner(partner_id, discount):
    partner = db.session.get(User, partner_id)
    if not partner:
        raise NotFoundError("User not found")
    if partner.role == "admin":
        return partner
    if partner.role != "partner" or partner.brand_id != discount.brand_id:
        raise ForbiddenError("You can only redeem claims for your own brand")
    return partner


def redeem_claim(claim_code, partner_id, transaction_amount, discount_amount=None,
                 verification_notes=None, redeem_lat=None, redeem_lng=None, now=None):
    now = now or datetime.utcnow()

    claim = DiscountClaim.query.filter_by(claim_code=claim_code).first()
    if not claim:
        raise NotFoundError("Claim not found")

    discount = claim.discount
    _check_partner(partner_id, discount)

    if claim.status != ClaimStatus.CLAIMED.value:
        raise BadRequestError(f"Claim is already {claim.status}")

    if now > claim.expires_at:
        expire_claim(claim)
        raise BadRequestError("Claim has expired")

    if discount_amount is None:
        discount_amount = compute_discount_amount(discount, transaction_amount)
    else:
        discount_amount = to_money(discount_amount)
    cashback_amount = compute_cashback_amount(discount, transaction_amount)
    savings = discount_amount or Decimal("0.00")

    claimed = db.session.execute(
        update(DiscountClaim)
        .where(DiscountClaim.id == claim.id, DiscountClaim.status == ClaimStatus.CLAIMED.value)
        .values(
            status=transition(claim.status, ClaimStatus.REDEEMED, "Claim"),
            redeemed_at=now,
            verified_by=partner_id,
            verification_notes=verification_notes,
            transaction_amount=to_money(transaction_amount),
            discount_amount=discount_amount,
            cashback_amount=cashback_amount,
            redeem_lat=redeem_lat,
            redeem_lng=redeem_lng,
        )
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        db.session.rollback()
        raise BadRequestError("Claim has already been processed")

    counted = db.session.execute(
        update(Discount)
        .where(
            Discount.id == discount.id,
            or_(
                Discount.total_usage_limit.is_(None),
                Discount.current_usage_count < Discount.total_usage_limit,
            ),
        )
        .values(
            total_redemptions=Discount.total_redemptions + 1,
            current_usage_count=Discount.current_usage_count + 1,
            total_savings_generated=Discount.total_savings_generated + savings,
        )
        .execution_options(synchronize_session=False)
    )
    if counted.rowcount != 1:
        db.session.rollback()
        raise BadRequestError("This discount has reached its total usage limit")

    db.session.execute(
        update(User)
        .where(User.id == claim.user_id)
        .values(
            total_discounts_used=User.total_discounts_used + 1,
            total_savings=User.total_savings + savings,
        )
        .execution_options(synchronize_session=False)
    )
    db.session.commit()

    audit.record(
        "discount_redeemed", "discount_claim", claim.id,
        user_id=claim.user_id, actor_id=partner_id,
        previous_status=ClaimStatus.CLAIMED.value, new_status=ClaimStatus.REDEEMED.value,
        details={"discount_id": discount.id, "discount_amount": str(savings)},
    )
    db.session.commit()

    logger.info(f"Claim {claim_code} redeemed by {partner_id}")

    student = claim.user
    return {
        "claim": claim.to_dict(include_discount=False),
        "user": {
            "id": student.id,
            "full_name": student.full_name,
            "student_id_number": student.student_id_number,
        },
        "discount_amount": float(discount_amount) if discount_amount is not None else None,
        "cashback_amount": float(cashback_amount) if cashback_amount is not None else None,
        "message": "Claim redeemed successfully",
    }
