import logging
import secrets
from datetime import datetime, timedelta
from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from app.extensions import db
from app.errors import BadRequestError, ConflictError, NotFoundError
from app.models import Discount, DiscountClaim, User
from app.models.states import ClaimStatus, transition
from app.services import audit
from app.services.eligibility import evaluate
from app.services.fraud import check_for_fraud
from app.utils.pagination import paginated

logger = logging.getLogger(__name__)

CLAIM_CODE_ATTEMPTS = 5


def generate_claim_code(now=None):
    year = (now or datetime.utcnow()).year
    return f"STU-{secrets.token_hex(4).upper()}-{year}"


def unique_claim_code(now=None):
    for _ in range(CLAIM_CODE_ATTEMPTS):
        code = generate_claim_code(now)
        if not DiscountClaim.query.filter_by(claim_code=code).first():
            return code
    raise ConflictError("Could not generate a unique claim code, please try again")


def active_claim_for(discount_id, user_id, now):
    return DiscountClaim.query.filter(
        DiscountClaim.discount_id == discount_id,
        DiscountClaim.user_id == user_id,
        DiscountClaim.status == ClaimStatus.CLAIMED.value,
        DiscountClaim.expires_at > now,
    ).first()


def claim_discount(discount_id, user_id, latitude=None, longitude=None, device_id=None,
                   ip_address=None, user_agent=None, now=None):
    now = now or datetime.utcnow()

    discount = db.session.get(Discount, discount_id)
    if not discount:
        raise NotFoundError("Discount not found")

    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")

    location = (latitude, longitude) if latitude is not None and longitude is not None else None
    eligibility = evaluate(discount, user, location=location, now=now)
    if not eligibility["allowed"]:
        raise BadRequestError(eligibility["reason"])

    if active_claim_for(discount.id, user.id, now):
        raise ConflictError("You already have an active claim for this discount")

    hours = discount.claim_expiry_hours or current_app.config.get("CLAIM_EXPIRY_HOURS", 24)
    claim = DiscountClaim(
        discount_id=discount.id,
        user_id=user.id,
        claim_code=unique_claim_code(now),
        status=ClaimStatus.CLAIMED.value,
        claimed_at=now,
        expires_at=now + timedelta(hours=hours),
        ip_address=ip_address,
        user_agent=user_agent,
        device_id=device_id,
        claim_lat=latitude,
        claim_lng=longitude,
    )
    db.session.add(claim)
    db.session.execute(
        update(Discount)
        .where(Discount.id == discount.id)
        .values(total_claims_count=Discount.total_claims_count + 1)
        .execution_options(synchronize_session=False)
    )
    db.session.flush()

    check_for_fraud(user.id, discount.id, ip_address=ip_address, device_id=device_id, now=now)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.warning(f"Claim code collision for discount {discount_id}, user {user_id}")
        raise ConflictError("Could not generate a unique claim code, please try again")

    audit.record(
        "discount_claimed", "discount_claim", claim.id,
        user_id=user.id, actor_id=user.id, new_status=claim.status,
        details={"discount_id": discount.id, "claim_code": claim.claim_code},
    )
    db.session.commit()

    logger.info(f"User {user.id} claimed discount {discount.id} ({claim.claim_code})")
    return claim


def list_user_claims(user_id, status=None, page=1, limit=20):
    query = DiscountClaim.query.filter_by(user_id=user_id)
    if status:
        query = query.filter_by(status=status)
    return paginated(query.order_by(DiscountClaim.claimed_at.desc()), page, limit)


def expire_claim(claim):
    """Flip a stale claim to expired; returns False if it already left ``claimed``."""
    result = db.session.execute(
        update(DiscountClaim)
        .where(DiscountClaim.id == claim.id, DiscountClaim.status == ClaimStatus.CLAIMED.value)
        .values(status=transition(claim.status, ClaimStatus.EXPIRED, "Claim"))
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount == 1


def expire_old_claims(now=None):
    now = now or datetime.utcnow()
    result = db.session.execute(
        update(DiscountClaim)
        .where(DiscountClaim.status == ClaimStatus.CLAIMED.value, DiscountClaim.expires_at < now)
        .values(status=ClaimStatus.EXPIRED.value)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    logger.info(f"Expired {result.rowcount} stale claims")
    return result.rowcount
