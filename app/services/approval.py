import logging
from datetime import datetime
from app.extensions import db
from app.errors import BadRequestError, NotFoundError
from app.models import Discount
from app.models.states import ApprovalStatus, can_transition, transition
from app.services import audit
from app.utils.pagination import paginated

logger = logging.getLogger(__name__)


def _pending_discount(discount_id, target):
    discount = db.session.get(Discount, discount_id)
    if not discount:
        raise NotFoundError("Discount not found")
    if not can_transition(discount.approval_status, target):
        raise BadRequestError(f"Discount is already {discount.approval_status}")
    return discount


def approve_discount(discount_id, admin_id, notes=None):
    discount = _pending_discount(discount_id, ApprovalStatus.APPROVED)
    previous = discount.approval_status

    discount.approval_status = transition(previous, ApprovalStatus.APPROVED, "Approval status")
    discount.approved_by = admin_id
    discount.approved_at = datetime.utcnow()

    audit.record(
        "discount_approved", "discount", discount.id, actor_id=admin_id,
        previous_status=previous, new_status=discount.approval_status,
        details={"notes": notes} if notes else {},
    )
    db.session.commit()
    logger.info(f"Discount {discount.id} approved by {admin_id}")
    return discount


def reject_discount(discount_id, admin_id, reason):
    if not reason or not reason.strip():
        raise BadRequestError("Rejection reason is required")

    discount = _pending_discount(discount_id, ApprovalStatus.REJECTED)
    previous = discount.approval_status

    discount.approval_status = transition(previous, ApprovalStatus.REJECTED, "Approval status")
    discount.rejection_reason = reason.strip()
    discount.approved_by = admin_id
    discount.approved_at = datetime.utcnow()

    audit.record(
        "discount_rejected", "discount", discount.id, actor_id=admin_id,
        previous_status=previous, new_status=discount.approval_status,
        details={"reason": discount.rejection_reason},
    )
    db.session.commit()
    logger.info(f"Discount {discount.id} rejected by {admin_id}")
    return discount


def list_pending(page=1, limit=20):
    query = Discount.query.filter_by(approval_status=ApprovalStatus.PENDING.value)
    return paginated(query.order_by(Discount.created_at.asc(), Discount.id.asc()), page, limit)
