"""Periodic verification housekeeping, run from ``flask perks``."""
import logging
from datetime import datetime, timedelta
from sqlalchemy import or_, and_
from app.extensions import db
from app.models import User, VerificationRequest
from app.models.states import UserVerificationStatus as US, VerificationRequestStatus as RS
from app.services import audit
from app.services.verification import set_user_status
from app.tasks import email as mails

logger = logging.getLogger(__name__)

REMINDER_DAYS = 7
ESCALATE_AFTER_HOURS = 72
HIGH_PRIORITY = 3


def expire_verifications(now=None):
    """Verified users past graduation or their due date, and grace periods that ran out."""
    now = now or datetime.utcnow()
    users = User.query.filter(or_(
        and_(
            User.verification_status == US.VERIFIED.value,
            or_(User.expected_graduation_date < now, User.next_verification_due < now),
        ),
        and_(
            User.verification_status == US.GRACE_PERIOD.value,
            User.next_verification_due < now,
        ),
    )).all()

    for user in users:
        set_user_status(
            user, US.VERIFICATION_EXPIRED, "verification_expired",
            reason="Automatic expiration based on graduation date or verification due date",
        )
        user.verification_notes = "Verification expired. Please re-verify your student status."
    db.session.commit()

    for user in users:
        mails.send_verification_expired(user)

    logger.info(f"Expired {len(users)} student verifications")
    return len(users)


def send_expiry_reminders(days_before=REMINDER_DAYS, now=None):
    now = now or datetime.utcnow()
    users = User.query.filter(
        User.verification_status == US.VERIFIED.value,
        User.next_verification_due >= now,
        User.next_verification_due <= now + timedelta(days=days_before),
    ).all()

    for user in users:
        mails.send_verification_expiring_soon(user)

    logger.info(f"Sent {len(users)} verification expiry reminders")
    return len(users)


def escalate_pending(hours=ESCALATE_AFTER_HOURS, now=None):
    now = now or datetime.utcnow()
    requests = VerificationRequest.query.filter(
        VerificationRequest.status == RS.PENDING.value,
        VerificationRequest.submitted_at < now - timedelta(hours=hours),
        VerificationRequest.priority < HIGH_PRIORITY,
    ).all()

    for request in requests:
        request.priority = HIGH_PRIORITY
        audit.record(
            "pending_request_escalated", "verification_request", request.id,
            user_id=request.user_id,
            details={"pending_hours": hours, "submitted_at": request.submitted_at.isoformat()},
        )
    db.session.commit()

    logger.info(f"Escalated {len(requests)} long pending verification requests")
    return len(requests)
