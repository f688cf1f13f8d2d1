"""Student verification: email confirmation, review queue, manual status
management and grace periods.

Every user status change goes through the transition table in
``app.models.states`` and leaves an audit entry.
"""
import logging
import secrets
from datetime import datetime, timedelta
from app.extensions import db
from app.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from app.models import University, User, VerificationRequest
from app.models.states import (
    UserVerificationStatus as US,
    VerificationRequestStatus as RS,
    can_transition,
    transition,
)
from app.services import audit
from app.services.university_domains import (
    FRAUD_REJECTION_ACTION,
    analyze_email,
    check_email_suspicion,
    extract_domain,
)
from app.tasks import email as mails
from app.utils.pagination import paginated

logger = logging.getLogger(__name__)

DEFAULT_GRACE_DAYS = 14
OPEN_REQUEST_STATUSES = (RS.PENDING.value, RS.MORE_INFO_NEEDED.value)
ACCESS_STATUSES = (US.VERIFIED.value, US.GRACE_PERIOD.value)

REJECTION_MESSAGES = {
    "id_not_clear": "The uploaded ID is not clear or readable. Please upload a clearer photo.",
    "id_expired": "Your student ID has expired. Please upload a valid, current ID.",
    "name_mismatch": "The name on your ID does not match your account name.",
    "university_not_recognized": "We could not recognize the university on your ID.",
    "suspected_fraud": "We detected potential issues with your submission.",
    "incomplete_information": "Some required information is missing from your submission.",
    "duplicate_account": "We found another account with the same credentials.",
    "other": "Your verification was rejected.",
}

STATUS_MESSAGES = {
    US.UNVERIFIED.value: "Please complete student verification to access all features.",
    US.EMAIL_VERIFIED.value: "Email verified. Please upload your student ID to complete verification.",
    US.PENDING_VERIFICATION.value: "Your verification is under review. Usually takes 24-48 hours.",
    US.VERIFIED.value: "Your account is fully verified. You have access to all features.",
    US.GRACE_PERIOD.value: "Your verification is in a grace period. Please re-verify before it ends.",
    US.VERIFICATION_EXPIRED.value: "Your verification has expired. Please re-verify your student status.",
    US.REJECTED.value: "Your verification was rejected. Please check the reason and re-submit.",
    US.SUSPENDED.value: "Your account is suspended. Please contact support.",
    US.GRADUATED.value: "You are registered as a graduate. Student features are no longer available.",
}


def _get_user(user_id):
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def next_academic_september(now):
    year = now.year + 1 if now.month >= 9 else now.year
    return datetime(year, 9, 1)


def set_user_status(user, target, action, actor_id=None, reason=None, details=None):
    """Move ``user`` to ``target`` and audit it. Same-state moves are no-ops."""
    previous = user.verification_status
    if previous == target.value:
        return False
    user.verification_status = transition(previous, target, "Verification status")
    audit.record(
        action, "user", user.id, user_id=user.id, actor_id=actor_id,
        previous_status=previous, new_status=user.verification_status,
        details={**(details or {}), **({"reason": reason} if reason else {})},
    )
    return True


# Email verification

def send_verification_email(user_id):
    user = _get_user(user_id)
    if user.is_email_verified:
        raise BadRequestError("Email is already verified")

    user.email_verification_token = secrets.token_hex(32)
    db.session.commit()

    mails.send_verification_email(user, user.email_verification_token)
    return {"message": "Verification email sent successfully"}


def verify_email(token, now=None):
    now = now or datetime.utcnow()
    user = User.query.filter_by(email_verification_token=token).first() if token else None
    if not user:
        raise BadRequestError("Invalid or expired verification token")

    suspicion = check_email_suspicion(user.email)
    if suspicion["suspicious"]:
        logger.warning(f"Suspicious email flagged: {user.email} ({suspicion['score']}): {suspicion['reasons']}")
        audit.record(
            "email_verification_flagged", "user", user.id, user_id=user.id,
            details={"reasons": suspicion["reasons"], "score": suspicion["score"], "email": user.email},
        )

    analysis = analyze_email(user.email)
    user.is_email_verified = True
    user.email_verification_token = None

    auto_verified = False
    target = US.EMAIL_VERIFIED
    if analysis["is_university"] and analysis["auto_verify"] and analysis["confidence"] == "high":
        target = US.VERIFIED
    elif analysis["is_university"] and analysis["confidence"] == "medium":
        user.requires_manual_review = True

    if target == US.VERIFIED and can_transition(user.verification_status, US.VERIFIED):
        auto_verified = True
        graduation_year = now.year + 4
        user.verification_method = "university_email"
        user.verification_date = now
        user.last_verification_date = now
        user.expected_graduation_date = datetime(graduation_year, 9, 1)
        user.next_verification_due = datetime(graduation_year + 1, 9, 1)
        if analysis.get("university_id"):
            user.university_id = analysis["university_id"]
        set_user_status(
            user, US.VERIFIED, "auto_verification_success",
            details={"domain": analysis["domain"], "university": analysis.get("university_name")},
        )
    elif can_transition(user.verification_status, US.EMAIL_VERIFIED):
        set_user_status(
            user, US.EMAIL_VERIFIED, "email_verified",
            details={"requires_manual_review": analysis["requires_manual_review"],
                     "suspicion_score": suspicion["score"]},
        )

    db.session.commit()

    if auto_verified:
        mails.send_verification_approved(user)
    else:
        steps = (
            ["Your university email requires manual verification",
             "Please upload your student ID to complete verification"]
            if analysis["requires_manual_review"]
            else ["Upload your student ID to unlock all features"]
        )
        mails.send_verification_more_info(
            user,
            "Your email has been verified! Please complete your student verification by uploading your student ID.",
            steps,
        )

    university_name = analysis.get("university_name") if auto_verified else None
    if auto_verified:
        message = (
            "Email verified! Your student status has been confirmed automatically "
            f"through {university_name or 'your university'}."
        )
    else:
        message = "Email verified successfully! Please complete your student verification to access all features."
    return {"message": message, "auto_verified": auto_verified, "university_name": university_name}


# Verification requests

def _open_request(user_id):
    return (
        VerificationRequest.query
        .filter(VerificationRequest.user_id == user_id, VerificationRequest.status.in_(OPEN_REQUEST_STATUSES))
        .order_by(VerificationRequest.submitted_at.desc())
        .first()
    )


def submit_request(user_id, data, now=None):
    """``data`` is a validated ``SubmitVerification``.

    A request waiting on more information is reopened rather than duplicated.
    """
    now = now or datetime.utcnow()
    user = _get_user(user_id)

    if not user.is_email_verified:
        raise BadRequestError("Please verify your email first")
    if user.verification_status == US.VERIFIED.value:
        raise BadRequestError("Your account is already verified")
    if user.verification_status == US.SUSPENDED.value:
        raise ForbiddenError("Your account is suspended. Please contact support.")

    existing = _open_request(user.id)
    if existing and existing.status == RS.PENDING.value:
        raise ConflictError("You already have a pending verification request")

    if data.university_id is not None and not db.session.get(University, data.university_id):
        raise NotFoundError("University not found")

    for field in ("university_id", "student_id_number", "faculty", "course_year",
                  "graduation_year", "expected_graduation_date"):
        value = getattr(data, field)
        if value is not None:
            setattr(user, field, value)

    documents = [doc.model_dump() for doc in data.documents]
    if existing:
        existing.status = transition(existing.status, RS.PENDING, "Request status")
        existing.user_notes = data.user_notes or existing.user_notes
        existing.documents = (existing.documents or []) + documents
        request = existing
    else:
        is_repeat = user.verification_attempts > 0 or user.verification_status in (
            US.GRACE_PERIOD.value, US.VERIFICATION_EXPIRED.value,
        )
        request = VerificationRequest(
            user_id=user.id,
            request_type="reverification" if is_repeat else "initial",
            status=RS.PENDING.value,
            priority=2 if user.verification_attempts > 0 else 1,
            user_notes=data.user_notes,
            documents=documents,
            submitted_at=now,
        )
        db.session.add(request)

    user.verification_attempts = (user.verification_attempts or 0) + 1
    db.session.flush()
    set_user_status(
        user, US.PENDING_VERIFICATION, "verification_submitted",
        actor_id=user.id,
        details={"request_id": request.id, "request_type": request.request_type,
                 "documents_count": len(documents)},
    )
    db.session.commit()
    logger.info(f"Verification request {request.id} submitted by user {user.id}")
    return request


def get_status(user_id):
    user = _get_user(user_id)
    pending = _open_request(user.id)
    has_access = user.verification_status in ACCESS_STATUSES

    if not user.is_email_verified:
        message = "Please verify your email address to continue."
    else:
        message = STATUS_MESSAGES.get(user.verification_status, "Unknown verification status.")

    return {
        "verification_status": user.verification_status,
        "is_email_verified": user.is_email_verified,
        "verification_method": user.verification_method,
        "verification_date": user.verification_date.isoformat() if user.verification_date else None,
        "next_verification_due": user.next_verification_due.isoformat() if user.next_verification_due else None,
        "pending_request_id": pending.id if pending else None,
        "rejection_reason": user.verification_notes,
        "can_use_discounts": has_access,
        "message": message,
    }


def history(user_id):
    _get_user(user_id)
    return (
        VerificationRequest.query.filter_by(user_id=user_id)
        .order_by(VerificationRequest.submitted_at.desc(), VerificationRequest.id.desc())
        .all()
    )


def list_pending(page=1, limit=20, status=None, request_type=None, university_id=None, sort_by="oldest"):
    query = VerificationRequest.query.filter(VerificationRequest.status == (status or RS.PENDING.value))
    if request_type:
        query = query.filter(VerificationRequest.request_type == request_type)
    if university_id:
        query = query.join(User, VerificationRequest.user_id == User.id).filter(User.university_id == university_id)

    if sort_by == "newest":
        query = query.order_by(VerificationRequest.submitted_at.desc())
    elif sort_by == "priority":
        query = query.order_by(VerificationRequest.priority.desc(), VerificationRequest.submitted_at.asc())
    else:
        query = query.order_by(VerificationRequest.submitted_at.asc())
    return paginated(query, page, limit)


def get_request(request_id):
    request = db.session.get(VerificationRequest, request_id)
    if not request:
        raise NotFoundError("Verification request not found")
    return request


def format_rejection(reason, custom_message=None):
    if not reason:
        return custom_message
    base = REJECTION_MESSAGES[reason]
    if reason == "other" and custom_message:
        return custom_message
    return f"{base} {custom_message}" if custom_message else base


def review(request_id, admin_id, decision, rejection_reason=None, rejection_message=None,
           admin_notes=None, now=None):
    now = now or datetime.utcnow()
    request = get_request(request_id)
    if request.status not in OPEN_REQUEST_STATUSES:
        raise BadRequestError("This request has already been reviewed")

    if decision == "approve":
        request_target, user_target = RS.APPROVED, US.VERIFIED
    elif decision == "reject":
        if not rejection_reason:
            raise BadRequestError("Rejection reason is required")
        request_target, user_target = RS.REJECTED, US.REJECTED
    elif decision == "request_more_info":
        request_target, user_target = RS.MORE_INFO_NEEDED, US.EMAIL_VERIFIED
    elif decision == "flag_for_investigation":
        request_target, user_target = RS.PENDING, US.SUSPENDED
    else:
        raise BadRequestError("Invalid decision")

    user = request.user
    message = format_rejection(rejection_reason, rejection_message)

    if request.status != request_target.value:
        request.status = transition(request.status, request_target, "Request status")
    request.reviewed_at = now
    request.reviewed_by = admin_id
    request.rejection_reason = message
    request.admin_notes = admin_notes

    user.verification_notes = message
    if decision == "approve":
        user.verification_method = "student_id_upload"
        user.verification_date = now
        user.last_verification_date = now
        user.verified_by = admin_id
        user.next_verification_due = next_academic_september(now)
        user.requires_manual_review = False

    set_user_status(
        user, user_target, f"verification_{decision}",
        actor_id=admin_id,
        details={"request_id": request.id, "decision": decision,
                 "rejection_reason": rejection_reason, "admin_notes": admin_notes},
    )

    if decision == "reject" and rejection_reason == "suspected_fraud":
        # read back by check_email_suspicion for the same domain
        audit.record(
            FRAUD_REJECTION_ACTION, "university_domain", extract_domain(user.email),
            user_id=user.id, actor_id=admin_id, details={"request_id": request.id},
        )

    db.session.commit()
    logger.info(f"Verification request {request.id} reviewed by {admin_id}: {decision}")

    if decision == "approve":
        mails.send_verification_approved(user)
    elif decision == "reject":
        mails.send_verification_rejected(user, message)
    elif decision == "request_more_info":
        mails.send_verification_more_info(
            user,
            message or "We need additional information to complete your verification.",
            ["Please provide clear documents", "Ensure all information is visible"],
        )
    return request


def stats(now=None):
    now = now or datetime.utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)

    pending = VerificationRequest.query.filter_by(status=RS.PENDING.value).count()
    approved_today = VerificationRequest.query.filter(
        VerificationRequest.status == RS.APPROVED.value, VerificationRequest.reviewed_at >= today
    ).count()
    rejected_today = VerificationRequest.query.filter(
        VerificationRequest.status == RS.REJECTED.value, VerificationRequest.reviewed_at >= today
    ).count()
    approved_total = VerificationRequest.query.filter_by(status=RS.APPROVED.value).count()
    rejected_total = VerificationRequest.query.filter_by(status=RS.REJECTED.value).count()
    total_verified = User.query.filter_by(verification_status=US.VERIFIED.value).count()

    reviewed = (
        VerificationRequest.query
        .filter(
            VerificationRequest.status.in_((RS.APPROVED.value, RS.REJECTED.value)),
            VerificationRequest.reviewed_at.isnot(None),
        )
        .order_by(VerificationRequest.reviewed_at.desc())
        .limit(100)
        .all()
    )
    average_hours = 0
    if reviewed:
        hours = sum((r.reviewed_at - r.submitted_at).total_seconds() / 3600 for r in reviewed)
        average_hours = round(hours / len(reviewed), 1)

    oldest = (
        VerificationRequest.query.filter_by(status=RS.PENDING.value)
        .order_by(VerificationRequest.submitted_at.asc())
        .first()
    )
    decided = approved_total + rejected_total

    by_university = []
    for university in University.query.filter_by(is_active=True).order_by(University.name):
        by_university.append({
            "university_id": university.id,
            "university_name": university.name,
            "verified": User.query.filter_by(
                university_id=university.id, verification_status=US.VERIFIED.value
            ).count(),
            "pending": VerificationRequest.query.join(User, VerificationRequest.user_id == User.id).filter(
                User.university_id == university.id, VerificationRequest.status == RS.PENDING.value
            ).count(),
        })

    return {
        "pending": pending,
        "approved_today": approved_today,
        "rejected_today": rejected_today,
        "total_verified": total_verified,
        "approval_rate": round(approved_total / decided * 100, 2) if decided else 0,
        "average_review_time_hours": average_hours,
        "oldest_pending_days": (now - oldest.submitted_at).days if oldest else 0,
        "by_university": by_university,
    }


# Manual management

MANUAL_STATUSES = {
    "verified": US.VERIFIED,
    "suspended": US.SUSPENDED,
    "graduated": US.GRADUATED,
    "rejected": US.REJECTED,
}


def update_user_status(user_id, admin_id, status, reason=None, notes=None, now=None):
    now = now or datetime.utcnow()
    user = _get_user(user_id)
    target = MANUAL_STATUSES.get(status)
    if target is None:
        raise BadRequestError(f"Unsupported status: {status}")

    if user.verification_status == target.value:
        raise BadRequestError(f"User is already {status}")

    user.verification_notes = reason or notes
    if target == US.VERIFIED:
        user.verification_method = "manual_review"
        user.verification_date = now
        user.last_verification_date = now
        user.verified_by = admin_id
        user.next_verification_due = next_academic_september(now)

    set_user_status(user, target, "manual_status_update", actor_id=admin_id, reason=reason,
                    details={"notes": notes})
    db.session.commit()
    return {"message": f"User verification status updated to {status}"}


def trigger_reverification(user_id, admin_id, grace_days=DEFAULT_GRACE_DAYS, reason=None, now=None):
    now = now or datetime.utcnow()
    user = _get_user(user_id)
    due = now + timedelta(days=grace_days)
    reason = reason or "Re-verification required"

    user.next_verification_due = due
    user.verification_notes = reason
    audit.record(
        "reverification_triggered", "user", user.id, user_id=user.id, actor_id=admin_id,
        details={"reason": reason, "grace_period_days": grace_days, "due_date": due.isoformat()},
    )
    db.session.commit()

    mails.send_reverification_required(user, due, reason)
    return {"message": f"Re-verification triggered. User has {grace_days} days to re-verify."}


def check_for_duplicates(user_id):
    user = _get_user(user_id)
    duplicates = []

    def add(matches, reason):
        for other in matches:
            duplicates.append({
                "id": other.id,
                "email": other.email,
                "full_name": other.full_name,
                "created_at": other.created_at.isoformat() if other.created_at else None,
                "reason": reason,
            })

    if user.student_id_number:
        add(User.query.filter(User.student_id_number == user.student_id_number, User.id != user.id),
            "Same student ID")

    if user.university_id:
        add(User.query.filter(
            User.university_id == user.university_id,
            User.full_name == user.full_name,
            User.id != user.id,
        ), "Same name at university")

    return {"has_duplicates": bool(duplicates), "duplicates": duplicates}


def update_fraud_score(user_id, change, reason, actor_id=None):
    user = _get_user(user_id)
    previous = user.fraud_score or 0
    user.fraud_score = max(previous + change, 0)
    audit.record(
        "fraud_score_updated", "user", user.id, user_id=user.id, actor_id=actor_id,
        details={"score_change": change, "previous_score": previous,
                 "new_score": user.fraud_score, "reason": reason},
    )
    db.session.commit()
    return {"fraud_score": user.fraud_score}


# Grace periods

def enter_grace_period(user_id, days=DEFAULT_GRACE_DAYS, reason=None, actor_id=None, now=None):
    now = now or datetime.utcnow()
    user = _get_user(user_id)
    reason = reason or "Verification expired - grace period granted"
    ends_at = now + timedelta(days=days)

    set_user_status(
        user, US.GRACE_PERIOD, "grace_period_started", actor_id=actor_id, reason=reason,
        details={"grace_period_days": days, "grace_period_ends": ends_at.isoformat()},
    )
    user.next_verification_due = ends_at
    user.verification_notes = reason
    db.session.commit()

    mails.send_grace_period_started(user, ends_at, reason)
    return {
        "message": f"Grace period granted. You have {days} days to re-verify your student status.",
        "grace_period_ends": ends_at.isoformat(),
    }


def check_grace_period_eligibility(user_id, now=None):
    now = now or datetime.utcnow()
    user = _get_user(user_id)

    if user.verification_status == US.GRACE_PERIOD.value:
        return {"eligible": False, "reason": "User is already in grace period", "suggested_grace_period_days": 0}
    if user.verification_date is None:
        return {"eligible": False, "reason": "No previous verification history found",
                "suggested_grace_period_days": 0}

    verified_days = (now - user.verification_date).days
    eligible = False
    days = 7
    reason = ""
    if verified_days > 365:
        eligible, days, reason = True, 21, "Long-term verified user (1+ year)"
    elif verified_days > 180:
        eligible, days, reason = True, 14, "Established verified user (6+ months)"
    elif verified_days > 30:
        eligible, days, reason = True, 10, "Recent verified user (1+ month)"

    if (user.fraud_score or 0) > 50:
        days = max(3, days - 7)
        reason += " (adjusted for fraud history)"

    recent_rejections = (
        VerificationRequest.query
        .filter(
            VerificationRequest.user_id == user.id,
            VerificationRequest.status == RS.REJECTED.value,
            VerificationRequest.reviewed_at >= now - timedelta(days=30),
        )
        .count()
    )
    if recent_rejections > 2:
        eligible, days, reason = False, 0, "Too many recent rejections"
    elif recent_rejections > 0:
        days = max(5, days - 5)
        reason += " (adjusted for recent rejections)"

    return {
        "eligible": eligible,
        "reason": reason.strip() or "Standard grace period eligibility",
        "suggested_grace_period_days": days if eligible else 0,
    }


def extend_grace_period(user_id, days, admin_id, reason, now=None):
    now = now or datetime.utcnow()
    user = _get_user(user_id)
    if user.verification_status != US.GRACE_PERIOD.value:
        raise BadRequestError("User is not currently in grace period")

    current_end = user.next_verification_due or now
    new_end = current_end + timedelta(days=days)
    user.next_verification_due = new_end
    user.verification_notes = f"Grace period extended. {reason}"
    audit.record(
        "grace_period_extended", "user", user.id, user_id=user.id, actor_id=admin_id,
        details={"previous_end": current_end.isoformat(), "new_end": new_end.isoformat(),
                 "additional_days": days, "reason": reason},
    )
    db.session.commit()

    mails.send_grace_period_extended(user, new_end, reason)
    return {
        "message": f"Grace period extended by {days} days.",
        "new_grace_period_ends": new_end.isoformat(),
    }
