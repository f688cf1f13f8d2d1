from functools import wraps
from flask import jsonify
from flask_jwt_extended import get_jwt_identity
from app.extensions import db
from app.models import User
from app.models.states import UserVerificationStatus

# Statuses that keep full student access
ACCESS_STATUSES = {
    UserVerificationStatus.VERIFIED.value,
    UserVerificationStatus.GRACE_PERIOD.value,
}


def current_user_id():
    identity = get_jwt_identity()
    return int(identity) if identity is not None else None


def get_current_user():
    user_id = current_user_id()
    return db.session.get(User, user_id) if user_id is not None else None


def role_required(*roles):
    """Must be stacked under @jwt_required()."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = get_current_user()
            if not user:
                return jsonify({"error": "User not found"}), 404
            if not user.is_active:
                return jsonify({"error": "Account suspended"}), 403
            if user.role not in roles:
                return jsonify({"error": "Unauthorized"}), 403
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def verified_student_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user = get_current_user()
        if not user:
            return jsonify({"error": "User not found"}), 403
        if not user.is_active:
            return jsonify({"error": "Your account has been deactivated"}), 403
        if not user.is_email_verified:
            return jsonify({"error": "Please verify your email address to access this feature"}), 403

        if user.verification_status not in ACCESS_STATUSES:
            messages = {
                UserVerificationStatus.PENDING_VERIFICATION.value:
                    "Your verification is under review. Please wait for approval.",
                UserVerificationStatus.REJECTED.value:
                    "Your verification was rejected. Please check the reason and re-submit.",
                UserVerificationStatus.VERIFICATION_EXPIRED.value:
                    "Your student verification has expired. Please re-verify.",
                UserVerificationStatus.SUSPENDED.value:
                    "Your account is suspended. Please contact support.",
            }
            message = messages.get(
                user.verification_status,
                "Student verification required to access this feature",
            )
            return jsonify({"error": message}), 403
        return fn(*args, **kwargs)
    return wrapper
