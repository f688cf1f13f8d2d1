from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from app.schemas.verification import (
    SubmitVerification, VerifyEmail, ReviewVerification, UpdateVerificationStatus,
    TriggerReverification, FraudScoreChange, EnterGracePeriod, ExtendGracePeriod,
    AddUniversityDomain, DomainStatus, AnalyzeEmail,
)
from app.services import verification, university_domains
from app.utils.auth import role_required, current_user_id
from app.utils.validation import validate_body, pagination_args, bool_arg

bp = Blueprint("verification", __name__)


# Student side

@bp.route("/send-email", methods=["POST"])
@jwt_required()
def send_email():
    return jsonify(verification.send_verification_email(current_user_id())), 200


@bp.route("/verify-email", methods=["POST"])
@validate_body(VerifyEmail)
def verify_email(body):
    return jsonify(verification.verify_email(body.token)), 200


@bp.route("/requests", methods=["POST"])
@jwt_required()
@validate_body(SubmitVerification)
def submit_request(body):
    request_obj = verification.submit_request(current_user_id(), body)
    return jsonify(request_obj.to_dict()), 201


@bp.route("/status", methods=["GET"])
@jwt_required()
def status():
    return jsonify(verification.get_status(current_user_id())), 200


@bp.route("/history", methods=["GET"])
@jwt_required()
def history():
    return jsonify({"data": [r.to_dict() for r in verification.history(current_user_id())]}), 200


# Admin review

@bp.route("/requests", methods=["GET"])
@jwt_required()
@role_required("admin")
def list_requests():
    page, limit = pagination_args()
    result = verification.list_pending(
        page=page,
        limit=limit,
        status=request.args.get("status"),
        request_type=request.args.get("request_type"),
        university_id=request.args.get("university_id", type=int),
        sort_by=request.args.get("sort_by", "oldest"),
    )
    return jsonify(result), 200


@bp.route("/requests/<int:request_id>", methods=["GET"])
@jwt_required()
@role_required("admin")
def get_request(request_id):
    return jsonify(verification.get_request(request_id).to_dict()), 200


@bp.route("/requests/<int:request_id>/review", methods=["POST"])
@jwt_required()
@role_required("admin")
@validate_body(ReviewVerification)
def review_request(request_id, body):
    reviewed = verification.review(
        request_id,
        current_user_id(),
        body.decision,
        rejection_reason=body.rejection_reason,
        rejection_message=body.rejection_message,
        admin_notes=body.admin_notes,
    )
    return jsonify(reviewed.to_dict()), 200


@bp.route("/stats", methods=["GET"])
@jwt_required()
@role_required("admin")
def stats():
    return jsonify(verification.stats()), 200


# Admin user management

@bp.route("/users/<int:user_id>/status", methods=["PATCH"])
@jwt_required()
@role_required("admin")
@validate_body(UpdateVerificationStatus)
def update_user_status(user_id, body):
    result = verification.update_user_status(user_id, current_user_id(), body.status, body.reason, body.notes)
    return jsonify(result), 200


@bp.route("/users/<int:user_id>/reverify", methods=["POST"])
@jwt_required()
@role_required("admin")
@validate_body(TriggerReverification)
def trigger_reverification(user_id, body):
    result = verification.trigger_reverification(user_id, current_user_id(), body.grace_period_days, body.reason)
    return jsonify(result), 200


@bp.route("/users/<int:user_id>/duplicates", methods=["GET"])
@jwt_required()
@role_required("admin")
def duplicates(user_id):
    return jsonify(verification.check_for_duplicates(user_id)), 200


@bp.route("/users/<int:user_id>/fraud-score", methods=["POST"])
@jwt_required()
@role_required("admin")
@validate_body(FraudScoreChange)
def fraud_score(user_id, body):
    result = verification.update_fraud_score(user_id, body.change, body.reason, actor_id=current_user_id())
    return jsonify(result), 200


@bp.route("/users/<int:user_id>/grace-period", methods=["POST"])
@jwt_required()
@role_required("admin")
@validate_body(EnterGracePeriod)
def enter_grace_period(user_id, body):
    result = verification.enter_grace_period(user_id, body.days, body.reason, actor_id=current_user_id())
    return jsonify(result), 200


@bp.route("/users/<int:user_id>/grace-period", methods=["GET"])
@jwt_required()
@role_required("admin")
def grace_period_eligibility(user_id):
    return jsonify(verification.check_grace_period_eligibility(user_id)), 200


@bp.route("/users/<int:user_id>/grace-period", methods=["PATCH"])
@jwt_required()
@role_required("admin")
@validate_body(ExtendGracePeriod)
def extend_grace_period(user_id, body):
    result = verification.extend_grace_period(user_id, body.days, current_user_id(), body.reason)
    return jsonify(result), 200


# University domains

@bp.route("/university-domains", methods=["GET"])
def list_domains():
    include_inactive = bool_arg("include_inactive") or False
    domains = university_domains.list_domains(include_inactive=include_inactive)
    return jsonify({"data": [d.to_dict() for d in domains]}), 200


@bp.route("/university-domains", methods=["POST"])
@jwt_required()
@role_required("admin")
@validate_body(AddUniversityDomain)
def add_domain(body):
    entry = university_domains.add_domain(body.university_id, body.domain, body.auto_verify)
    return jsonify(entry.to_dict()), 201


@bp.route("/university-domains/<int:domain_id>/status", methods=["PATCH"])
@jwt_required()
@role_required("admin")
@validate_body(DomainStatus)
def domain_status(domain_id, body):
    return jsonify(university_domains.set_domain_active(domain_id, body.is_active).to_dict()), 200


@bp.route("/analyze-email", methods=["POST"])
@jwt_required()
@role_required("admin")
@validate_body(AnalyzeEmail)
def analyze_email(body):
    return jsonify({
        "analysis": university_domains.analyze_email(body.email),
        "suspicion": university_domains.check_email_suspicion(body.email),
    }), 200
