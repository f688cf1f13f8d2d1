from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from app.errors import BadRequestError, NotFoundError
from app.helpers.request_info import get_client_ip, get_user_agent
from app.schemas.discount import (
    DiscountCreate, DiscountUpdate, ClaimDiscount, RedeemClaim,
    ApproveDiscount, RejectDiscount, UseDiscount,
)
from app.services import analytics, approval, claims, discounts, fraud, recommendation, redemption
from app.services.eligibility import evaluate
from app.utils.auth import role_required, verified_student_required, get_current_user, current_user_id
from app.utils.validation import validate_body, pagination_args, bool_arg

bp = Blueprint("discounts", __name__)


def _location_args():
    lat = request.args.get("lat", type=float)
    lng = request.args.get("lng", type=float)
    if lat is None or lng is None:
        return None
    return (lat, lng)


def _brand_scope():
    user = get_current_user()
    if user.role == "admin":
        brand_id = request.args.get("brand_id", type=int)
        if brand_id is None:
            raise BadRequestError("brand_id is required")
        return brand_id
    return analytics.partner_brand_id(user)


# Catalogue

@bp.route("", methods=["POST"])
@jwt_required()
@role_required("admin", "partner")
@validate_body(DiscountCreate)
def create_discount(body):
    discount = discounts.create_discount(body.model_dump(), get_current_user())
    return jsonify(discount.to_dict()), 201


@bp.route("", methods=["GET"])
def list_discounts():
    page, limit = pagination_args()
    result = discounts.list_discounts(
        page=page,
        limit=limit,
        brand_id=request.args.get("brand_id", type=int),
        category_id=request.args.get("category_id", type=int),
        university_id=request.args.get("university_id", type=int),
        is_active=bool_arg("is_active"),
        is_featured=bool_arg("is_featured"),
    )
    return jsonify(result), 200


@bp.route("/<int:discount_id>", methods=["GET"])
def get_discount(discount_id):
    discount = discounts.get_discount(discount_id)
    data = discount.to_dict()
    data["usages_count"] = discount.usages.count()
    return jsonify(data), 200


@bp.route("/<int:discount_id>", methods=["PATCH"])
@jwt_required()
@role_required("admin", "partner")
@validate_body(DiscountUpdate)
def update_discount(discount_id, body):
    discount = discounts.update_discount(discount_id, body.model_dump(exclude_unset=True), get_current_user())
    return jsonify(discount.to_dict()), 200


@bp.route("/<int:discount_id>", methods=["DELETE"])
@jwt_required()
@role_required("admin", "partner")
def delete_discount(discount_id):
    return jsonify(discounts.delete_discount(discount_id, get_current_user())), 200


@bp.route("/<int:discount_id>/view", methods=["POST"])
def record_view(discount_id):
    return jsonify(discounts.increment_view_count(discount_id)), 200


@bp.route("/<int:discount_id>/click", methods=["POST"])
def record_click(discount_id):
    return jsonify(discounts.increment_click_count(discount_id)), 200


@bp.route("/<int:discount_id>/stats", methods=["GET"])
@jwt_required()
@role_required("admin", "partner")
def discount_stats(discount_id):
    return jsonify(discounts.get_stats(discount_id)), 200


# Legacy single-step usage

@bp.route("/<int:discount_id>/can-use", methods=["GET"])
@jwt_required()
def can_use(discount_id):
    return jsonify({"can_use": discounts.can_use(discount_id, current_user_id())}), 200


@bp.route("/<int:discount_id>/use", methods=["POST"])
@jwt_required()
@role_required("student")
@verified_student_required
@validate_body(UseDiscount)
def use_discount(discount_id, body):
    usage = discounts.record_usage(discount_id, current_user_id(), body.transaction_amount)
    return jsonify(usage.to_dict()), 201


# Claim and redeem

@bp.route("/<int:discount_id>/eligibility", methods=["GET"])
@jwt_required()
def check_eligibility(discount_id):
    discount = discounts.get_discount(discount_id)
    user = get_current_user()
    if not user:
        raise NotFoundError("User not found")
    return jsonify(evaluate(discount, user, location=_location_args())), 200


@bp.route("/<int:discount_id>/claim", methods=["POST"])
@jwt_required()
@role_required("student")
@verified_student_required
@validate_body(ClaimDiscount)
def claim_discount(discount_id, body):
    claim = claims.claim_discount(
        discount_id,
        current_user_id(),
        latitude=body.latitude,
        longitude=body.longitude,
        device_id=body.device_id,
        ip_address=get_client_ip(),
        user_agent=get_user_agent(),
    )
    return jsonify({
        "message": "Discount claimed successfully",
        "claim_code": claim.claim_code,
        "expires_at": claim.expires_at.isoformat(),
        "claim": claim.to_dict(),
    }), 201


@bp.route("/claims/<string:claim_code>/redeem", methods=["POST"])
@jwt_required()
@role_required("partner", "admin")
@validate_body(RedeemClaim)
def redeem_claim(claim_code, body):
    result = redemption.redeem_claim(
        claim_code,
        current_user_id(),
        body.transaction_amount,
        discount_amount=body.discount_amount,
        verification_notes=body.verification_notes,
        redeem_lat=body.redeem_lat,
        redeem_lng=body.redeem_lng,
    )
    return jsonify(result), 200


@bp.route("/claims/mine", methods=["GET"])
@jwt_required()
def my_claims():
    page, limit = pagination_args()
    return jsonify(claims.list_user_claims(current_user_id(), request.args.get("status"), page, limit)), 200


@bp.route("/recommended", methods=["GET"])
@jwt_required()
def recommended():
    limit = min(max(request.args.get("limit", 20, type=int) or 20, 1), 100)
    items = recommendation.recommend(current_user_id(), location=_location_args(), limit=limit)
    return jsonify({"data": [d.to_dict() for d in items]}), 200


@bp.route("/savings", methods=["GET"])
@jwt_required()
def my_savings():
    return jsonify(analytics.student_savings(current_user_id())), 200


# Admin

@bp.route("/admin/pending", methods=["GET"])
@jwt_required()
@role_required("admin")
def pending_approvals():
    page, limit = pagination_args()
    return jsonify(approval.list_pending(page, limit)), 200


@bp.route("/admin/<int:discount_id>/approve", methods=["POST"])
@jwt_required()
@role_required("admin")
@validate_body(ApproveDiscount)
def approve_discount(discount_id, body):
    discount = approval.approve_discount(discount_id, current_user_id(), body.notes)
    return jsonify({"message": "Discount approved successfully", "discount": discount.to_dict()}), 200


@bp.route("/admin/<int:discount_id>/reject", methods=["POST"])
@jwt_required()
@role_required("admin")
@validate_body(RejectDiscount)
def reject_discount(discount_id, body):
    discount = approval.reject_discount(discount_id, current_user_id(), body.reason)
    return jsonify({"message": "Discount rejected", "discount": discount.to_dict()}), 200


@bp.route("/admin/fraud-alerts", methods=["GET"])
@jwt_required()
@role_required("admin")
def fraud_alerts():
    page, limit = pagination_args()
    return jsonify(fraud.list_fraud_alerts(page, limit, request.args.get("status"))), 200


# Partner

@bp.route("/partner/discounts", methods=["GET"])
@jwt_required()
@role_required("partner", "admin")
def partner_discounts():
    page, limit = pagination_args()
    return jsonify(analytics.partner_discounts(_brand_scope(), page, limit)), 200


@bp.route("/partner/pending-verifications", methods=["GET"])
@jwt_required()
@role_required("partner", "admin")
def partner_pending_verifications():
    page, limit = pagination_args()
    return jsonify(analytics.partner_pending_verifications(_brand_scope(), page, limit)), 200


@bp.route("/partner/analytics", methods=["GET"])
@jwt_required()
@role_required("partner", "admin")
def partner_analytics():
    result = analytics.partner_analytics(
        _brand_scope(),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
    )
    return jsonify(result), 200
