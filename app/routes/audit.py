from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from app.services import audit
from app.utils.auth import role_required
from app.utils.validation import pagination_args

bp = Blueprint("audit", __name__)


@bp.route("", methods=["GET"])
@jwt_required()
@role_required("admin")
def list_audit_entries():
    _, limit = pagination_args(default_limit=100, max_limit=100)
    entries = audit.list_entries(
        user_id=request.args.get("user_id", type=int),
        action=request.args.get("action"),
        entity_type=request.args.get("entity_type"),
        entity_id=request.args.get("entity_id"),
        limit=limit,
    )
    return jsonify({"data": [e.to_dict() for e in entries]}), 200
