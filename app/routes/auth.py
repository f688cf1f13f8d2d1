from flask import Blueprint, jsonify, current_app
from app.extensions import db
from app.models import User
from flask_jwt_extended import create_access_token, jwt_required, create_refresh_token
from app.schemas.auth import RegisterUser, LoginUser
from app.services import verification
from app.utils.auth import current_user_id, get_current_user
from app.utils.validation import validate_body

bp = Blueprint('auth', __name__)


def _tokens(user):
    return {
        "access_token": create_access_token(identity=str(user.id), additional_claims={"role": user.role}),
        "refresh_token": create_refresh_token(identity=str(user.id)),
    }


@bp.route('/register', methods=['POST'])
@validate_body(RegisterUser)
def register(body):
    email = body.email.strip().lower()

    if User.query.filter_by(email=email).first():
        return jsonify({"error": "Email already exists."}), 409

    user = User(
        full_name=body.full_name.strip().title(),
        email=email,
        role="student",
        university_id=body.university_id,
        course_year=body.course_year,
    )
    user.set_password(body.password)
    db.session.add(user)
    db.session.commit()

    verification.send_verification_email(user.id)
    current_app.logger.info(f"Registered student {user.id}")

    return jsonify({
        "message": "Registration successful. Please check your email to verify your account.",
        **_tokens(user),
        "user": user.to_dict(),
    }), 201


@bp.route('/login', methods=['POST'])
@validate_body(LoginUser)
def login(body):
    user = User.query.filter_by(email=body.email.strip().lower()).first()

    if not user or not user.check_password(body.password):
        return jsonify({"error": "Invalid credentials"}), 401

    if not user.is_active:
        return jsonify({"error": "Account suspended"}), 403

    return jsonify({**_tokens(user), "user": user.to_dict()}), 200


@bp.route('/refresh', methods=['POST'])
@jwt_required(refresh=True)
def refresh():
    user = db.session.get(User, current_user_id())
    if not user:
        return jsonify({"error": "User not found"}), 404

    access_token = create_access_token(identity=str(user.id), additional_claims={"role": user.role})
    return jsonify({"access_token": access_token}), 200


@bp.route('/me', methods=['GET'])
@jwt_required()
def me():
    user = get_current_user()
    if not user:
        return jsonify({"error": "User not found"}), 404
    return jsonify(user.to_dict()), 200
