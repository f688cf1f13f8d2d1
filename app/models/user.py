from app.extensions import db
from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash
from app.models.states import UserVerificationStatus

class User(db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=True)
    role = db.Column(db.Enum("student", "partner", "admin", name="user_role"), nullable=False, default="student")
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Partners act on behalf of one brand
    brand_id = db.Column(db.Integer, db.ForeignKey("brand.id"), nullable=True)

    # Student profile
    university_id = db.Column(db.Integer, db.ForeignKey("university.id"), nullable=True)
    course_year = db.Column(db.Integer, nullable=True)
    student_id_number = db.Column(db.String(50), nullable=True)
    faculty = db.Column(db.String(255), nullable=True)
    graduation_year = db.Column(db.Integer, nullable=True)

    # Email verification
    is_email_verified = db.Column(db.Boolean, default=False)
    email_verification_token = db.Column(db.String(128), nullable=True, index=True)

    # Student verification
    verification_status = db.Column(db.String(32), nullable=False, default=UserVerificationStatus.UNVERIFIED.value)
    verification_method = db.Column(db.String(32), nullable=True)
    verification_date = db.Column(db.DateTime, nullable=True)
    last_verification_date = db.Column(db.DateTime, nullable=True)
    next_verification_due = db.Column(db.DateTime, nullable=True)
    expected_graduation_date = db.Column(db.DateTime, nullable=True)
    verification_notes = db.Column(db.Text, nullable=True)
    verification_attempts = db.Column(db.Integer, default=0, nullable=False)
    verified_by = db.Column(db.Integer, nullable=True)
    requires_manual_review = db.Column(db.Boolean, default=False)
    fraud_score = db.Column(db.Integer, default=0, nullable=False)

    # Denormalized savings counters, updated on redemption
    total_discounts_used = db.Column(db.Integer, default=0, nullable=False)
    total_savings = db.Column(db.Numeric(12, 2), default=0, nullable=False)

    university = db.relationship("University", back_populates="students")
    brand = db.relationship("Brand")
    claims = db.relationship(
        "DiscountClaim", back_populates="user", foreign_keys="DiscountClaim.user_id", lazy="dynamic"
    )
    verification_requests = db.relationship(
        "VerificationRequest",
        back_populates="user",
        foreign_keys="VerificationRequest.user_id",
        lazy="dynamic",
    )

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return bool(self.password_hash) and check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            "id": self.id,
            "full_name": self.full_name,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "brand_id": self.brand_id,
            "university_id": self.university_id,
            "course_year": self.course_year,
            "is_email_verified": self.is_email_verified,
            "verification_status": self.verification_status,
            "next_verification_due": self.next_verification_due.isoformat() if self.next_verification_due else None,
            "total_discounts_used": self.total_discounts_used,
            "total_savings": float(self.total_savings or 0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.email}>"
