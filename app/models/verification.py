from app.extensions import db
from datetime import datetime
from app.models.states import VerificationRequestStatus


class VerificationRequest(db.Model):
    __tablename__ = "verification_request"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    request_type = db.Column(db.Enum("initial", "reverification", name="verification_request_type"), nullable=False, default="initial")
    status = db.Column(db.String(32), nullable=False, default=VerificationRequestStatus.PENDING.value)
    priority = db.Column(db.Integer, default=1, nullable=False)
    user_notes = db.Column(db.Text, nullable=True)
    documents = db.Column(db.JSON, default=list)
    submitted_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    reviewed_by = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    admin_notes = db.Column(db.Text, nullable=True)

    user = db.relationship("User", back_populates="verification_requests", foreign_keys=[user_id])
    reviewer = db.relationship("User", foreign_keys=[reviewed_by])

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "request_type": self.request_type,
            "status": self.status,
            "priority": self.priority,
            "user_notes": self.user_notes,
            "documents": self.documents or [],
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "reviewed_by": self.reviewed_by,
            "rejection_reason": self.rejection_reason,
            "admin_notes": self.admin_notes,
            "user": {
                "id": self.user.id,
                "email": self.user.email,
                "full_name": self.user.full_name,
                "university_id": self.user.university_id,
            } if self.user else None,
        }
