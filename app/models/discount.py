from datetime import datetime
from app.extensions import db
from app.models.states import ApprovalStatus, ClaimStatus


def _money(value):
    return float(value) if value is not None else None


def _iso(value):
    return value.isoformat() if value else None


class Discount(db.Model):
    __tablename__ = "discount"

    id = db.Column(db.Integer, primary_key=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brand.id"), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("category.id"), nullable=True)

    title = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(300), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    terms_and_conditions = db.Column(db.Text, nullable=True)
    how_to_use = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(255), nullable=True)

    # Monetary terms
    discount_type = db.Column(db.Enum(
        "percentage", "fixed_amount", "promo_code", "buy_one_get_one", "free_item", "cashback",
        name="discount_type"
    ), nullable=False)
    discount_value = db.Column(db.Numeric(12, 2), nullable=False)
    min_purchase_amount = db.Column(db.Numeric(12, 2), nullable=True)
    max_discount_amount = db.Column(db.Numeric(12, 2), nullable=True)
    cashback_percentage = db.Column(db.Numeric(5, 2), nullable=True)
    max_cashback_amount = db.Column(db.Numeric(12, 2), nullable=True)
    promo_code = db.Column(db.String(50), unique=True, nullable=True)

    # Validity window
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    active_time_start = db.Column(db.String(5), nullable=True)  # HH:MM
    active_time_end = db.Column(db.String(5), nullable=True)
    active_days_of_week = db.Column(db.JSON, default=list)  # 0 = Sunday

    # Eligibility
    university_ids = db.Column(db.JSON, default=list)
    min_course_year = db.Column(db.Integer, nullable=True)
    is_first_time_only = db.Column(db.Boolean, default=False)
    requires_location = db.Column(db.Boolean, default=False)
    location_lat = db.Column(db.Numeric(10, 7), nullable=True)
    location_lng = db.Column(db.Numeric(10, 7), nullable=True)
    location_radius = db.Column(db.Integer, nullable=True)  # meters

    # Quotas
    usage_limit_per_user = db.Column(db.Integer, default=1, nullable=False)
    usage_limit_type = db.Column(db.Enum(
        "one_time", "daily", "weekly", "monthly", "unlimited",
        name="usage_limit_type"
    ), nullable=False, default="one_time")
    daily_claim_limit = db.Column(db.Integer, nullable=True)
    weekly_claim_limit = db.Column(db.Integer, nullable=True)
    monthly_claim_limit = db.Column(db.Integer, nullable=True)
    total_usage_limit = db.Column(db.Integer, nullable=True)
    current_usage_count = db.Column(db.Integer, default=0, nullable=False)
    claim_expiry_hours = db.Column(db.Integer, nullable=True)

    # Lifecycle
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_featured = db.Column(db.Boolean, default=False, nullable=False)
    is_exclusive = db.Column(db.Boolean, default=False, nullable=False)
    approval_status = db.Column(db.String(16), nullable=False, default=ApprovalStatus.PENDING.value)
    approved_by = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    # Denormalized analytics
    view_count = db.Column(db.Integer, default=0, nullable=False)
    click_count = db.Column(db.Integer, default=0, nullable=False)
    total_claims_count = db.Column(db.Integer, default=0, nullable=False)
    total_redemptions = db.Column(db.Integer, default=0, nullable=False)
    total_savings_generated = db.Column(db.Numeric(14, 2), default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    brand = db.relationship("Brand", back_populates="discounts")
    category = db.relationship("Category")
    claims = db.relationship("DiscountClaim", back_populates="discount", lazy="dynamic")
    usages = db.relationship("DiscountUsage", back_populates="discount", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "description": self.description,
            "terms_and_conditions": self.terms_and_conditions,
            "how_to_use": self.how_to_use,
            "image_url": self.image_url,
            "brand": self.brand.to_dict() if self.brand else None,
            "category": self.category.to_dict() if self.category else None,
            "discount_type": self.discount_type,
            "discount_value": _money(self.discount_value),
            "min_purchase_amount": _money(self.min_purchase_amount),
            "max_discount_amount": _money(self.max_discount_amount),
            "cashback_percentage": _money(self.cashback_percentage),
            "max_cashback_amount": _money(self.max_cashback_amount),
            "promo_code": self.promo_code,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "active_time_start": self.active_time_start,
            "active_time_end": self.active_time_end,
            "active_days_of_week": self.active_days_of_week or [],
            "university_ids": self.university_ids or [],
            "min_course_year": self.min_course_year,
            "is_first_time_only": self.is_first_time_only,
            "requires_location": self.requires_location,
            "location_lat": _money(self.location_lat),
            "location_lng": _money(self.location_lng),
            "location_radius": self.location_radius,
            "usage_limit_per_user": self.usage_limit_per_user,
            "usage_limit_type": self.usage_limit_type,
            "total_usage_limit": self.total_usage_limit,
            "current_usage_count": self.current_usage_count,
            "is_active": self.is_active,
            "is_featured": self.is_featured,
            "approval_status": self.approval_status,
            "rejection_reason": self.rejection_reason,
            "view_count": self.view_count,
            "click_count": self.click_count,
            "total_claims_count": self.total_claims_count,
            "total_redemptions": self.total_redemptions,
            "total_savings_generated": _money(self.total_savings_generated),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Discount {self.slug}>"


class DiscountClaim(db.Model):
    __tablename__ = "discount_claim"

    id = db.Column(db.Integer, primary_key=True)
    discount_id = db.Column(db.Integer, db.ForeignKey("discount.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    claim_code = db.Column(db.String(32), unique=True, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=ClaimStatus.CLAIMED.value)
    claimed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)

    ip_address = db.Column(db.String(100), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    device_id = db.Column(db.String(255), nullable=True)
    claim_lat = db.Column(db.Numeric(10, 7), nullable=True)
    claim_lng = db.Column(db.Numeric(10, 7), nullable=True)

    redeemed_at = db.Column(db.DateTime, nullable=True)
    verified_by = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True)
    verification_notes = db.Column(db.Text, nullable=True)
    transaction_amount = db.Column(db.Numeric(12, 2), nullable=True)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=True)
    cashback_amount = db.Column(db.Numeric(12, 2), nullable=True)
    redeem_lat = db.Column(db.Numeric(10, 7), nullable=True)
    redeem_lng = db.Column(db.Numeric(10, 7), nullable=True)

    discount = db.relationship("Discount", back_populates="claims")
    user = db.relationship("User", back_populates="claims", foreign_keys=[user_id])

    def to_dict(self, include_discount=True):
        data = {
            "id": self.id,
            "discount_id": self.discount_id,
            "user_id": self.user_id,
            "claim_code": self.claim_code,
            "status": self.status,
            "claimed_at": _iso(self.claimed_at),
            "expires_at": _iso(self.expires_at),
            "redeemed_at": _iso(self.redeemed_at),
            "verified_by": self.verified_by,
            "verification_notes": self.verification_notes,
            "transaction_amount": _money(self.transaction_amount),
            "discount_amount": _money(self.discount_amount),
            "cashback_amount": _money(self.cashback_amount),
        }
        if include_discount and self.discount:
            data["discount"] = {
                "id": self.discount.id,
                "title": self.discount.title,
                "discount_type": self.discount.discount_type,
                "discount_value": _money(self.discount.discount_value),
                "brand": self.discount.brand.to_dict() if self.discount.brand else None,
            }
        return data


class DiscountUsage(db.Model):
    """Usage record of the older single-step flow, kept for first-time checks."""
    __tablename__ = "discount_usage"

    id = db.Column(db.Integer, primary_key=True)
    discount_id = db.Column(db.Integer, db.ForeignKey("discount.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    transaction_amount = db.Column(db.Numeric(12, 2), nullable=True)
    used_at = db.Column(db.DateTime, default=datetime.utcnow)

    discount = db.relationship("Discount", back_populates="usages")

    def to_dict(self):
        return {
            "id": self.id,
            "discount_id": self.discount_id,
            "user_id": self.user_id,
            "transaction_amount": _money(self.transaction_amount),
            "used_at": _iso(self.used_at),
        }


class FraudAlert(db.Model):
    __tablename__ = "fraud_alert"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    discount_id = db.Column(db.Integer, db.ForeignKey("discount.id"), nullable=True)
    alert_type = db.Column(db.String(50), nullable=False)
    description = db.Column(db.Text, nullable=False)
    severity = db.Column(db.Integer, default=1, nullable=False)
    status = db.Column(db.String(20), default="open", nullable=False)
    # open | reviewed | dismissed
    ip_address = db.Column(db.String(100), nullable=True)
    device_id = db.Column(db.String(255), nullable=True)
    evidence = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship("User")
    discount = db.relationship("Discount")

    def to_dict(self):
        return {
            "id": self.id,
            "user": {"id": self.user.id, "email": self.user.email, "full_name": self.user.full_name} if self.user else None,
            "discount": {"id": self.discount.id, "title": self.discount.title} if self.discount else None,
            "alert_type": self.alert_type,
            "description": self.description,
            "severity": self.severity,
            "status": self.status,
            "ip_address": self.ip_address,
            "device_id": self.device_id,
            "evidence": self.evidence,
            "created_at": _iso(self.created_at),
        }
