from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

DiscountType = Literal["percentage", "fixed_amount", "promo_code", "buy_one_get_one", "free_item", "cashback"]
UsageLimitType = Literal["one_time", "daily", "weekly", "monthly", "unlimited"]

Money = Decimal
HHMM = r"^([01]\d|2[0-3]):[0-5]\d$"

# columns an update may change but never clear
REQUIRED_ON_UPDATE = (
    "brand_id", "title", "discount_type", "discount_value", "start_date", "end_date",
    "usage_limit_type", "usage_limit_per_user", "is_active", "is_featured", "is_exclusive",
)


def _naive_utc(value):
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class DiscountFields(BaseModel):
    category_id: Optional[int] = None
    description: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    how_to_use: Optional[str] = None
    image_url: Optional[str] = Field(None, max_length=255)

    min_purchase_amount: Optional[Money] = Field(None, ge=0, max_digits=12, decimal_places=2)
    max_discount_amount: Optional[Money] = Field(None, ge=0, max_digits=12, decimal_places=2)
    cashback_percentage: Optional[Money] = Field(None, ge=0, le=100, decimal_places=2)
    max_cashback_amount: Optional[Money] = Field(None, ge=0, max_digits=12, decimal_places=2)
    promo_code: Optional[str] = Field(None, max_length=50)

    active_time_start: Optional[str] = Field(None, pattern=HHMM)
    active_time_end: Optional[str] = Field(None, pattern=HHMM)
    active_days_of_week: Optional[List[int]] = None

    university_ids: Optional[List[int]] = None
    min_course_year: Optional[int] = Field(None, ge=1, le=6)
    is_first_time_only: Optional[bool] = None
    requires_location: Optional[bool] = None
    location_lat: Optional[float] = Field(None, ge=-90, le=90)
    location_lng: Optional[float] = Field(None, ge=-180, le=180)
    location_radius: Optional[int] = Field(None, gt=0)

    usage_limit_per_user: Optional[int] = Field(None, ge=1)
    daily_claim_limit: Optional[int] = Field(None, ge=1)
    weekly_claim_limit: Optional[int] = Field(None, ge=1)
    monthly_claim_limit: Optional[int] = Field(None, ge=1)
    total_usage_limit: Optional[int] = Field(None, ge=1)
    claim_expiry_hours: Optional[int] = Field(None, ge=1, le=720)

    is_featured: Optional[bool] = None
    is_exclusive: Optional[bool] = None

    @field_validator("active_days_of_week")
    @classmethod
    def check_days(cls, days):
        if days is not None and any(d < 0 or d > 6 for d in days):
            raise ValueError("days of week must be between 0 (Sunday) and 6 (Saturday)")
        return days

    @model_validator(mode="after")
    def check_window(self):
        start = getattr(self, "start_date", None)
        end = getattr(self, "end_date", None)
        if start and end and end <= start:
            raise ValueError("end_date must be after start_date")
        return self


class DiscountCreate(DiscountFields):
    brand_id: int
    title: str = Field(..., min_length=1, max_length=255)
    discount_type: DiscountType
    discount_value: Money = Field(..., ge=0, max_digits=12, decimal_places=2)
    start_date: datetime
    end_date: datetime
    usage_limit_type: UsageLimitType = "one_time"

    @field_validator("start_date", "end_date")
    @classmethod
    def strip_timezone(cls, value):
        return _naive_utc(value)


class DiscountUpdate(DiscountFields):
    brand_id: Optional[int] = None
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Money] = Field(None, ge=0, max_digits=12, decimal_places=2)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    usage_limit_type: Optional[UsageLimitType] = None
    is_active: Optional[bool] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def strip_timezone(cls, value):
        return _naive_utc(value)

    @model_validator(mode="after")
    def check_required_not_cleared(self):
        cleared = sorted(k for k in REQUIRED_ON_UPDATE if k in self.model_fields_set and getattr(self, k) is None)
        if cleared:
            raise ValueError(f"{', '.join(cleared)} cannot be null")
        return self


class ClaimDiscount(BaseModel):
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    device_id: Optional[str] = Field(None, max_length=255)


class RedeemClaim(BaseModel):
    transaction_amount: Money = Field(..., ge=0, max_digits=12, decimal_places=2)
    discount_amount: Optional[Money] = Field(None, ge=0, max_digits=12, decimal_places=2)
    verification_notes: Optional[str] = None
    redeem_lat: Optional[float] = Field(None, ge=-90, le=90)
    redeem_lng: Optional[float] = Field(None, ge=-180, le=180)


class ApproveDiscount(BaseModel):
    notes: Optional[str] = None


class RejectDiscount(BaseModel):
    reason: str = Field(..., min_length=1)


class UseDiscount(BaseModel):
    transaction_amount: Optional[Money] = Field(None, ge=0, max_digits=12, decimal_places=2)
