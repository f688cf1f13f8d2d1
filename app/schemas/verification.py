from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, EmailStr, Field

Decision = Literal["approve", "reject", "request_more_info", "flag_for_investigation"]
RejectionReason = Literal[
    "id_not_clear", "id_expired", "name_mismatch", "university_not_recognized",
    "suspected_fraud", "incomplete_information", "duplicate_account", "other",
]
DocumentType = Literal["student_id_front", "student_id_back", "enrollment_letter", "transcript", "other"]


class VerificationDocument(BaseModel):
    document_type: DocumentType
    file_url: str = Field(..., min_length=1, max_length=500)
    original_filename: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = Field(None, ge=0)


class SubmitVerification(BaseModel):
    university_id: Optional[int] = None
    student_id_number: Optional[str] = Field(None, max_length=50)
    faculty: Optional[str] = Field(None, max_length=255)
    course_year: Optional[int] = Field(None, ge=1, le=6)
    graduation_year: Optional[int] = Field(None, ge=2000, le=2100)
    expected_graduation_date: Optional[datetime] = None
    user_notes: Optional[str] = Field(None, max_length=2000)
    documents: List[VerificationDocument] = []


class VerifyEmail(BaseModel):
    token: str = Field(..., min_length=1)


class ReviewVerification(BaseModel):
    decision: Decision
    rejection_reason: Optional[RejectionReason] = None
    rejection_message: Optional[str] = None
    admin_notes: Optional[str] = None


class UpdateVerificationStatus(BaseModel):
    status: Literal["verified", "suspended", "graduated", "rejected"]
    reason: Optional[str] = None
    notes: Optional[str] = None


class TriggerReverification(BaseModel):
    grace_period_days: int = Field(14, ge=1, le=90)
    reason: Optional[str] = None


class FraudScoreChange(BaseModel):
    change: int
    reason: str = Field(..., min_length=1)


class EnterGracePeriod(BaseModel):
    days: int = Field(14, ge=1, le=90)
    reason: Optional[str] = None


class ExtendGracePeriod(BaseModel):
    days: int = Field(..., ge=1, le=90)
    reason: str = Field(..., min_length=1)


class AddUniversityDomain(BaseModel):
    university_id: int
    domain: str = Field(..., min_length=3, max_length=255)
    auto_verify: bool = True


class DomainStatus(BaseModel):
    is_active: bool


class AnalyzeEmail(BaseModel):
    email: EmailStr
