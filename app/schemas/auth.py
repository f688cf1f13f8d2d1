from typing import Optional
from pydantic import BaseModel, EmailStr, Field


class RegisterUser(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    university_id: Optional[int] = None
    course_year: Optional[int] = Field(None, ge=1, le=6)


class LoginUser(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
