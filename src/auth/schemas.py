from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime

from src.models import UserRole, UserStatus, CompanyStatus

class UserBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    phone: Optional[str] = None
    country_code: Optional[str] = None

class UserCreate(UserBase):
    password: str = Field(..., min_length=8)

class CompanyRegistration(BaseModel):
    """Patron account and the company awaiting approval, created together"""
    owner: UserCreate
    company_name: str = Field(..., min_length=2, max_length=255)
    company_email: Optional[EmailStr] = None
    company_phone: Optional[str] = None
    company_address: Optional[str] = None
    license_number: Optional[str] = None
    description: Optional[str] = None

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class User(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    country_code: Optional[str] = None
    role: UserRole
    status: UserStatus
    company_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True

class CompanySummary(BaseModel):
    id: int
    name: str
    status: CompanyStatus

    class Config:
        from_attributes = True

class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: User

class CompanyRegistrationResponse(BaseModel):
    user: User
    company: CompanySummary
    message: str

class AdminRegistration(UserCreate):
    """Admin accounts require the platform's registration secret"""
    registration_secret: str
