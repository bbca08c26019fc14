from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional
from datetime import datetime

from src.auth.schemas import User
from src.models import UserRole, UserStatus

# Access codes
class GenerateCodeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    employee_id: int = Field(..., alias="employeeId")

class GeneratedCode(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str
    expires_at: datetime = Field(..., alias="expiresAt")

class VerifyCodeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone: str = Field(..., min_length=4, max_length=30)
    country_code: str = Field(..., alias="countryCode", max_length=8)
    code: str = Field(..., min_length=4, max_length=16)

class EmployeeSession(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: User

# Employee management
class EmployeeCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    phone: str = Field(..., min_length=4, max_length=30)
    country_code: str = Field(..., max_length=8)
    email: Optional[EmailStr] = None
    role: UserRole

class EmployeeStatusUpdate(BaseModel):
    status: UserStatus
