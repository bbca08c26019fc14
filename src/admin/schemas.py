from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal

from src.company.schemas import Company

class CompanyDecision(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)

class CompanyWithOwner(Company):
    owner_name: Optional[str] = None
    owner_email: Optional[str] = None

class PlatformStats(BaseModel):
    total_companies: int
    pending_companies: int
    approved_companies: int
    suspended_companies: int
    total_users: int
    total_clients: int
    total_employees: int
    total_trips: int
    total_reservations: int
    confirmed_reservations: int
    tickets_issued: int
    revenue: Decimal
    generated_at: datetime
