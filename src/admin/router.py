from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from src.activity import ActivityService
from src.activity.schemas import ActivityLogEntry
from src.admin.admin_service import AdminManagementService
from src.admin.schemas import CompanyDecision, CompanyWithOwner, PlatformStats
from src.auth.dependencies import require_admin
from src.auth.schemas import User
from src.bookings.booking_service import BookingService
from src.bookings.schemas import ExpirationResult
from src.company.schemas import Company
from src.database import get_db, utcnow
from src.models import ActivityType, CompanyStatus
from src.realtime import MessageBus, get_message_bus

router = APIRouter()

# ================================
# Companies
# ================================
@router.get("/companies", response_model=List[CompanyWithOwner])
def list_companies(
    company_status: Optional[CompanyStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
):
    """List companies, optionally filtered by approval status"""
    companies = AdminManagementService(db).list_companies(company_status, limit=limit, offset=offset)
    return [
        CompanyWithOwner.model_validate(company).model_copy(
            update={"owner_name": company.owner.name, "owner_email": company.owner.email}
        )
        for company in companies
    ]

@router.post("/companies/{company_id}/approve", response_model=Company)
def approve_company(company_id: int, admin=Depends(require_admin), db: Session = Depends(get_db)):
    return AdminManagementService(db).approve_company(admin, company_id)

@router.post("/companies/{company_id}/reject", response_model=Company)
def reject_company(
    company_id: int,
    decision: Optional[CompanyDecision] = None,
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
):
    return AdminManagementService(db).reject_company(admin, company_id, decision.reason if decision else None)

@router.post("/companies/{company_id}/suspend", response_model=Company)
def suspend_company(
    company_id: int,
    decision: Optional[CompanyDecision] = None,
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
):
    return AdminManagementService(db).suspend_company(admin, company_id, decision.reason if decision else None)

# ================================
# Users
# ================================
@router.post("/users/{user_id}/suspend", response_model=User)
def suspend_user(
    user_id: int,
    decision: Optional[CompanyDecision] = None,
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
):
    return AdminManagementService(db).suspend_user(admin, user_id, decision.reason if decision else None)

# ================================
# Monitoring
# ================================
@router.get("/stats", response_model=PlatformStats)
def get_platform_stats(admin=Depends(require_admin), db: Session = Depends(get_db)):
    return AdminManagementService(db).platform_stats()

@router.get("/activities", response_model=List[ActivityLogEntry])
def list_activities(
    company_id: Optional[int] = Query(None),
    activity_type: Optional[ActivityType] = Query(None, alias="type"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Audit trail, newest first"""
    return ActivityService.list_activities(db, company_id=company_id, activity_type=activity_type, limit=limit, offset=offset)

@router.post("/reservations/expire", response_model=ExpirationResult)
def expire_stale_reservations(
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
    bus: MessageBus = Depends(get_message_bus),
):
    """Release pending holds whose payment window has lapsed"""
    expired = BookingService(db, bus).expire_stale_reservations()
    return ExpirationResult(expired=expired, processed_at=utcnow())
