from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session
from typing import List, Optional

from src.auth.dependencies import require_patron
from src.auth.schemas import User
from src.config import settings
from src.database import get_db
from src.employees.code_service import EmployeeCodeService
from src.employees.schemas import (
    GenerateCodeRequest, GeneratedCode, VerifyCodeRequest, EmployeeSession,
    EmployeeCreate, EmployeeStatusUpdate
)
from src.employees.service import EmployeeService
from src.models import UserRole

router = APIRouter()

# Access Codes
@router.post("/employee/generate-code", response_model=GeneratedCode, response_model_by_alias=True)
def generate_code(
    request: GenerateCodeRequest,
    current_user=Depends(require_patron),
    db: Session = Depends(get_db),
):
    """Issue a one-time sign-in code for an employee"""
    auth_code = EmployeeCodeService(db).generate_code(request.employee_id, current_user)
    return GeneratedCode(code=auth_code.code, expires_at=auth_code.expires_at)

@router.post("/employee/verify", response_model=EmployeeSession)
def verify_code(request: VerifyCodeRequest, response: Response, db: Session = Depends(get_db)):
    """Exchange an access code for an employee session"""
    employee, token = EmployeeCodeService(db).verify_code(request.phone, request.country_code, request.code)
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        httponly=True,
        samesite="lax",
        max_age=settings.EMPLOYEE_SESSION_HOURS * 3600,
    )
    return EmployeeSession(access_token=token, user=employee)

# Employee Management
@router.post("/companies/{company_id}/employees", response_model=User, status_code=status.HTTP_201_CREATED)
def create_employee(
    company_id: int,
    employee: EmployeeCreate,
    current_user=Depends(require_patron),
    db: Session = Depends(get_db),
):
    return EmployeeService(db).create_employee(current_user, company_id, employee)

@router.get("/companies/{company_id}/employees", response_model=List[User])
def list_employees(
    company_id: int,
    role: Optional[UserRole] = Query(None),
    current_user=Depends(require_patron),
    db: Session = Depends(get_db),
):
    return EmployeeService(db).list_employees(current_user, company_id, role)

@router.patch("/employees/{employee_id}/status", response_model=User)
def update_employee_status(
    employee_id: int,
    update: EmployeeStatusUpdate,
    current_user=Depends(require_patron),
    db: Session = Depends(get_db),
):
    """Suspend or reactivate an employee"""
    return EmployeeService(db).update_status(current_user, employee_id, update.status)
