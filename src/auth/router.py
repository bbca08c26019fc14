from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from src.database import get_db
from src.auth.schemas import (
    UserCreate, User, LoginRequest, AuthResponse, CompanyRegistration,
    CompanyRegistrationResponse, AdminRegistration
)
from src.auth.service import UserService
from src.auth.utils import create_access_token
from src.auth.dependencies import get_current_user
from src.config import settings

router = APIRouter()

@router.post("/register", response_model=User, status_code=status.HTTP_201_CREATED)
def register_user(user: UserCreate, db: Session = Depends(get_db)):
    """Register a new client"""
    return UserService.create_client(db=db, user=user)

@router.post("/register-company", response_model=CompanyRegistrationResponse, status_code=status.HTTP_201_CREATED)
def register_company(registration: CompanyRegistration, db: Session = Depends(get_db)):
    """Register a patron together with a company awaiting admin approval"""
    patron, company = UserService.register_company(db, registration)
    return CompanyRegistrationResponse(
        user=patron,
        company=company,
        message="Entreprise enregistrée, en attente d'approbation",
    )

@router.post("/register-admin", response_model=User, status_code=status.HTTP_201_CREATED)
def register_admin(registration: AdminRegistration, db: Session = Depends(get_db)):
    return UserService.create_admin(db, registration)

@router.post("/login", response_model=AuthResponse)
def login(login_data: LoginRequest, response: Response, db: Session = Depends(get_db)):
    """Email/password login for admins, patrons and clients"""
    user = UserService.authenticate(db, login_data)

    access_token = create_access_token(
        data={"sub": str(user.id), "role": user.role.value, "company_id": user.company_id}
    )
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        access_token,
        httponly=True,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    return AuthResponse(access_token=access_token, user=user)

@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return {"message": "Déconnexion réussie"}

@router.get("/me", response_model=User)
def read_users_me(current_user=Depends(get_current_user)):
    """Get current user profile"""
    return current_user
