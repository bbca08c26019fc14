import secrets
from typing import Optional, Tuple

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.activity import ActivityService
from src.auth.schemas import UserCreate, CompanyRegistration, LoginRequest, AdminRegistration
from src.auth.utils import get_password_hash, verify_password
from src.config import settings
from src.exceptions import ConflictError, ForbiddenError, UnauthorizedError
from src.models import User, Company, UserRole, UserStatus, CompanyStatus, ActivityType

class UserService:
    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email"""
        return db.query(User).filter(User.email == email.lower()).first()

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def _build_user(user: UserCreate, role: UserRole) -> User:
        return User(
            name=user.name,
            email=user.email.lower(),
            password=get_password_hash(user.password),
            phone=user.phone,
            country_code=user.country_code,
            role=role,
            status=UserStatus.ACTIVE,
        )

    @staticmethod
    def create_client(db: Session, user: UserCreate) -> User:
        """Register a new client account"""
        if UserService.get_user_by_email(db, user.email):
            raise ConflictError("Cet email est déjà utilisé")

        db_user = UserService._build_user(user, UserRole.CLIENT)
        try:
            db.add(db_user)
            db.commit()
            db.refresh(db_user)
        except IntegrityError:
            db.rollback()
            raise ConflictError("Cet email est déjà utilisé")

        logger.info(f"client registered: user={db_user.id}")
        return db_user

    @staticmethod
    def register_company(db: Session, registration: CompanyRegistration) -> Tuple[User, Company]:
        """Create the patron and the pending company as one unit"""
        if UserService.get_user_by_email(db, registration.owner.email):
            raise ConflictError("Cet email est déjà utilisé")

        try:
            patron = UserService._build_user(registration.owner, UserRole.PATRON)
            db.add(patron)
            db.flush()

            company = Company(
                name=registration.company_name,
                owner_id=patron.id,
                status=CompanyStatus.PENDING,
                email=registration.company_email,
                phone=registration.company_phone,
                address=registration.company_address,
                license_number=registration.license_number,
                description=registration.description,
            )
            db.add(company)
            db.flush()

            ActivityService.record(
                db,
                ActivityType.COMPANY_CREATED,
                f"Entreprise {company.name} enregistrée, en attente d'approbation",
                actor_id=patron.id,
                company_id=company.id,
                metadata={"company_id": company.id, "owner_id": patron.id},
            )
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("Cet email est déjà utilisé")

        db.refresh(patron)
        db.refresh(company)
        logger.info(f"company registered: company={company.id} patron={patron.id}")
        return patron, company

    @staticmethod
    def authenticate(db: Session, login_data: LoginRequest) -> User:
        """Authenticate user with email and password"""
        user = UserService.get_user_by_email(db, login_data.email)
        if not user or not verify_password(login_data.password, user.password):
            raise UnauthorizedError("Email ou mot de passe incorrect")
        if user.status != UserStatus.ACTIVE:
            raise UnauthorizedError("Compte suspendu ou inactif")
        return user

    @staticmethod
    def create_admin(db: Session, registration: AdminRegistration) -> User:
        """Register a platform admin; disabled unless a registration secret is configured"""
        expected = settings.ADMIN_REGISTRATION_SECRET
        if not expected or not secrets.compare_digest(registration.registration_secret, expected):
            logger.warning(f"admin registration refused for {registration.email}")
            raise ForbiddenError("Clé d'enregistrement administrateur invalide")
        if UserService.get_user_by_email(db, registration.email):
            raise ConflictError("Cet email est déjà utilisé")

        admin = UserService._build_user(registration, UserRole.ADMIN)
        db.add(admin)
        db.commit()
        db.refresh(admin)
        logger.info(f"admin registered: user={admin.id}")
        return admin
