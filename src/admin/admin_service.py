from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from loguru import logger
from sqlalchemy import func
from sqlalchemy.orm import Session

from src.activity import ActivityService
from src.admin.schemas import PlatformStats
from src.database import utcnow
from src.exceptions import InvalidStateError, NotFoundError, ForbiddenError
from src.models import (
    Company, User, Trip, Reservation, Ticket, Payment, UserRole, UserStatus, CompanyStatus,
    ReservationStatus, PaymentStatus, ActivityType, EMPLOYEE_ROLES
)


class AdminManagementService:
    """Platform administration: company approval, suspensions and statistics.

    Every mutation records an activity entry carrying the acting admin, a
    description and the decision's metadata.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    # ================================
    # Companies
    # ================================
    def list_companies(self, status: Optional[CompanyStatus] = None, limit: int = 100, offset: int = 0) -> List[Company]:
        query = self.db.query(Company)
        if status is not None:
            query = query.filter(Company.status == status)
        return query.order_by(Company.created_at.desc(), Company.id.desc()).offset(offset).limit(limit).all()

    def get_company(self, company_id: int) -> Company:
        company = self.db.query(Company).filter(Company.id == company_id).first()
        if not company:
            raise NotFoundError("Entreprise introuvable")
        return company

    def approve_company(self, admin: User, company_id: int) -> Company:
        company = self.get_company(company_id)
        if company.status not in (CompanyStatus.PENDING, CompanyStatus.SUSPENDED):
            raise InvalidStateError("Seule une entreprise en attente ou suspendue peut être approuvée")
        return self._set_company_status(
            admin, company, CompanyStatus.APPROVED, ActivityType.COMPANY_APPROVED,
            f"Entreprise {company.name} approuvée",
        )

    def reject_company(self, admin: User, company_id: int, reason: Optional[str] = None) -> Company:
        company = self.get_company(company_id)
        if company.status != CompanyStatus.PENDING:
            raise InvalidStateError("Seule une entreprise en attente peut être rejetée")
        return self._set_company_status(
            admin, company, CompanyStatus.REJECTED, ActivityType.COMPANY_REJECTED,
            f"Entreprise {company.name} rejetée", reason,
        )

    def suspend_company(self, admin: User, company_id: int, reason: Optional[str] = None) -> Company:
        company = self.get_company(company_id)
        if company.status != CompanyStatus.APPROVED:
            raise InvalidStateError("Seule une entreprise approuvée peut être suspendue")
        return self._set_company_status(
            admin, company, CompanyStatus.SUSPENDED, ActivityType.COMPANY_SUSPENDED,
            f"Entreprise {company.name} suspendue", reason,
        )

    def _set_company_status(
        self,
        admin: User,
        company: Company,
        status: CompanyStatus,
        activity_type: ActivityType,
        description: str,
        reason: Optional[str] = None,
    ) -> Company:
        previous = company.status
        company.status = status
        company.is_active = status == CompanyStatus.APPROVED
        ActivityService.record(
            self.db,
            activity_type,
            description,
            actor_id=admin.id,
            company_id=company.id,
            metadata={
                "company_id": company.id,
                "previous_status": previous.value,
                "status": status.value,
                "reason": reason,
            },
        )
        self.db.commit()
        self.db.refresh(company)
        logger.info(f"company {company.id} {previous.value} -> {status.value} by admin={admin.id}")
        return company

    # ================================
    # Users
    # ================================
    def suspend_user(self, admin: User, user_id: int, reason: Optional[str] = None) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("Utilisateur introuvable")
        if user.role == UserRole.ADMIN:
            raise ForbiddenError("Impossible de suspendre un administrateur")
        if user.status == UserStatus.SUSPENDED:
            raise InvalidStateError("Cet utilisateur est déjà suspendu")

        user.status = UserStatus.SUSPENDED
        ActivityService.record(
            self.db,
            ActivityType.USER_SUSPENDED,
            f"Utilisateur {user.name} suspendu",
            actor_id=admin.id,
            company_id=user.company_id,
            metadata={"user_id": user.id, "role": user.role.value, "reason": reason},
        )
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"user suspended: user={user.id} by admin={admin.id}")
        return user

    # ================================
    # Statistics
    # ================================
    def platform_stats(self) -> PlatformStats:
        def count(column, *criteria) -> int:
            return self.db.query(func.count(column)).filter(*criteria).scalar() or 0

        revenue = self.db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
            Payment.status == PaymentStatus.COMPLETED
        ).scalar()

        return PlatformStats(
            total_companies=count(Company.id),
            pending_companies=count(Company.id, Company.status == CompanyStatus.PENDING),
            approved_companies=count(Company.id, Company.status == CompanyStatus.APPROVED),
            suspended_companies=count(Company.id, Company.status == CompanyStatus.SUSPENDED),
            total_users=count(User.id),
            total_clients=count(User.id, User.role == UserRole.CLIENT),
            total_employees=count(User.id, User.role.in_(EMPLOYEE_ROLES)),
            total_trips=count(Trip.id),
            total_reservations=count(Reservation.id),
            confirmed_reservations=count(Reservation.id, Reservation.status == ReservationStatus.CONFIRMED),
            tickets_issued=count(Ticket.id),
            revenue=Decimal(str(revenue or 0)),
            generated_at=self.clock(),
        )
