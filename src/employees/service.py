from typing import List, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.activity import ActivityService
from src.auth.permissions import ensure_company_access
from src.employees.schemas import EmployeeCreate
from src.exceptions import ConflictError, NotFoundError, ValidationError
from src.models import User, UserRole, UserStatus, ActivityType, EMPLOYEE_ROLES


class EmployeeService:
    """Patron-side management of gestionnaires and caissiers"""

    def __init__(self, db: Session):
        self.db = db

    def create_employee(self, patron: User, company_id: int, data: EmployeeCreate) -> User:
        ensure_company_access(patron, company_id, "Cette entreprise ne vous appartient pas")
        if data.role not in EMPLOYEE_ROLES:
            raise ValidationError("Le rôle doit être GESTIONNAIRE ou CAISSIER")

        duplicate = (
            self.db.query(User.id)
            .filter(User.phone == data.phone, User.country_code == data.country_code, User.role.in_(EMPLOYEE_ROLES))
            .first()
        )
        if duplicate:
            raise ConflictError("Un employé utilise déjà ce numéro de téléphone")

        employee = User(
            name=data.name,
            email=data.email.lower() if data.email else None,
            phone=data.phone,
            country_code=data.country_code,
            role=data.role,
            status=UserStatus.ACTIVE,
            company_id=company_id,
        )
        try:
            self.db.add(employee)
            self.db.flush()
            ActivityService.record(
                self.db,
                ActivityType.EMPLOYEE_CREATED,
                f"Employé {employee.name} ajouté ({employee.role.value})",
                actor_id=patron.id,
                company_id=company_id,
                metadata={"employee_id": employee.id, "role": employee.role.value},
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Cet email est déjà utilisé")

        self.db.refresh(employee)
        logger.info(f"employee created: employee={employee.id} company={company_id}")
        return employee

    def list_employees(self, patron: User, company_id: int, role: Optional[UserRole] = None) -> List[User]:
        ensure_company_access(patron, company_id, "Cette entreprise ne vous appartient pas")
        query = self.db.query(User).filter(User.company_id == company_id, User.role.in_(EMPLOYEE_ROLES))
        if role is not None:
            query = query.filter(User.role == role)
        return query.order_by(User.name).all()

    def update_status(self, patron: User, employee_id: int, status: UserStatus) -> User:
        employee = self.db.query(User).filter(User.id == employee_id).first()
        if not employee or employee.role not in EMPLOYEE_ROLES:
            raise NotFoundError("Employé introuvable")
        ensure_company_access(patron, employee.company_id, "Cet employé ne fait pas partie de votre entreprise")

        employee.status = status
        self.db.commit()
        self.db.refresh(employee)
        logger.info(f"employee status changed: employee={employee.id} status={status.value}")
        return employee
