from datetime import datetime, timedelta
from typing import Callable, Tuple
import secrets

from loguru import logger
from sqlalchemy import or_
from sqlalchemy.orm import Session

from src.activity import ActivityService
from src.auth.permissions import ensure_company_access
from src.auth.utils import create_access_token
from src.config import settings
from src.database import utcnow
from src.exceptions import NotFoundError, UnauthorizedError, ValidationError
from src.models import (
    EmployeeAuthCode, User, UserStatus, ActivityType, EMPLOYEE_ROLES
)

CODE_PREFIX = "EMP"
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 6

INVALID_CODE_MESSAGE = "Code invalide ou expiré"


def draw_code() -> str:
    return CODE_PREFIX + "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


class EmployeeCodeService:
    """One-time access codes letting employees sign in without a password.

    A patron issues a code for one of their employees; the employee exchanges
    it, together with their phone number, for an 8 hour session token. Codes
    live in their own table, expire after EMPLOYEE_CODE_TTL_HOURS and are
    consumed by a conditional UPDATE so a code can only be used once.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    def generate_code(self, employee_id: int, patron: User) -> EmployeeAuthCode:
        employee = self.db.query(User).filter(User.id == employee_id).first()
        if not employee or employee.role not in EMPLOYEE_ROLES:
            raise NotFoundError("Employé introuvable")

        ensure_company_access(patron, employee.company_id, "Cet employé ne fait pas partie de votre entreprise")

        if employee.status != UserStatus.ACTIVE:
            raise ValidationError("Cet employé n'est pas actif")
        if not employee.phone:
            raise ValidationError("Cet employé n'a pas de numéro de téléphone")

        now = self.clock()
        try:
            self.db.query(EmployeeAuthCode).filter(
                EmployeeAuthCode.employee_id == employee.id,
                or_(EmployeeAuthCode.used_at.isnot(None), EmployeeAuthCode.expires_at <= now),
            ).delete(synchronize_session=False)

            code = self._unique_code(employee.company_id, now)
            auth_code = EmployeeAuthCode(
                code=code,
                employee_id=employee.id,
                company_id=employee.company_id,
                created_by=patron.id,
                expires_at=now + timedelta(hours=settings.EMPLOYEE_CODE_TTL_HOURS),
            )
            self.db.add(auth_code)
            self.db.flush()

            ActivityService.record(
                self.db,
                ActivityType.EMPLOYEE_CODE_GENERATED,
                f"Code d'accès généré pour {employee.name}",
                actor_id=patron.id,
                company_id=employee.company_id,
                metadata={
                    "employee_id": employee.id,
                    "code_id": auth_code.id,
                    "expires_at": auth_code.expires_at.isoformat(),
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(auth_code)
        logger.info(f"employee code generated: employee={employee.id} by patron={patron.id}")
        return auth_code

    def verify_code(self, phone: str, country_code: str, code: str) -> Tuple[User, str]:
        """Consume a code and return the employee with a signed session token"""
        employee = (
            self.db.query(User)
            .filter(
                User.phone == phone,
                User.country_code == country_code,
                User.role.in_(EMPLOYEE_ROLES),
                User.status == UserStatus.ACTIVE,
            )
            .first()
        )
        if not employee:
            logger.warning(f"employee code rejected: no active employee for phone {country_code}{phone[-4:]}")
            raise UnauthorizedError(INVALID_CODE_MESSAGE)

        now = self.clock()
        auth_code = (
            self.db.query(EmployeeAuthCode)
            .filter(
                EmployeeAuthCode.employee_id == employee.id,
                EmployeeAuthCode.company_id == employee.company_id,
                EmployeeAuthCode.code == code.strip().upper(),
                EmployeeAuthCode.used_at.is_(None),
                EmployeeAuthCode.expires_at > now,
            )
            .first()
        )
        if not auth_code:
            logger.warning(f"employee code rejected: employee={employee.id}")
            raise UnauthorizedError(INVALID_CODE_MESSAGE)

        try:
            consumed = (
                self.db.query(EmployeeAuthCode)
                .filter(EmployeeAuthCode.id == auth_code.id, EmployeeAuthCode.used_at.is_(None))
                .update({EmployeeAuthCode.used_at: now}, synchronize_session=False)
            )
            if consumed != 1:
                raise UnauthorizedError(INVALID_CODE_MESSAGE)

            ActivityService.record(
                self.db,
                ActivityType.EMPLOYEE_LOGIN,
                f"Connexion de {employee.name} ({employee.role.value})",
                actor_id=employee.id,
                company_id=employee.company_id,
                metadata={"code_id": auth_code.id, "role": employee.role.value},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        token = create_access_token(
            data={"sub": str(employee.id), "role": employee.role.value, "company_id": employee.company_id},
            expires_delta=timedelta(hours=settings.EMPLOYEE_SESSION_HOURS),
        )
        logger.info(f"employee signed in: employee={employee.id} company={employee.company_id}")
        return employee, token

    def _unique_code(self, company_id: int, now: datetime) -> str:
        while True:
            code = draw_code()
            clash = (
                self.db.query(EmployeeAuthCode.id)
                .filter(
                    EmployeeAuthCode.company_id == company_id,
                    EmployeeAuthCode.code == code,
                    EmployeeAuthCode.expires_at > now,
                )
                .first()
            )
            if not clash:
                return code
