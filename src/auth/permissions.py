from typing import Optional

from src.exceptions import ForbiddenError
from src.models import User, UserRole


def belongs_to_company(user: User, company_id: Optional[int]) -> bool:
    """True when the user owns the company (patron) or works for it (employee)"""
    if company_id is None:
        return False
    if user.role == UserRole.ADMIN:
        return True
    if user.role == UserRole.PATRON:
        return any(company.id == company_id for company in user.owned_companies)
    return user.company_id == company_id


def ensure_company_access(user: User, company_id: Optional[int], message: str = "Cette ressource appartient à une autre entreprise"):
    if not belongs_to_company(user, company_id):
        raise ForbiddenError(message)
