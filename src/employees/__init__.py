from .router import router
from .code_service import EmployeeCodeService
from .service import EmployeeService

__all__ = ["router", "EmployeeCodeService", "EmployeeService"]
