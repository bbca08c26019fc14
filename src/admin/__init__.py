from .router import router
from .admin_service import AdminManagementService

__all__ = ["router", "AdminManagementService"]
