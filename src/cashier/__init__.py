from .router import router
from .service import CashierService

__all__ = ["router", "CashierService"]
