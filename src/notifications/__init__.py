from .router import router
from .service import NotificationService

__all__ = ["router", "NotificationService"]
