from pydantic import BaseModel
from typing import Any, Dict, Optional
from datetime import datetime

class Notification(BaseModel):
    id: int
    type: str
    title: str
    message: str
    data: Optional[Dict[str, Any]] = None
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True

class MarkAllReadResult(BaseModel):
    updated: int
