from pydantic import AliasChoices, BaseModel, Field
from typing import Any, Dict, Optional
from datetime import datetime

from src.models import ActivityType

class ActivityLogEntry(BaseModel):
    id: int
    type: ActivityType
    description: str
    status: str
    actor_id: Optional[int] = None
    company_id: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("activity_metadata", "metadata"))
    created_at: datetime

    class Config:
        from_attributes = True
