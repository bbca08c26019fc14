from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy.orm import Session

from src.models import ActivityLog, ActivityType


class ActivityService:
    """Audit trail for every mutation made through the platform"""

    @staticmethod
    def record(
        db: Session,
        activity_type: ActivityType,
        description: str,
        actor_id: Optional[int] = None,
        company_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        status: str = "SUCCESS",
    ) -> ActivityLog:
        """Add an activity to the current transaction; the caller commits"""
        entry = ActivityLog(
            type=activity_type,
            description=description,
            actor_id=actor_id,
            company_id=company_id,
            activity_metadata=metadata or {},
            status=status,
        )
        db.add(entry)
        logger.debug(f"activity {activity_type.value}: {description}")
        return entry

    @staticmethod
    def list_activities(
        db: Session,
        company_id: Optional[int] = None,
        activity_type: Optional[ActivityType] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[ActivityLog]:
        query = db.query(ActivityLog)
        if company_id is not None:
            query = query.filter(ActivityLog.company_id == company_id)
        if activity_type is not None:
            query = query.filter(ActivityLog.type == activity_type)
        return (
            query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
