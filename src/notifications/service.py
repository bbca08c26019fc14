from typing import List, Optional

from sqlalchemy.orm import Session

from src.exceptions import NotFoundError
from src.models import Notification, Reservation, Trip, User, ACTIVE_RESERVATION_STATUSES
from src.realtime.bus import MessageBus
from src.realtime.events import publish_notification

TRIP_STATUS_TYPE = "TRIP_STATUS"


class NotificationService:
    def __init__(self, db: Session):
        self.db = db

    def list_for_user(self, user: User, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        query = self.db.query(Notification).filter(Notification.user_id == user.id)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    def mark_read(self, user: User, notification_id: int) -> Notification:
        notification = (
            self.db.query(Notification)
            .filter(Notification.id == notification_id, Notification.user_id == user.id)
            .first()
        )
        if not notification:
            raise NotFoundError("Notification introuvable")
        notification.is_read = True
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def mark_all_read(self, user: User) -> int:
        updated = (
            self.db.query(Notification)
            .filter(Notification.user_id == user.id, Notification.is_read.is_(False))
            .update({Notification.is_read: True}, synchronize_session=False)
        )
        self.db.commit()
        return updated

    def add_trip_notifications(self, trip: Trip, title: str, message: str) -> List[Notification]:
        """Queue one notification per passenger account holding an active reservation.

        Rows are added to the current transaction; the caller commits and then
        calls `publish` with the returned list.
        """
        reservations = (
            self.db.query(Reservation)
            .filter(
                Reservation.trip_id == trip.id,
                Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
                Reservation.user_id.isnot(None),
            )
            .all()
        )

        notifications = []
        for reservation in reservations:
            notification = Notification(
                user_id=reservation.user_id,
                type=TRIP_STATUS_TYPE,
                title=title,
                message=message,
                data={"tripId": trip.id, "status": trip.status.value, "reservationId": reservation.id},
                is_read=False,
            )
            self.db.add(notification)
            notifications.append(notification)
        self.db.flush()
        return notifications

    @staticmethod
    def publish(bus: MessageBus, notifications: List[Notification], extra: Optional[dict] = None):
        for notification in notifications:
            data = dict(notification.data or {})
            if extra:
                data.update(extra)
            publish_notification(
                bus, notification.user_id, notification.id, notification.title, notification.message, data
            )
