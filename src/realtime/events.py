"""Event payloads published after reservation and trip state changes."""

from typing import Iterable, Optional

from src.models import Reservation, Trip
from src.realtime.bus import (
    MessageBus, company_room, user_room, RESERVATION_UPDATED, PAYMENT_COMPLETED,
    TRIP_STATUS_UPDATED, NOTIFICATION
)


def reservation_payload(reservation: Reservation) -> dict:
    return {
        "reservationId": reservation.id,
        "reservationCode": reservation.reservation_code,
        "tripId": reservation.trip_id,
        "companyId": reservation.company_id,
        "userId": reservation.user_id,
        "status": reservation.status.value,
        "seatNumbers": list(reservation.seat_numbers or []),
    }


def publish_reservation_updated(bus: MessageBus, reservation: Reservation):
    payload = reservation_payload(reservation)
    bus.publish(company_room(reservation.company_id), RESERVATION_UPDATED, payload)
    if reservation.user_id is not None:
        bus.publish(user_room(reservation.user_id), RESERVATION_UPDATED, payload)


def publish_payment_completed(bus: MessageBus, reservation: Reservation, ticket_ids: Iterable[int], amount):
    payload = reservation_payload(reservation)
    payload.update({"ticketIds": list(ticket_ids), "amount": str(amount)})
    bus.publish(company_room(reservation.company_id), PAYMENT_COMPLETED, payload)
    if reservation.user_id is not None:
        bus.publish(user_room(reservation.user_id), PAYMENT_COMPLETED, payload)


def publish_trip_status(bus: MessageBus, trip: Trip, route_label: Optional[str] = None):
    bus.publish(company_room(trip.company_id), TRIP_STATUS_UPDATED, {
        "tripId": trip.id,
        "status": trip.status.value,
        "route": route_label,
        "departureTime": trip.departure_time.isoformat(),
        "arrivalTime": trip.arrival_time.isoformat(),
    })


def publish_notification(bus: MessageBus, user_id: int, notification_id: int, title: str, message: str, data: dict):
    bus.publish(user_room(user_id), NOTIFICATION, {
        "notificationId": notification_id,
        "title": title,
        "message": message,
        "data": data,
    })
