"""
Booking & Ticketing Module

Reservation lifecycle and seat inventory for bus trips:

- booking_service.py: seat holds, payment confirmation, cancellation, counter
  sales and expiry of stale holds, each as one database transaction
- ticket_service.py: ticket codes, QR payloads with a keyed tamper hash, and
  gate validation
- router.py: client, payment and ticket endpoints
- schemas.py: request and response models

The trip's `available_seats` counter is only moved here: decremented when a
reservation is paid (or sold at the counter) and released when a confirmed
reservation is cancelled.
"""

from .router import router
from .booking_service import BookingService
from .ticket_service import TicketService

__all__ = [
    "router",
    "BookingService",
    "TicketService",
]
