from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from src.auth.dependencies import get_current_user, require_roles
from src.database import get_db
from src.bookings.schemas import (
    ReservationCreate, GuestReservationCreate, Reservation, ReservationWithTickets, PaymentRequest, PaymentConfirmation,
    CancellationResponse, TicketQRCode, TicketValidationRequest, TicketValidationResponse
)
from src.bookings.booking_service import BookingService
from src.bookings.ticket_service import TicketService
from src.models import ReservationStatus, UserRole
from src.realtime import MessageBus, get_message_bus

router = APIRouter()

PAYMENT_ROLES = (UserRole.ADMIN, UserRole.PATRON, UserRole.GESTIONNAIRE, UserRole.CAISSIER, UserRole.CLIENT)
VALIDATION_ROLES = (UserRole.ADMIN, UserRole.PATRON, UserRole.GESTIONNAIRE, UserRole.CAISSIER)

# Reservation Endpoints
@router.post("/reservations", response_model=Reservation, status_code=status.HTTP_201_CREATED)
def create_reservation(
    request: ReservationCreate,
    current_user=Depends(require_roles(UserRole.CLIENT)),
    db: Session = Depends(get_db),
    bus: MessageBus = Depends(get_message_bus),
):
    """Hold a seat on a trip; the reservation stays PENDING until paid"""
    return BookingService(db, bus).create_reservation(current_user, request)

@router.post("/reservations/guest", response_model=Reservation, status_code=status.HTTP_201_CREATED)
def create_guest_reservation(
    request: GuestReservationCreate,
    db: Session = Depends(get_db),
    bus: MessageBus = Depends(get_message_bus),
):
    """Hold seats without an account; company staff confirm the payment"""
    return BookingService(db, bus).create_guest_reservation(request)

@router.get("/reservations", response_model=List[Reservation])
def list_reservations(
    company_id: Optional[int] = Query(None, description="Filter by company (staff and admin)"),
    reservation_status: Optional[ReservationStatus] = Query(None, alias="status"),
    trip_id: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db),
    bus: MessageBus = Depends(get_message_bus),
):
    """Reservations visible to the caller"""
    return BookingService(db, bus).list_reservations(
        current_user, company_id=company_id, status=reservation_status, trip_id=trip_id, limit=limit
    )

@router.get("/reservations/{reservation_id}", response_model=ReservationWithTickets)
def get_reservation(
    reservation_id: int,
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db),
    bus: MessageBus = Depends(get_message_bus),
):
    return BookingService(db, bus).get_reservation_for_user(reservation_id, current_user)

@router.post("/reservations/{reservation_id}/cancel", response_model=CancellationResponse)
def cancel_reservation(
    reservation_id: int,
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db),
    bus: MessageBus = Depends(get_message_bus),
):
    """Cancel one's own reservation outside the pre-departure cutoff"""
    reservation = BookingService(db, bus).cancel_reservation(reservation_id, current_user)
    return CancellationResponse(message="Réservation annulée avec succès", reservation=reservation)

# Payment Endpoint
@router.post("/payment", response_model=PaymentConfirmation)
def process_payment(
    payment_request: PaymentRequest,
    current_user=Depends(require_roles(*PAYMENT_ROLES)),
    db: Session = Depends(get_db),
    bus: MessageBus = Depends(get_message_bus),
):
    """Confirm a pending reservation and issue its ticket"""
    reservation, tickets, payment = BookingService(db, bus).process_payment(
        payment_request.reservation_id, payment_request.payment_method, actor=current_user
    )
    return PaymentConfirmation(
        ticket=tickets[0],
        tickets=tickets,
        reservation=reservation,
        payment=payment,
        message="Paiement effectué avec succès",
    )

# Ticket Endpoints
@router.get("/tickets/{ticket_id}/qr", response_model=TicketQRCode)
def get_ticket_qr_code(
    ticket_id: int,
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """QR payload and PNG data URL for a ticket"""
    ticket_service = TicketService(db)
    ticket = ticket_service.get_ticket_for_user(ticket_id, current_user)
    payload = ticket_service.build_qr_payload(ticket)
    return TicketQRCode(ticket_id=ticket.id, qr_data=payload, qr_code_url=ticket_service.render_qr(payload))

@router.post("/tickets/validate", response_model=TicketValidationResponse)
def validate_ticket(
    request: TicketValidationRequest,
    current_user=Depends(require_roles(*VALIDATION_ROLES)),
    db: Session = Depends(get_db),
):
    """Scan a ticket at boarding; each ticket is accepted once"""
    ticket = TicketService(db).validate_ticket(request.qr_data, current_user)
    return TicketValidationResponse(
        message="Billet validé avec succès",
        ticket=ticket,
        validated_by=current_user.name,
    )
