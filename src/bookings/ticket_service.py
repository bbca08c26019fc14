from typing import Any, Dict
import base64
import hashlib
import json
import secrets
from io import BytesIO

import qrcode
from qrcode import constants
from loguru import logger
from sqlalchemy.orm import Session

from src.activity import ActivityService
from src.auth.permissions import belongs_to_company
from src.config import settings
from src.database import utcnow
from src.exceptions import NotFoundError, ForbiddenError, InvalidStateError, ValidationError
from src.models import Ticket, Trip, TicketStatus, ActivityType, User, UserRole, STAFF_ROLES

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def generate_ticket_code(length: int = 10) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_qr_seed() -> str:
    return secrets.token_urlsafe(12)[:16]


def ticket_hash(ticket: Ticket) -> str:
    """Tamper check embedded in the QR payload, keyed with the server secret"""
    data = f"{ticket.id}{ticket.ticket_code}{ticket.passenger_phone or ''}{ticket.seat_number}{ticket.trip_id}"
    return hashlib.sha256((data + settings.SECRET_KEY).encode()).hexdigest()[:16]


class TicketService:
    """Service for QR payloads and gate validation of issued tickets"""

    def __init__(self, db: Session):
        self.db = db

    def get_ticket(self, ticket_id: int) -> Ticket:
        ticket = self.db.query(Ticket).filter(Ticket.id == ticket_id).first()
        if not ticket:
            raise NotFoundError("Billet introuvable")
        return ticket

    def get_ticket_for_user(self, ticket_id: int, user: User) -> Ticket:
        ticket = self.get_ticket(ticket_id)
        if user.role == UserRole.CLIENT and ticket.user_id != user.id:
            raise ForbiddenError("Ce billet ne vous appartient pas")
        if user.role in STAFF_ROLES and not belongs_to_company(user, ticket.company_id):
            raise ForbiddenError("Ce billet appartient à une autre entreprise")
        return ticket

    def build_qr_payload(self, ticket: Ticket) -> Dict[str, Any]:
        trip: Trip = ticket.trip
        return {
            "ticketId": ticket.id,
            "ticketCode": ticket.ticket_code,
            "qrSeed": ticket.qr_code,
            "passengerName": ticket.passenger_name,
            "tripId": ticket.trip_id,
            "seatNumber": ticket.seat_number,
            "departureLocation": trip.route.departure_location,
            "arrivalLocation": trip.route.arrival_location,
            "departureTime": trip.departure_time.isoformat(),
            "busPlateNumber": trip.bus.plate_number,
            "companyId": ticket.company_id,
            "price": str(ticket.price),
            "status": ticket.status.value,
            "hash": ticket_hash(ticket),
        }

    @staticmethod
    def render_qr(payload: Dict[str, Any], box_size: int = 8, border: int = 1) -> str:
        """Render a payload as a PNG data URL"""
        qr = qrcode.QRCode(
            version=None,
            error_correction=constants.ERROR_CORRECT_M,
            box_size=box_size,
            border=border,
        )
        qr.add_data(json.dumps(payload, separators=(",", ":")))
        qr.make(fit=True)

        image = qr.make_image(fill_color="black", back_color="white")
        buffer = BytesIO()
        image.save(buffer, format="PNG")
        encoded = base64.b64encode(buffer.getvalue()).decode()
        return f"data:image/png;base64,{encoded}"

    def validate_ticket(self, qr_data: Any, staff: User) -> Ticket:
        """Check a scanned QR payload and mark the ticket as used"""
        if isinstance(qr_data, str):
            try:
                parsed = json.loads(qr_data)
            except json.JSONDecodeError:
                raise ValidationError("Format de QR code invalide")
        else:
            parsed = qr_data

        if not isinstance(parsed, dict) or "ticketId" not in parsed:
            raise ValidationError("Format de QR code invalide")

        try:
            ticket_id = int(parsed["ticketId"])
        except (TypeError, ValueError):
            raise ValidationError("Format de QR code invalide")

        ticket = self.db.query(Ticket).filter(Ticket.id == ticket_id).with_for_update().first()
        if not ticket:
            raise NotFoundError("Billet introuvable")

        if not belongs_to_company(staff, ticket.company_id):
            raise ForbiddenError("Ce billet appartient à une autre entreprise")

        if parsed.get("hash") != ticket_hash(ticket):
            logger.warning(f"tampered ticket presented: ticket={ticket.id} by user={staff.id}")
            raise ValidationError("Billet invalide ou falsifié")

        if ticket.status == TicketStatus.USED:
            raise InvalidStateError("Billet déjà utilisé")
        if ticket.status == TicketStatus.CANCELLED:
            raise InvalidStateError("Billet annulé")

        ticket.status = TicketStatus.USED
        ticket.used_at = utcnow()
        ticket.used_by = staff.id

        ActivityService.record(
            self.db,
            ActivityType.TICKET_VALIDATED,
            f"Billet validé: {ticket.passenger_name or ticket.ticket_code} - Siège {ticket.seat_number}",
            actor_id=staff.id,
            company_id=ticket.company_id,
            metadata={
                "ticket_id": ticket.id,
                "ticket_code": ticket.ticket_code,
                "seat_number": ticket.seat_number,
                "validated_at": ticket.used_at.isoformat(),
            },
        )
        self.db.commit()
        self.db.refresh(ticket)

        logger.info(f"ticket validated: ticket={ticket.id} by user={staff.id}")
        return ticket
