from typing import Callable, Iterable, List, Optional, Set, Tuple
from datetime import datetime, timedelta
from decimal import Decimal
import secrets

from loguru import logger
from sqlalchemy import case, or_
from sqlalchemy.orm import Session

from src.activity import ActivityService
from src.auth.permissions import belongs_to_company
from src.bookings.schemas import GuestReservationCreate, ReservationCreate
from src.bookings.ticket_service import CODE_ALPHABET, generate_ticket_code, generate_qr_seed
from src.config import settings
from src.database import utcnow
from src.exceptions import (
    NotFoundError, ConflictError, ForbiddenError, InvalidStateError, TooLateError, ValidationError
)
from src.models import (
    Reservation, Trip, Ticket, Payment, User, Bus, UserRole, TripStatus, CompanyStatus,
    ReservationStatus, PaymentStatus, PaymentMethod, TicketStatus, BookingSource, ActivityType,
    ACTIVE_RESERVATION_STATUSES
)
from src.realtime.bus import MessageBus
from src.realtime.events import publish_reservation_updated, publish_payment_completed

BOOKABLE_TRIP_STATUSES = (TripStatus.SCHEDULED, TripStatus.BOARDING, TripStatus.DELAYED)


def holds_seats(now: datetime):
    """Filter for reservations that still occupy their seats at `now`.

    A PENDING hold whose `expires_at` has passed no longer blocks its seats,
    even before the expiry sweep has moved it to EXPIRED.
    """
    return or_(
        Reservation.status != ReservationStatus.PENDING,
        Reservation.expires_at.is_(None),
        Reservation.expires_at >= now,
    )


class BookingService:
    """Reservation lifecycle and seat inventory for bus trips.

    Every multi-record mutation (payment confirmation, cancellation, counter
    sale) runs in a single transaction. Status preconditions are re-checked
    inside the transaction with conditional UPDATEs so that two concurrent
    requests cannot both move the same reservation. Events are published only
    after the commit.
    """

    def __init__(self, db: Session, bus: MessageBus, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.bus = bus
        self.clock = clock

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_reservation(self, reservation_id: int, lock: bool = False) -> Reservation:
        query = self.db.query(Reservation).filter(Reservation.id == reservation_id)
        if lock:
            query = query.with_for_update()
        reservation = query.first()
        if not reservation:
            raise NotFoundError("Réservation introuvable")
        return reservation

    def get_reservation_for_user(self, reservation_id: int, user: User) -> Reservation:
        reservation = self.get_reservation(reservation_id)
        self._ensure_can_view(reservation, user)
        return reservation

    def list_reservations(
        self,
        user: User,
        company_id: Optional[int] = None,
        status: Optional[ReservationStatus] = None,
        trip_id: Optional[int] = None,
        limit: int = 100,
    ) -> List[Reservation]:
        """Clients see their own reservations, staff those of their company"""
        query = self.db.query(Reservation)

        if user.role == UserRole.CLIENT:
            query = query.filter(Reservation.user_id == user.id)
        elif user.role == UserRole.PATRON:
            owned = [company.id for company in user.owned_companies]
            if company_id is not None:
                if company_id not in owned:
                    raise ForbiddenError("Cette entreprise ne vous appartient pas")
                owned = [company_id]
            query = query.filter(Reservation.company_id.in_(owned))
        elif user.role in (UserRole.GESTIONNAIRE, UserRole.CAISSIER):
            query = query.filter(Reservation.company_id == user.company_id)
        elif company_id is not None:
            query = query.filter(Reservation.company_id == company_id)

        if status is not None:
            query = query.filter(Reservation.status == status)
        if trip_id is not None:
            query = query.filter(Reservation.trip_id == trip_id)

        return query.order_by(Reservation.created_at.desc(), Reservation.id.desc()).limit(limit).all()

    def taken_seats(
        self,
        trip_id: int,
        statuses: Iterable[ReservationStatus] = ACTIVE_RESERVATION_STATUSES,
        exclude_reservation_id: Optional[int] = None,
    ) -> Set[int]:
        query = self.db.query(Reservation.seat_numbers).filter(
            Reservation.trip_id == trip_id,
            Reservation.status.in_(list(statuses)),
            holds_seats(self.clock()),
        )
        if exclude_reservation_id is not None:
            query = query.filter(Reservation.id != exclude_reservation_id)

        seats: Set[int] = set()
        for (seat_numbers,) in query.all():
            seats.update(seat_numbers or [])
        return seats

    def free_seats(self, trip: Trip) -> List[int]:
        taken = self.taken_seats(trip.id)
        return [seat for seat in range(1, trip.bus.capacity + 1) if seat not in taken]

    # ------------------------------------------------------------------
    # Reservation creation
    # ------------------------------------------------------------------
    def create_reservation(self, user: User, request: ReservationCreate) -> Reservation:
        """Hold one seat on a trip as a PENDING reservation"""
        trip = self._get_bookable_trip(request.trip_id)

        if request.seat_number > trip.bus.capacity:
            raise ValidationError(f"Siège {request.seat_number} inexistant sur ce bus")
        if request.seat_number in self.taken_seats(trip.id):
            raise ConflictError("Siège déjà réservé")
        if trip.available_seats < 1:
            raise ConflictError("Ce voyage est complet")

        passenger = request.passenger
        reservation = Reservation(
            reservation_code=self._unique_reservation_code(),
            user_id=user.id,
            trip_id=trip.id,
            company_id=trip.company_id,
            passenger_name=(passenger.name if passenger and passenger.name else user.name),
            passenger_phone=(passenger.phone if passenger and passenger.phone else user.phone),
            passenger_email=(passenger.email if passenger and passenger.email else user.email),
            seat_numbers=[request.seat_number],
            total_amount=trip.price,
            status=ReservationStatus.PENDING,
            booking_source=BookingSource.ONLINE,
            expires_at=self.clock() + timedelta(minutes=settings.RESERVATION_HOLD_MINUTES),
        )

        try:
            self.db.add(reservation)
            self.db.flush()
            ActivityService.record(
                self.db,
                ActivityType.RESERVATION_CREATED,
                f"Réservation {reservation.reservation_code} - siège {request.seat_number}",
                actor_id=user.id,
                company_id=trip.company_id,
                metadata={"reservation_id": reservation.id, "trip_id": trip.id, "seat_numbers": reservation.seat_numbers},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(reservation)
        logger.info(f"reservation created: reservation={reservation.id} trip={trip.id} seat={request.seat_number}")
        publish_reservation_updated(self.bus, reservation)
        return reservation

    def create_guest_reservation(self, request: GuestReservationCreate) -> Reservation:
        """Hold seats for a passenger without an account.

        The first free seats are assigned and the reservation stays PENDING
        until company staff record the payment through `process_payment`.
        """
        trip = self._get_bookable_trip(request.trip_id)

        free = self.free_seats(trip)
        available = min(len(free), trip.available_seats)
        if request.number_of_seats > available:
            raise ConflictError(f"Places insuffisantes. Il reste {available} place(s).")

        seats = free[:request.number_of_seats]
        reservation = Reservation(
            reservation_code=self._unique_reservation_code(),
            user_id=None,
            trip_id=trip.id,
            company_id=trip.company_id,
            passenger_name=request.passenger_name,
            passenger_phone=request.passenger_phone,
            passenger_email=request.passenger_email,
            seat_numbers=seats,
            total_amount=trip.price * len(seats),
            status=ReservationStatus.PENDING,
            payment_method=request.payment_method,
            booking_source=BookingSource.ONLINE,
            expires_at=self.clock() + timedelta(minutes=settings.RESERVATION_HOLD_MINUTES),
        )

        try:
            self.db.add(reservation)
            self.db.flush()
            ActivityService.record(
                self.db,
                ActivityType.RESERVATION_CREATED,
                f"Nouvelle réservation invité: {request.passenger_name} pour {len(seats)} place(s)",
                company_id=trip.company_id,
                metadata={"reservation_id": reservation.id, "trip_id": trip.id, "seat_numbers": seats},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(reservation)
        logger.info(f"guest reservation created: reservation={reservation.id} trip={trip.id} seats={seats}")
        publish_reservation_updated(self.bus, reservation)
        return reservation

    # ------------------------------------------------------------------
    # Payment confirmation
    # ------------------------------------------------------------------
    def process_payment(
        self,
        reservation_id: int,
        method: PaymentMethod,
        actor: Optional[User] = None,
    ) -> Tuple[Reservation, List[Ticket], Payment]:
        """Confirm a PENDING reservation: tickets, completed payment, seat counter"""
        reservation = self.get_reservation(reservation_id, lock=True)
        if actor is not None:
            self._ensure_can_pay(reservation, actor)

        if reservation.status != ReservationStatus.PENDING:
            raise ConflictError("Réservation déjà traitée")

        seats = list(reservation.seat_numbers or [])
        if not seats:
            raise InvalidStateError("Aucun siège associé à cette réservation")

        try:
            claimed = (
                self.db.query(Reservation)
                .filter(Reservation.id == reservation.id, Reservation.status == ReservationStatus.PENDING)
                .update(
                    {Reservation.status: ReservationStatus.CONFIRMED, Reservation.payment_method: method},
                    synchronize_session=False,
                )
            )
            if claimed != 1:
                raise ConflictError("Réservation déjà traitée")

            # Confirmations of the same trip are serialised on the trip row
            self._lock_trip(reservation.trip_id)
            clash = set(seats) & self.taken_seats(
                reservation.trip_id, (ReservationStatus.CONFIRMED,), exclude_reservation_id=reservation.id
            )
            if clash:
                raise ConflictError(f"Siège(s) déjà attribué(s): {sorted(clash)}")

            self._take_seats(reservation.trip_id, len(seats))

            tickets = self._issue_tickets(reservation, seats)
            payment = Payment(
                reservation_id=reservation.id,
                ticket_id=tickets[0].id,
                company_id=reservation.company_id,
                amount=reservation.total_amount,
                method=method,
                status=PaymentStatus.COMPLETED,
                transaction_reference=f"TXN{secrets.token_hex(8).upper()}",
                processed_by=actor.id if actor is not None else None,
            )
            self.db.add(payment)

            ActivityService.record(
                self.db,
                ActivityType.PAYMENT_COMPLETED,
                f"Paiement {method.value} reçu pour la réservation {reservation.reservation_code}",
                actor_id=actor.id if actor is not None else None,
                company_id=reservation.company_id,
                metadata={
                    "reservation_id": reservation.id,
                    "ticket_ids": [ticket.id for ticket in tickets],
                    "amount": str(reservation.total_amount),
                    "method": method.value,
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(reservation)
        for ticket in tickets:
            self.db.refresh(ticket)
        self.db.refresh(payment)

        logger.info(f"payment completed: reservation={reservation.id} tickets={[t.id for t in tickets]}")
        publish_payment_completed(self.bus, reservation, [t.id for t in tickets], payment.amount)
        publish_reservation_updated(self.bus, reservation)
        return reservation, tickets, payment

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------
    def cancel_reservation(self, reservation_id: int, actor: User) -> Reservation:
        """Owner cancellation, refused inside the cutoff window before departure"""
        reservation = self.get_reservation(reservation_id, lock=True)

        if reservation.user_id is None or reservation.user_id != actor.id:
            raise ForbiddenError("Cette réservation ne vous appartient pas")

        observed_status = reservation.status
        if observed_status not in ACTIVE_RESERVATION_STATUSES:
            raise InvalidStateError("Cette réservation ne peut pas être annulée")

        cutoff = timedelta(hours=settings.CANCELLATION_CUTOFF_HOURS)
        if reservation.trip.departure_time - self.clock() < cutoff:
            raise TooLateError(
                f"Annulation impossible : moins de {settings.CANCELLATION_CUTOFF_HOURS} heures avant le départ"
            )

        seats = list(reservation.seat_numbers or [])
        try:
            cancelled = (
                self.db.query(Reservation)
                .filter(Reservation.id == reservation.id, Reservation.status == observed_status)
                .update({Reservation.status: ReservationStatus.CANCELLED}, synchronize_session=False)
            )
            if cancelled != 1:
                raise ConflictError("La réservation a été modifiée entre-temps, veuillez réessayer")

            self.db.query(Ticket).filter(
                Ticket.reservation_id == reservation.id,
                Ticket.status == TicketStatus.VALID,
            ).update({Ticket.status: TicketStatus.CANCELLED}, synchronize_session=False)

            # PENDING reservations never took seats from the counter
            if observed_status == ReservationStatus.CONFIRMED:
                self._release_seats(reservation.trip_id, len(seats))
                self.db.query(Payment).filter(
                    Payment.reservation_id == reservation.id,
                    Payment.status == PaymentStatus.COMPLETED,
                ).update({Payment.status: PaymentStatus.REFUNDED}, synchronize_session=False)

            ActivityService.record(
                self.db,
                ActivityType.RESERVATION_CANCELLED,
                f"Réservation {reservation.reservation_code} annulée",
                actor_id=actor.id,
                company_id=reservation.company_id,
                metadata={
                    "reservation_id": reservation.id,
                    "previous_status": observed_status.value,
                    "seat_numbers": seats,
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(reservation)
        logger.info(f"reservation cancelled: reservation={reservation.id} was={observed_status.value}")
        publish_reservation_updated(self.bus, reservation)
        return reservation

    # ------------------------------------------------------------------
    # Counter sales (walk-in passengers)
    # ------------------------------------------------------------------
    def sell_at_counter(
        self,
        cashier: User,
        trip_id: int,
        passenger_name: str,
        passenger_phone: str,
        number_of_tickets: int,
        amount_paid: Decimal,
        method: PaymentMethod,
        passenger_email: Optional[str] = None,
    ) -> Tuple[Reservation, List[Ticket], Payment]:
        """Sell seats to a walk-in passenger; confirmed and paid in one unit"""
        trip = self._get_bookable_trip(trip_id)
        if not belongs_to_company(cashier, trip.company_id):
            raise ForbiddenError("Ce voyage appartient à une autre entreprise")

        try:
            trip = self._lock_trip(trip.id)
            free = self.free_seats(trip)
            available = min(len(free), trip.available_seats)
            if number_of_tickets > available:
                raise ConflictError(f"Places insuffisantes. Il reste {available} place(s).")

            seats = free[:number_of_tickets]
            reservation = Reservation(
                reservation_code=self._unique_reservation_code(),
                user_id=None,
                trip_id=trip.id,
                company_id=trip.company_id,
                passenger_name=passenger_name,
                passenger_phone=passenger_phone,
                passenger_email=passenger_email,
                seat_numbers=seats,
                total_amount=amount_paid,
                status=ReservationStatus.CONFIRMED,
                payment_method=method,
                booking_source=BookingSource.CASHIER_DESK,
            )
            self.db.add(reservation)
            self.db.flush()

            self._take_seats(trip.id, len(seats))
            tickets = self._issue_tickets(reservation, seats)

            payment = Payment(
                reservation_id=reservation.id,
                ticket_id=tickets[0].id,
                company_id=trip.company_id,
                amount=amount_paid,
                method=method,
                status=PaymentStatus.COMPLETED,
                transaction_reference=f"TXN{secrets.token_hex(8).upper()}",
                processed_by=cashier.id,
            )
            self.db.add(payment)

            ActivityService.record(
                self.db,
                ActivityType.TICKET_SOLD,
                f"{len(seats)} billet(s) vendu(s) au guichet à {passenger_name}",
                actor_id=cashier.id,
                company_id=trip.company_id,
                metadata={
                    "reservation_id": reservation.id,
                    "trip_id": trip.id,
                    "seat_numbers": seats,
                    "amount": str(amount_paid),
                    "method": method.value,
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(reservation)
        for ticket in tickets:
            self.db.refresh(ticket)
        self.db.refresh(payment)

        logger.info(f"counter sale: reservation={reservation.id} trip={trip.id} seats={seats}")
        publish_payment_completed(self.bus, reservation, [t.id for t in tickets], payment.amount)
        publish_reservation_updated(self.bus, reservation)
        return reservation, tickets, payment

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------
    def expire_stale_reservations(self) -> int:
        """Move PENDING reservations whose hold has lapsed to EXPIRED"""
        now = self.clock()
        stale = (
            self.db.query(Reservation)
            .filter(
                Reservation.status == ReservationStatus.PENDING,
                Reservation.expires_at.isnot(None),
                Reservation.expires_at < now,
            )
            .all()
        )

        expired = 0
        for reservation in stale:
            expired += (
                self.db.query(Reservation)
                .filter(Reservation.id == reservation.id, Reservation.status == ReservationStatus.PENDING)
                .update({Reservation.status: ReservationStatus.EXPIRED}, synchronize_session=False)
            )
        self.db.commit()

        for reservation in stale:
            self.db.refresh(reservation)
            if reservation.status == ReservationStatus.EXPIRED:
                publish_reservation_updated(self.bus, reservation)

        if expired:
            logger.info(f"expired {expired} stale reservation(s)")
        return expired

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _get_bookable_trip(self, trip_id: int) -> Trip:
        trip = self.db.query(Trip).filter(Trip.id == trip_id).first()
        if not trip:
            raise NotFoundError("Voyage introuvable")
        if trip.company.status != CompanyStatus.APPROVED:
            raise InvalidStateError("Cette compagnie n'accepte pas de réservations")
        if trip.status not in BOOKABLE_TRIP_STATUSES:
            raise InvalidStateError("Ce voyage n'est plus ouvert à la réservation")
        if trip.departure_time <= self.clock():
            raise InvalidStateError("Ce voyage est déjà parti")
        return trip

    def _lock_trip(self, trip_id: int) -> Trip:
        """Row-lock the trip and reload it; seat checks for the trip happen after this"""
        return (
            self.db.query(Trip)
            .filter(Trip.id == trip_id)
            .with_for_update()
            .populate_existing()
            .one()
        )

    def _take_seats(self, trip_id: int, count: int):
        """Decrement the counter, refusing to go below zero"""
        taken = (
            self.db.query(Trip)
            .filter(Trip.id == trip_id, Trip.available_seats >= count)
            .update({Trip.available_seats: Trip.available_seats - count}, synchronize_session=False)
        )
        if taken != 1:
            raise ConflictError("Ce voyage est complet")
        self._expire_trip(trip_id)

    def _release_seats(self, trip_id: int, count: int):
        """Increment the counter, capped at the bus capacity"""
        capacity = (
            self.db.query(Bus.capacity)
            .join(Trip, Trip.bus_id == Bus.id)
            .filter(Trip.id == trip_id)
            .scalar()
        )
        self.db.query(Trip).filter(Trip.id == trip_id).update(
            {
                Trip.available_seats: case(
                    (Trip.available_seats + count > capacity, capacity),
                    else_=Trip.available_seats + count,
                )
            },
            synchronize_session=False,
        )
        self._expire_trip(trip_id)

    def _expire_trip(self, trip_id: int):
        trip = self.db.get(Trip, trip_id)
        if trip is not None:
            self.db.expire(trip, ["available_seats"])

    def _issue_tickets(self, reservation: Reservation, seats: List[int]) -> List[Ticket]:
        price_each = (Decimal(reservation.total_amount) / len(seats)).quantize(Decimal("0.01"))
        tickets = []
        for seat in seats:
            ticket = Ticket(
                ticket_code=self._unique_ticket_code(),
                qr_code=generate_qr_seed(),
                reservation_id=reservation.id,
                trip_id=reservation.trip_id,
                company_id=reservation.company_id,
                user_id=reservation.user_id,
                seat_number=seat,
                passenger_name=reservation.passenger_name,
                passenger_phone=reservation.passenger_phone,
                price=price_each,
                status=TicketStatus.VALID,
            )
            self.db.add(ticket)
            tickets.append(ticket)
        self.db.flush()
        return tickets

    def _unique_reservation_code(self) -> str:
        while True:
            code = "".join(secrets.choice(CODE_ALPHABET) for _ in range(8))
            if not self.db.query(Reservation.id).filter(Reservation.reservation_code == code).first():
                return code

    def _unique_ticket_code(self) -> str:
        while True:
            code = generate_ticket_code()
            if not self.db.query(Ticket.id).filter(Ticket.ticket_code == code).first():
                return code

    def _ensure_can_view(self, reservation: Reservation, user: User):
        if user.role == UserRole.ADMIN:
            return
        if user.role == UserRole.CLIENT:
            if reservation.user_id != user.id:
                raise ForbiddenError("Cette réservation ne vous appartient pas")
            return
        if not belongs_to_company(user, reservation.company_id):
            raise ForbiddenError("Cette réservation appartient à une autre entreprise")

    def _ensure_can_pay(self, reservation: Reservation, actor: User):
        """Clients pay their own reservations, staff those of their company"""
        self._ensure_can_view(reservation, actor)
