from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from src.bookings.booking_service import BookingService, BOOKABLE_TRIP_STATUSES
from src.cashier.schemas import TicketSale, DailySales
from src.database import utcnow
from src.exceptions import ForbiddenError
from src.models import Trip, Ticket, Payment, Reservation, User, PaymentStatus, TicketStatus
from src.realtime.bus import MessageBus


class CashierService:
    """Ticket desk operations for a company's caissiers"""

    def __init__(self, db: Session, bus: MessageBus, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.bus = bus
        self.clock = clock

    def sell_tickets(self, cashier: User, sale: TicketSale) -> Tuple[Reservation, List[Ticket], Payment]:
        return BookingService(self.db, self.bus, clock=self.clock).sell_at_counter(
            cashier,
            trip_id=sale.trip_id,
            passenger_name=sale.passenger_name,
            passenger_phone=sale.passenger_phone,
            number_of_tickets=sale.number_of_tickets,
            amount_paid=sale.amount_paid,
            method=sale.payment_method,
            passenger_email=sale.passenger_email,
        )

    def bookable_trips(self, cashier: User) -> List[Trip]:
        return (
            self.db.query(Trip)
            .filter(
                Trip.company_id == self._company_id(cashier),
                Trip.status.in_(BOOKABLE_TRIP_STATUSES),
                Trip.departure_time > self.clock(),
                Trip.available_seats > 0,
            )
            .order_by(Trip.departure_time)
            .all()
        )

    def daily_sales(self, cashier: User, day: Optional[date] = None) -> DailySales:
        company_id = self._company_id(cashier)
        day = day or self.clock().date()
        start = datetime.combine(day, datetime.min.time())
        end = start + timedelta(days=1)

        payments = self.db.query(Payment).filter(
            Payment.company_id == company_id,
            Payment.status == PaymentStatus.COMPLETED,
            Payment.created_at >= start,
            Payment.created_at < end,
        )
        revenue = payments.with_entities(func.coalesce(func.sum(Payment.amount), 0)).scalar()
        cashier_revenue = (
            payments.filter(Payment.processed_by == cashier.id)
            .with_entities(func.coalesce(func.sum(Payment.amount), 0))
            .scalar()
        )
        tickets_sold = self.db.query(func.count(Ticket.id)).filter(
            Ticket.company_id == company_id,
            Ticket.status != TicketStatus.CANCELLED,
            Ticket.created_at >= start,
            Ticket.created_at < end,
        ).scalar()

        return DailySales(
            day=day,
            company_id=company_id,
            tickets_sold=tickets_sold or 0,
            payments=payments.count(),
            revenue=Decimal(str(revenue or 0)),
            cashier_revenue=Decimal(str(cashier_revenue or 0)),
        )

    @staticmethod
    def _company_id(cashier: User) -> int:
        if cashier.company_id is None:
            raise ForbiddenError("Aucune entreprise associée à ce compte")
        return cashier.company_id
