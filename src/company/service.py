from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from loguru import logger
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.activity import ActivityService
from src.auth.permissions import ensure_company_access
from src.bookings.booking_service import BOOKABLE_TRIP_STATUSES, holds_seats
from src.company.schemas import CompanyCreate, BusCreate, RouteCreate, TripCreate, CompanyStats
from src.database import utcnow
from src.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from src.models import (
    Company, Bus, Route, Trip, Reservation, Ticket, Payment, User,
    CompanyStatus, TripStatus, ReservationStatus, PaymentStatus, TicketStatus, ActivityType,
    ACTIVE_RESERVATION_STATUSES, EMPLOYEE_ROLES
)
from src.notifications.service import NotificationService
from src.realtime.bus import MessageBus
from src.realtime.events import publish_trip_status

BOARDING_LEAD_MINUTES = 30

TERMINAL_TRIP_STATUSES = (TripStatus.COMPLETED, TripStatus.CANCELLED)

# Passenger-facing wording for each trip status
TRIP_STATUS_MESSAGES = {
    TripStatus.SCHEDULED: ("Voyage programmé", "Votre voyage {route} est programmé."),
    TripStatus.BOARDING: ("Embarquement imminent", "Votre voyage {route} est maintenant en phase d'embarquement."),
    TripStatus.DEPARTED: ("Voyage en cours", "Votre voyage {route} est maintenant parti."),
    TripStatus.IN_TRANSIT: ("Voyage en cours", "Votre voyage {route} est en cours."),
    TripStatus.ARRIVED: ("Voyage terminé", "Votre voyage {route} est maintenant arrivé."),
    TripStatus.COMPLETED: ("Voyage finalisé", "Votre voyage {route} a été finalisé."),
    TripStatus.CANCELLED: ("Voyage annulé", "Votre voyage {route} a été annulé."),
    TripStatus.DELAYED: ("Voyage retardé", "Votre voyage {route} est retardé."),
}

# Order used by the time-driven progression; it never moves a trip backwards
TRIP_PROGRESSION = [
    TripStatus.SCHEDULED,
    TripStatus.BOARDING,
    TripStatus.DEPARTED,
    TripStatus.IN_TRANSIT,
    TripStatus.ARRIVED,
    TripStatus.COMPLETED,
]


def route_label(route: Route) -> str:
    return f"{route.departure_location} - {route.arrival_location}"


class CompanyService:
    """Fleet, route and trip management for patrons and their managers"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    # ================================
    # Companies
    # ================================
    def create_company(self, patron: User, data: CompanyCreate) -> Company:
        company = Company(
            name=data.name,
            owner_id=patron.id,
            status=CompanyStatus.PENDING,
            email=data.email,
            phone=data.phone,
            country_code=data.country_code,
            address=data.address,
            license_number=data.license_number,
            description=data.description,
        )
        self.db.add(company)
        self.db.flush()
        ActivityService.record(
            self.db,
            ActivityType.COMPANY_CREATED,
            f"Entreprise {company.name} enregistrée, en attente d'approbation",
            actor_id=patron.id,
            company_id=company.id,
            metadata={"company_id": company.id, "owner_id": patron.id},
        )
        self.db.commit()
        self.db.refresh(company)
        logger.info(f"company created: company={company.id} patron={patron.id}")
        return company

    def list_companies(self, patron: User) -> List[Company]:
        return self.db.query(Company).filter(Company.owner_id == patron.id).order_by(Company.created_at.desc()).all()

    def get_company(self, user: User, company_id: int) -> Company:
        company = self.db.query(Company).filter(Company.id == company_id).first()
        if not company:
            raise NotFoundError("Entreprise introuvable")
        ensure_company_access(user, company.id, "Cette entreprise ne vous appartient pas")
        return company

    # ================================
    # Buses
    # ================================
    def create_bus(self, patron: User, company_id: int, data: BusCreate) -> Bus:
        company = self.get_company(patron, company_id)
        bus = Bus(
            company_id=company.id,
            plate_number=data.plate_number.upper(),
            model=data.model,
            capacity=data.capacity,
        )
        try:
            self.db.add(bus)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Un bus avec cette immatriculation existe déjà")
        self.db.refresh(bus)
        return bus

    def list_buses(self, user: User, company_id: int) -> List[Bus]:
        self.get_company(user, company_id)
        return self.db.query(Bus).filter(Bus.company_id == company_id).order_by(Bus.plate_number).all()

    # ================================
    # Routes
    # ================================
    def create_route(self, patron: User, company_id: int, data: RouteCreate) -> Route:
        company = self.get_company(patron, company_id)
        if data.departure_location.strip().lower() == data.arrival_location.strip().lower():
            raise ValidationError("Le départ et l'arrivée doivent être différents")

        route = Route(company_id=company.id, **data.model_dump())
        self.db.add(route)
        self.db.commit()
        self.db.refresh(route)
        return route

    def list_routes(self, user: User, company_id: int) -> List[Route]:
        self.get_company(user, company_id)
        return self.db.query(Route).filter(Route.company_id == company_id).order_by(Route.name).all()

    # ================================
    # Trips
    # ================================
    def create_trip(self, patron: User, company_id: int, data: TripCreate) -> Trip:
        """Schedule a departure; every seat of the bus starts out available"""
        company = self.get_company(patron, company_id)
        if company.status != CompanyStatus.APPROVED:
            raise InvalidStateError("L'entreprise doit être approuvée pour programmer des voyages")

        bus = self.db.query(Bus).filter(Bus.id == data.bus_id, Bus.company_id == company.id).first()
        if not bus:
            raise NotFoundError("Bus introuvable")
        if not bus.is_active:
            raise InvalidStateError("Ce bus n'est pas en service")
        route = self.db.query(Route).filter(Route.id == data.route_id, Route.company_id == company.id).first()
        if not route:
            raise NotFoundError("Itinéraire introuvable")
        if data.departure_time <= self.clock():
            raise ValidationError("Le départ doit être dans le futur")

        overlapping = (
            self.db.query(Trip.id)
            .filter(
                Trip.bus_id == bus.id,
                Trip.status.notin_(TERMINAL_TRIP_STATUSES),
                Trip.departure_time < data.arrival_time,
                Trip.arrival_time > data.departure_time,
            )
            .first()
        )
        if overlapping:
            raise ConflictError("Ce bus est déjà programmé sur ce créneau")

        trip = Trip(
            company_id=company.id,
            bus_id=bus.id,
            route_id=route.id,
            departure_time=data.departure_time,
            arrival_time=data.arrival_time,
            status=TripStatus.SCHEDULED,
            available_seats=bus.capacity,
            price=data.price if data.price is not None else route.base_price,
        )
        self.db.add(trip)
        self.db.flush()
        ActivityService.record(
            self.db,
            ActivityType.TRIP_CREATED,
            f"Voyage {route_label(route)} programmé le {trip.departure_time:%d/%m/%Y %H:%M}",
            actor_id=patron.id,
            company_id=company.id,
            metadata={"trip_id": trip.id, "bus_id": bus.id, "route_id": route.id},
        )
        self.db.commit()
        self.db.refresh(trip)
        logger.info(f"trip scheduled: trip={trip.id} company={company.id}")
        return trip

    def list_trips(
        self,
        user: User,
        company_id: int,
        status: Optional[TripStatus] = None,
        upcoming_only: bool = False,
    ) -> List[Trip]:
        self.get_company(user, company_id)
        query = self.db.query(Trip).filter(Trip.company_id == company_id)
        if status is not None:
            query = query.filter(Trip.status == status)
        if upcoming_only:
            query = query.filter(Trip.departure_time > self.clock())
        return query.order_by(Trip.departure_time).all()

    def search_trips(
        self,
        departure: Optional[str] = None,
        arrival: Optional[str] = None,
        travel_date: Optional[date] = None,
    ) -> List[Trip]:
        """Upcoming trips of approved companies that still have seats"""
        query = (
            self.db.query(Trip)
            .join(Route, Trip.route_id == Route.id)
            .join(Company, Trip.company_id == Company.id)
            .filter(
                Company.status == CompanyStatus.APPROVED,
                Trip.status.in_(BOOKABLE_TRIP_STATUSES),
                Trip.departure_time > self.clock(),
                Trip.available_seats > 0,
            )
        )
        if departure:
            query = query.filter(func.lower(Route.departure_location).contains(departure.lower()))
        if arrival:
            query = query.filter(func.lower(Route.arrival_location).contains(arrival.lower()))
        if travel_date:
            start = datetime.combine(travel_date, datetime.min.time())
            query = query.filter(Trip.departure_time >= start, Trip.departure_time < start + timedelta(days=1))
        return query.order_by(Trip.departure_time).all()

    def get_trip(self, trip_id: int) -> Trip:
        trip = self.db.query(Trip).filter(Trip.id == trip_id).first()
        if not trip:
            raise NotFoundError("Voyage introuvable")
        return trip

    def update_trip_status(
        self, user: User, trip_id: int, status: TripStatus, bus: MessageBus
    ) -> Tuple[Trip, int]:
        """Change a trip's status and tell every passenger holding a seat on it"""
        trip = self.get_trip(trip_id)
        ensure_company_access(user, trip.company_id, "Ce voyage appartient à une autre entreprise")
        if trip.status in TERMINAL_TRIP_STATUSES:
            raise InvalidStateError("Ce voyage est déjà clôturé")

        previous = trip.status
        try:
            notifications = self._apply_status(trip, status, actor_id=user.id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(trip)
        logger.info(f"trip status updated: trip={trip.id} {previous.value} -> {status.value}")
        self._publish_status(bus, trip, notifications)
        return trip, len(notifications)

    def advance_trip_statuses(self, patron: User, company_id: int, bus: MessageBus) -> List[Trip]:
        """Move the company's trips along their timeline based on the clock.

        Boarding opens BOARDING_LEAD_MINUTES before departure and trips are
        DEPARTED at departure time. Once the arrival time has passed a trip is
        ARRIVED and then COMPLETED in the same pass, which finalises its
        confirmed reservations.
        """
        self.get_company(patron, company_id)
        now = self.clock()
        candidates = (
            self.db.query(Trip)
            .filter(Trip.company_id == company_id, Trip.status.in_(TRIP_PROGRESSION[:-1]))
            .all()
        )

        changed = []
        try:
            for trip in candidates:
                target = self._status_due(trip, now)
                if TRIP_PROGRESSION.index(target) <= TRIP_PROGRESSION.index(trip.status):
                    continue
                notifications = []
                if target == TripStatus.COMPLETED and trip.status != TripStatus.ARRIVED:
                    notifications += self._apply_status(trip, TripStatus.ARRIVED, actor_id=patron.id)
                notifications += self._apply_status(trip, target, actor_id=patron.id)
                changed.append((trip, notifications))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        for trip, notifications in changed:
            self.db.refresh(trip)
            self._publish_status(bus, trip, notifications)
        if changed:
            logger.info(f"advanced {len(changed)} trip(s) for company={company_id}")
        return [trip for trip, _ in changed]

    def seat_map(self, trip_id: int) -> dict:
        trip = self.get_trip(trip_id)
        taken = set()
        rows = self.db.query(Reservation.seat_numbers).filter(
            Reservation.trip_id == trip.id,
            Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
            holds_seats(self.clock()),
        )
        for (seat_numbers,) in rows:
            taken.update(seat_numbers or [])
        return {
            "trip_id": trip.id,
            "capacity": trip.bus.capacity,
            "available_seats": trip.available_seats,
            "taken_seats": sorted(taken),
        }

    # ================================
    # Dashboard
    # ================================
    def company_stats(self, user: User, company_id: int) -> CompanyStats:
        self.get_company(user, company_id)
        now = self.clock()

        def count_reservations(status: ReservationStatus) -> int:
            return self.db.query(func.count(Reservation.id)).filter(
                Reservation.company_id == company_id, Reservation.status == status
            ).scalar() or 0

        revenue = self.db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
            Payment.company_id == company_id, Payment.status == PaymentStatus.COMPLETED
        ).scalar()

        return CompanyStats(
            company_id=company_id,
            total_trips=self.db.query(func.count(Trip.id)).filter(Trip.company_id == company_id).scalar() or 0,
            upcoming_trips=self.db.query(func.count(Trip.id)).filter(
                Trip.company_id == company_id,
                Trip.departure_time > now,
                Trip.status.notin_(TERMINAL_TRIP_STATUSES),
            ).scalar() or 0,
            total_buses=self.db.query(func.count(Bus.id)).filter(Bus.company_id == company_id).scalar() or 0,
            total_employees=self.db.query(func.count(User.id)).filter(
                User.company_id == company_id, User.role.in_(EMPLOYEE_ROLES)
            ).scalar() or 0,
            confirmed_reservations=count_reservations(ReservationStatus.CONFIRMED),
            pending_reservations=count_reservations(ReservationStatus.PENDING),
            cancelled_reservations=count_reservations(ReservationStatus.CANCELLED),
            tickets_sold=self.db.query(func.count(Ticket.id)).filter(
                Ticket.company_id == company_id, Ticket.status != TicketStatus.CANCELLED
            ).scalar() or 0,
            revenue=Decimal(str(revenue or 0)),
        )

    # ================================
    # Helpers
    # ================================
    @staticmethod
    def _status_due(trip: Trip, now: datetime) -> TripStatus:
        if now > trip.arrival_time:
            return TripStatus.COMPLETED
        if now == trip.arrival_time:
            return TripStatus.ARRIVED
        if now >= trip.departure_time:
            return TripStatus.DEPARTED
        if now >= trip.departure_time - timedelta(minutes=BOARDING_LEAD_MINUTES):
            return TripStatus.BOARDING
        return TripStatus.SCHEDULED

    def _apply_status(self, trip: Trip, status: TripStatus, actor_id: int):
        """Set the status inside the caller's transaction and queue passenger notifications"""
        previous = trip.status
        trip.status = status
        self.db.flush()

        label = route_label(trip.route)
        title, template = TRIP_STATUS_MESSAGES[status]
        notifications = NotificationService(self.db).add_trip_notifications(trip, title, template.format(route=label))

        if status == TripStatus.COMPLETED:
            self.db.query(Reservation).filter(
                Reservation.trip_id == trip.id,
                Reservation.status == ReservationStatus.CONFIRMED,
            ).update({Reservation.status: ReservationStatus.COMPLETED}, synchronize_session=False)

        ActivityService.record(
            self.db,
            ActivityType.TRIP_STATUS_UPDATED,
            f"Statut du voyage {label} mis à jour : {status.value}",
            actor_id=actor_id,
            company_id=trip.company_id,
            metadata={"trip_id": trip.id, "previous_status": previous.value, "status": status.value},
        )
        return notifications

    @staticmethod
    def _publish_status(bus: MessageBus, trip: Trip, notifications):
        publish_trip_status(bus, trip, route_label(trip.route))
        NotificationService.publish(bus, notifications)
