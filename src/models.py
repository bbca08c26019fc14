import enum

from sqlalchemy import (
    Column, Integer, BigInteger, String, Boolean, DateTime, Text, ForeignKey,
    Numeric, JSON, Enum, Index, CheckConstraint
)
from sqlalchemy.orm import relationship
from src.database import Base, utcnow

# SQLite only autoincrements INTEGER primary keys
IdType = BigInteger().with_variant(Integer, "sqlite")

# ================================
# Enumerations
# ================================
class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    PATRON = "PATRON"
    GESTIONNAIRE = "GESTIONNAIRE"
    CAISSIER = "CAISSIER"
    CLIENT = "CLIENT"

class UserStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"

class CompanyStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SUSPENDED = "SUSPENDED"

class TripStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    BOARDING = "BOARDING"
    DEPARTED = "DEPARTED"
    IN_TRANSIT = "IN_TRANSIT"
    ARRIVED = "ARRIVED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    DELAYED = "DELAYED"

class ReservationStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"

class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"

class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    MOBILE_MONEY = "MOBILE_MONEY"
    BANK_TRANSFER = "BANK_TRANSFER"

class TicketStatus(str, enum.Enum):
    VALID = "VALID"
    USED = "USED"
    CANCELLED = "CANCELLED"

class BookingSource(str, enum.Enum):
    ONLINE = "ONLINE"
    CASHIER_DESK = "CASHIER_DESK"

class ActivityType(str, enum.Enum):
    COMPANY_CREATED = "COMPANY_CREATED"
    COMPANY_APPROVED = "COMPANY_APPROVED"
    COMPANY_REJECTED = "COMPANY_REJECTED"
    COMPANY_SUSPENDED = "COMPANY_SUSPENDED"
    USER_SUSPENDED = "USER_SUSPENDED"
    EMPLOYEE_CREATED = "EMPLOYEE_CREATED"
    EMPLOYEE_CODE_GENERATED = "EMPLOYEE_CODE_GENERATED"
    EMPLOYEE_LOGIN = "EMPLOYEE_LOGIN"
    RESERVATION_CREATED = "RESERVATION_CREATED"
    PAYMENT_COMPLETED = "PAYMENT_COMPLETED"
    RESERVATION_CANCELLED = "RESERVATION_CANCELLED"
    TICKET_SOLD = "TICKET_SOLD"
    TICKET_VALIDATED = "TICKET_VALIDATED"
    TRIP_CREATED = "TRIP_CREATED"
    TRIP_STATUS_UPDATED = "TRIP_STATUS_UPDATED"

EMPLOYEE_ROLES = (UserRole.GESTIONNAIRE, UserRole.CAISSIER)
STAFF_ROLES = (UserRole.PATRON, UserRole.GESTIONNAIRE, UserRole.CAISSIER)
ACTIVE_RESERVATION_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)

# ================================
# Users & Companies
# ================================
class User(Base):
    __tablename__ = "users"

    id = Column(IdType, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True)
    password = Column(String(255))
    phone = Column(String(30), index=True)
    country_code = Column(String(8))
    role = Column(Enum(UserRole, name="user_role"), nullable=False, default=UserRole.CLIENT, index=True)
    status = Column(Enum(UserStatus, name="user_status"), nullable=False, default=UserStatus.ACTIVE, index=True)
    company_id = Column(IdType, ForeignKey("companies.id"), index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    employer = relationship("Company", foreign_keys=[company_id], back_populates="employees")
    owned_companies = relationship("Company", foreign_keys="Company.owner_id", back_populates="owner")
    reservations = relationship("Reservation", back_populates="user")
    notifications = relationship("Notification", back_populates="user")

class Company(Base):
    __tablename__ = "companies"

    id = Column(IdType, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    owner_id = Column(IdType, ForeignKey("users.id", use_alter=True, name="fk_companies_owner_id"), nullable=False, index=True)
    status = Column(Enum(CompanyStatus, name="company_status"), nullable=False, default=CompanyStatus.PENDING, index=True)
    email = Column(String(255))
    phone = Column(String(30))
    country_code = Column(String(8))
    address = Column(Text)
    license_number = Column(String(100))
    description = Column(Text)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    owner = relationship("User", foreign_keys=[owner_id], back_populates="owned_companies")
    employees = relationship("User", foreign_keys=[User.company_id], back_populates="employer")
    buses = relationship("Bus", back_populates="company")
    routes = relationship("Route", back_populates="company")
    trips = relationship("Trip", back_populates="company")

# ================================
# Fleet, Routes & Trips
# ================================
class Bus(Base):
    __tablename__ = "buses"
    __table_args__ = (CheckConstraint("capacity > 0", name="ck_bus_capacity_positive"),)

    id = Column(IdType, primary_key=True, index=True)
    company_id = Column(IdType, ForeignKey("companies.id"), nullable=False, index=True)
    plate_number = Column(String(30), unique=True, nullable=False)
    model = Column(String(100))
    capacity = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    company = relationship("Company", back_populates="buses")
    trips = relationship("Trip", back_populates="bus")

class Route(Base):
    __tablename__ = "routes"

    id = Column(IdType, primary_key=True, index=True)
    company_id = Column(IdType, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    departure_location = Column(String(255), nullable=False, index=True)
    arrival_location = Column(String(255), nullable=False, index=True)
    distance_km = Column(Numeric(8, 2))
    estimated_duration_minutes = Column(Integer)
    base_price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    company = relationship("Company", back_populates="routes")
    trips = relationship("Trip", back_populates="route")

class Trip(Base):
    __tablename__ = "trips"
    __table_args__ = (CheckConstraint("available_seats >= 0", name="ck_trip_available_seats_non_negative"),)

    id = Column(IdType, primary_key=True, index=True)
    company_id = Column(IdType, ForeignKey("companies.id"), nullable=False, index=True)
    bus_id = Column(IdType, ForeignKey("buses.id"), nullable=False, index=True)
    route_id = Column(IdType, ForeignKey("routes.id"), nullable=False, index=True)
    departure_time = Column(DateTime, nullable=False, index=True)
    arrival_time = Column(DateTime, nullable=False)
    status = Column(Enum(TripStatus, name="trip_status"), nullable=False, default=TripStatus.SCHEDULED, index=True)
    available_seats = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    company = relationship("Company", back_populates="trips")
    bus = relationship("Bus", back_populates="trips")
    route = relationship("Route", back_populates="trips")
    reservations = relationship("Reservation", back_populates="trip")
    tickets = relationship("Ticket", back_populates="trip")

# ================================
# Reservations, Tickets & Payments
# ================================
class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(IdType, primary_key=True, index=True)
    reservation_code = Column(String(20), unique=True, nullable=False, index=True)
    user_id = Column(IdType, ForeignKey("users.id"), index=True)
    trip_id = Column(IdType, ForeignKey("trips.id"), nullable=False, index=True)
    company_id = Column(IdType, ForeignKey("companies.id"), nullable=False, index=True)
    passenger_name = Column(String(255))
    passenger_phone = Column(String(30))
    passenger_email = Column(String(255))
    seat_numbers = Column(JSON, nullable=False, default=list)
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(Enum(ReservationStatus, name="reservation_status"), nullable=False, default=ReservationStatus.PENDING, index=True)
    payment_method = Column(Enum(PaymentMethod, name="payment_method"))
    booking_source = Column(Enum(BookingSource, name="booking_source"), nullable=False, default=BookingSource.ONLINE)
    expires_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship("User", back_populates="reservations")
    trip = relationship("Trip", back_populates="reservations")
    tickets = relationship("Ticket", back_populates="reservation")
    payments = relationship("Payment", back_populates="reservation")

class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(IdType, primary_key=True, index=True)
    ticket_code = Column(String(20), unique=True, nullable=False, index=True)
    qr_code = Column(String(32), unique=True, nullable=False)
    reservation_id = Column(IdType, ForeignKey("reservations.id"), nullable=False, index=True)
    trip_id = Column(IdType, ForeignKey("trips.id"), nullable=False, index=True)
    company_id = Column(IdType, ForeignKey("companies.id"), nullable=False, index=True)
    user_id = Column(IdType, ForeignKey("users.id"))
    seat_number = Column(Integer, nullable=False)
    passenger_name = Column(String(255))
    passenger_phone = Column(String(30))
    price = Column(Numeric(10, 2), nullable=False)
    status = Column(Enum(TicketStatus, name="ticket_status"), nullable=False, default=TicketStatus.VALID, index=True)
    used_at = Column(DateTime)
    used_by = Column(IdType, ForeignKey("users.id"))
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    reservation = relationship("Reservation", back_populates="tickets")
    trip = relationship("Trip", back_populates="tickets")

class Payment(Base):
    __tablename__ = "payments"

    id = Column(IdType, primary_key=True, index=True)
    reservation_id = Column(IdType, ForeignKey("reservations.id"), nullable=False, index=True)
    ticket_id = Column(IdType, ForeignKey("tickets.id"))
    company_id = Column(IdType, ForeignKey("companies.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    method = Column(Enum(PaymentMethod, name="payment_method"), nullable=False)
    status = Column(Enum(PaymentStatus, name="payment_status"), nullable=False, default=PaymentStatus.PENDING, index=True)
    transaction_reference = Column(String(50), unique=True)
    processed_by = Column(IdType, ForeignKey("users.id"))
    created_at = Column(DateTime, default=utcnow, index=True)

    # Relationships
    reservation = relationship("Reservation", back_populates="payments")

# ================================
# Employee Access Codes
# ================================
class EmployeeAuthCode(Base):
    __tablename__ = "employee_auth_codes"
    __table_args__ = (Index("ix_employee_auth_codes_company_code", "company_id", "code"),)

    id = Column(IdType, primary_key=True, index=True)
    code = Column(String(16), nullable=False)
    employee_id = Column(IdType, ForeignKey("users.id"), nullable=False, index=True)
    company_id = Column(IdType, ForeignKey("companies.id"), nullable=False)
    created_by = Column(IdType, ForeignKey("users.id"))
    expires_at = Column(DateTime, nullable=False, index=True)
    used_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)

    employee = relationship("User", foreign_keys=[employee_id])

# ================================
# Audit Trail & Notifications
# ================================
class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(IdType, primary_key=True, index=True)
    type = Column(Enum(ActivityType, name="activity_type"), nullable=False, index=True)
    description = Column(Text, nullable=False)
    status = Column(String(20), default="SUCCESS")
    actor_id = Column(IdType, ForeignKey("users.id"), index=True)
    company_id = Column(IdType, ForeignKey("companies.id"), index=True)
    activity_metadata = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime, default=utcnow, index=True)

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(IdType, primary_key=True, index=True)
    user_id = Column(IdType, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, default=dict)
    is_read = Column(Boolean, default=False, index=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    # Relationships
    user = relationship("User", back_populates="notifications")
