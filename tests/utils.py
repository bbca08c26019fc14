from datetime import timedelta
from decimal import Decimal

from src.auth.utils import create_access_token, get_password_hash
from src.database import utcnow
from src.models import User, Reservation, UserStatus, ReservationStatus, BookingSource

DEFAULT_PASSWORD = "password123"
BUS_CAPACITY = 4
TRIP_PRICE = Decimal("5000.00")


def make_user(db, name, role, email=None, phone=None, company_id=None, password=None):
    user = User(
        name=name,
        email=email,
        phone=phone,
        country_code="+226" if phone else None,
        password=get_password_hash(password) if password else None,
        role=role,
        status=UserStatus.ACTIVE,
        company_id=company_id,
    )
    db.add(user)
    db.flush()
    return user


def make_reservation(db, trip, user, seat, status=ReservationStatus.PENDING):
    reservation = Reservation(
        reservation_code=f"R{trip.id}S{seat}U{user.id if user else 0}{status.value[:2]}",
        user_id=user.id if user else None,
        trip_id=trip.id,
        company_id=trip.company_id,
        passenger_name=user.name if user else "Passager",
        passenger_phone=user.phone if user else None,
        seat_numbers=[seat],
        total_amount=trip.price,
        status=status,
        booking_source=BookingSource.ONLINE,
        expires_at=utcnow() + timedelta(minutes=15),
    )
    db.add(reservation)
    db.commit()
    db.refresh(reservation)
    return reservation


def auth_headers(user):
    token = create_access_token(
        data={"sub": str(user.id), "role": user.role.value, "company_id": user.company_id}
    )
    return {"Authorization": f"Bearer {token}"}
