import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import timedelta  # noqa: E402
from types import SimpleNamespace  # noqa: E402

from fastapi.testclient import TestClient  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from src.database import Base, get_db, utcnow  # noqa: E402
from src.main import app  # noqa: E402
from src.models import (  # noqa: E402
    Company, Bus, Route, Trip, UserRole, CompanyStatus, TripStatus
)
from src.realtime import InMemoryMessageBus, get_message_bus  # noqa: E402

from tests.utils import DEFAULT_PASSWORD, BUS_CAPACITY, TRIP_PRICE, make_user  # noqa: E402


# =============================================================================
# Database and application wiring
# =============================================================================
@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def bus():
    return InMemoryMessageBus()


@pytest.fixture
def client(session_factory, bus):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_message_bus] = lambda: bus
    yield TestClient(app)
    app.dependency_overrides.clear()


# =============================================================================
# Seed data
# =============================================================================
@pytest.fixture
def world(db):
    """An approved company with one bus, one route, a trip in five hours, staff and two clients"""
    admin = make_user(db, "Admin", UserRole.ADMIN, email="admin@test.local")
    patron = make_user(db, "Patron", UserRole.PATRON, email="patron@test.local")
    other_patron = make_user(db, "Autre Patron", UserRole.PATRON, email="other@test.local")

    company = Company(name="Sahel Express", owner_id=patron.id, status=CompanyStatus.APPROVED)
    other_company = Company(name="Rival Transport", owner_id=other_patron.id, status=CompanyStatus.APPROVED)
    db.add_all([company, other_company])
    db.flush()

    gestionnaire = make_user(db, "Gestionnaire", UserRole.GESTIONNAIRE, phone="70000010", company_id=company.id)
    caissier = make_user(db, "Caissier", UserRole.CAISSIER, phone="70000011", company_id=company.id)
    rival_caissier = make_user(db, "Caissier Rival", UserRole.CAISSIER, phone="70000012", company_id=other_company.id)
    client_user = make_user(db, "Client", UserRole.CLIENT, email="client@test.local", phone="70000020", password=DEFAULT_PASSWORD)
    other_client = make_user(db, "Autre Client", UserRole.CLIENT, email="client2@test.local", phone="70000021")

    bus_row = Bus(company_id=company.id, plate_number="11-AA-0001", capacity=BUS_CAPACITY)
    route = Route(
        company_id=company.id,
        name="Ouaga - Bobo",
        departure_location="Ouagadougou",
        arrival_location="Bobo-Dioulasso",
        base_price=TRIP_PRICE,
    )
    db.add_all([bus_row, route])
    db.flush()

    departure = utcnow().replace(microsecond=0) + timedelta(hours=5)
    trip = Trip(
        company_id=company.id,
        bus_id=bus_row.id,
        route_id=route.id,
        departure_time=departure,
        arrival_time=departure + timedelta(hours=5),
        status=TripStatus.SCHEDULED,
        available_seats=BUS_CAPACITY,
        price=TRIP_PRICE,
    )
    db.add(trip)
    db.commit()

    return SimpleNamespace(
        admin=admin,
        patron=patron,
        other_patron=other_patron,
        company=company,
        other_company=other_company,
        gestionnaire=gestionnaire,
        caissier=caissier,
        rival_caissier=rival_caissier,
        client=client_user,
        other_client=other_client,
        bus=bus_row,
        route=route,
        trip=trip,
    )

