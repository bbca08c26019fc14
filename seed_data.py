#!/usr/bin/env python3

from datetime import timedelta
from decimal import Decimal

from src.auth.utils import get_password_hash
from src.database import SessionLocal, init_db, utcnow
from src.models import (
    User, Company, Bus, Route, Trip, UserRole, UserStatus, CompanyStatus, TripStatus
)

DEMO_PASSWORD = "password123"

def create_seed_data():
    init_db()
    db = SessionLocal()

    try:
        print("🚌 Creating seed data for the bus booking platform...")

        if db.query(User).filter(User.email == "admin@transport.local").first():
            print("Seed data already present, nothing to do.")
            return

        # 1. Accounts
        print("Creating accounts...")
        admin = User(
            name="Administrateur", email="admin@transport.local",
            password=get_password_hash(DEMO_PASSWORD), role=UserRole.ADMIN, status=UserStatus.ACTIVE,
        )
        patron = User(
            name="Awa Traoré", email="patron@transport.local", phone="70000001", country_code="+226",
            password=get_password_hash(DEMO_PASSWORD), role=UserRole.PATRON, status=UserStatus.ACTIVE,
        )
        client = User(
            name="Moussa Ouédraogo", email="client@transport.local", phone="70000002", country_code="+226",
            password=get_password_hash(DEMO_PASSWORD), role=UserRole.CLIENT, status=UserStatus.ACTIVE,
        )
        db.add_all([admin, patron, client])
        db.flush()

        # 2. Company
        print("Creating company...")
        company = Company(
            name="Express Sahel Transport", owner_id=patron.id, status=CompanyStatus.APPROVED,
            email="contact@sahel-express.local", phone="25300000", country_code="+226",
            address="Avenue Kwame Nkrumah, Ouagadougou",
        )
        db.add(company)
        db.flush()

        # 3. Employees (they sign in with access codes, no password)
        print("Creating employees...")
        db.add_all([
            User(name="Fatou Sawadogo", phone="70000003", country_code="+226",
                 role=UserRole.GESTIONNAIRE, status=UserStatus.ACTIVE, company_id=company.id),
            User(name="Ibrahim Kaboré", phone="70000004", country_code="+226",
                 role=UserRole.CAISSIER, status=UserStatus.ACTIVE, company_id=company.id),
        ])

        # 4. Fleet and routes
        print("Creating buses and routes...")
        buses = [
            Bus(company_id=company.id, plate_number="11-AA-2201", model="Yutong ZK6122", capacity=50),
            Bus(company_id=company.id, plate_number="11-AA-2202", model="Higer KLQ6800", capacity=30),
        ]
        routes = [
            Route(company_id=company.id, name="Ouaga - Bobo", departure_location="Ouagadougou",
                  arrival_location="Bobo-Dioulasso", distance_km=Decimal("360"),
                  estimated_duration_minutes=300, base_price=Decimal("7500")),
            Route(company_id=company.id, name="Ouaga - Koudougou", departure_location="Ouagadougou",
                  arrival_location="Koudougou", distance_km=Decimal("100"),
                  estimated_duration_minutes=90, base_price=Decimal("2500")),
        ]
        db.add_all(buses + routes)
        db.flush()

        # 5. Trips over the coming days
        print("Scheduling trips...")
        now = utcnow().replace(minute=0, second=0, microsecond=0)
        for day in range(3):
            for bus, route, hour in ((buses[0], routes[0], 7), (buses[1], routes[1], 15)):
                departure = now.replace(hour=hour) + timedelta(days=day + 1)
                db.add(Trip(
                    company_id=company.id, bus_id=bus.id, route_id=route.id,
                    departure_time=departure,
                    arrival_time=departure + timedelta(minutes=route.estimated_duration_minutes),
                    status=TripStatus.SCHEDULED, available_seats=bus.capacity, price=route.base_price,
                ))

        db.commit()
        print("✅ Seed data created successfully!")
        print(f"   Logins (password '{DEMO_PASSWORD}'): admin@transport.local, patron@transport.local, client@transport.local")

    except Exception as e:
        print(f"❌ Error creating seed data: {e}")
        db.rollback()
        raise
    finally:
        db.close()

if __name__ == "__main__":
    create_seed_data()
