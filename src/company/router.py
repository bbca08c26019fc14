from datetime import date
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from src.auth.dependencies import require_patron, require_roles
from src.company.schemas import (
    CompanyCreate, Company, BusCreate, Bus, RouteCreate, Route, TripCreate, Trip, TripDetail,
    TripStatusUpdate, TripStatusResult, SeatMap, CompanyStats
)
from src.company.service import CompanyService
from src.database import get_db
from src.models import TripStatus, UserRole
from src.realtime import MessageBus, get_message_bus

router = APIRouter()

COMPANY_STAFF = (UserRole.ADMIN, UserRole.PATRON, UserRole.GESTIONNAIRE, UserRole.CAISSIER)
TRIP_OPERATORS = (UserRole.PATRON, UserRole.GESTIONNAIRE)

# ================================
# Companies
# ================================
@router.post("/companies", response_model=Company, status_code=status.HTTP_201_CREATED)
def create_company(data: CompanyCreate, current_user=Depends(require_patron), db: Session = Depends(get_db)):
    """Register an additional company, pending admin approval"""
    return CompanyService(db).create_company(current_user, data)

@router.get("/companies", response_model=List[Company])
def list_my_companies(current_user=Depends(require_patron), db: Session = Depends(get_db)):
    return CompanyService(db).list_companies(current_user)

@router.get("/companies/{company_id}", response_model=Company)
def get_company(company_id: int, current_user=Depends(require_roles(*COMPANY_STAFF)), db: Session = Depends(get_db)):
    return CompanyService(db).get_company(current_user, company_id)

@router.get("/companies/{company_id}/stats", response_model=CompanyStats)
def get_company_stats(
    company_id: int,
    current_user=Depends(require_roles(UserRole.ADMIN, *TRIP_OPERATORS)),
    db: Session = Depends(get_db),
):
    """Dashboard figures for a company"""
    return CompanyService(db).company_stats(current_user, company_id)

# ================================
# Fleet & Routes
# ================================
@router.post("/companies/{company_id}/buses", response_model=Bus, status_code=status.HTTP_201_CREATED)
def create_bus(company_id: int, data: BusCreate, current_user=Depends(require_patron), db: Session = Depends(get_db)):
    return CompanyService(db).create_bus(current_user, company_id, data)

@router.get("/companies/{company_id}/buses", response_model=List[Bus])
def list_buses(company_id: int, current_user=Depends(require_roles(*COMPANY_STAFF)), db: Session = Depends(get_db)):
    return CompanyService(db).list_buses(current_user, company_id)

@router.post("/companies/{company_id}/routes", response_model=Route, status_code=status.HTTP_201_CREATED)
def create_route(company_id: int, data: RouteCreate, current_user=Depends(require_patron), db: Session = Depends(get_db)):
    return CompanyService(db).create_route(current_user, company_id, data)

@router.get("/companies/{company_id}/routes", response_model=List[Route])
def list_routes(company_id: int, current_user=Depends(require_roles(*COMPANY_STAFF)), db: Session = Depends(get_db)):
    return CompanyService(db).list_routes(current_user, company_id)

# ================================
# Trips
# ================================
@router.post("/companies/{company_id}/trips", response_model=Trip, status_code=status.HTTP_201_CREATED)
def create_trip(company_id: int, data: TripCreate, current_user=Depends(require_patron), db: Session = Depends(get_db)):
    """Schedule a trip for an approved company"""
    return CompanyService(db).create_trip(current_user, company_id, data)

@router.get("/companies/{company_id}/trips", response_model=List[TripDetail])
def list_company_trips(
    company_id: int,
    trip_status: Optional[TripStatus] = Query(None, alias="status"),
    upcoming_only: bool = Query(False),
    current_user=Depends(require_roles(*COMPANY_STAFF)),
    db: Session = Depends(get_db),
):
    return CompanyService(db).list_trips(current_user, company_id, status=trip_status, upcoming_only=upcoming_only)

@router.post("/companies/{company_id}/trips/advance-status", response_model=List[Trip])
def advance_trip_statuses(
    company_id: int,
    current_user=Depends(require_patron),
    db: Session = Depends(get_db),
    bus: MessageBus = Depends(get_message_bus),
):
    """Bring trip statuses in line with the clock"""
    return CompanyService(db).advance_trip_statuses(current_user, company_id, bus)

@router.get("/trips", response_model=List[TripDetail])
def search_trips(
    departure: Optional[str] = Query(None),
    arrival: Optional[str] = Query(None),
    travel_date: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
):
    """Public search over bookable trips"""
    return CompanyService(db).search_trips(departure, arrival, travel_date)

@router.get("/trips/{trip_id}", response_model=TripDetail)
def get_trip(trip_id: int, db: Session = Depends(get_db)):
    return CompanyService(db).get_trip(trip_id)

@router.get("/trips/{trip_id}/seats", response_model=SeatMap)
def get_seat_map(trip_id: int, db: Session = Depends(get_db)):
    return CompanyService(db).seat_map(trip_id)

@router.patch("/trips/{trip_id}/status", response_model=TripStatusResult)
def update_trip_status(
    trip_id: int,
    update: TripStatusUpdate,
    current_user=Depends(require_roles(*TRIP_OPERATORS)),
    db: Session = Depends(get_db),
    bus: MessageBus = Depends(get_message_bus),
):
    """Change a trip's status and notify its passengers"""
    trip, notified = CompanyService(db).update_trip_status(current_user, trip_id, update.status, bus)
    return TripStatusResult(trip=trip, notified_users=notified)
