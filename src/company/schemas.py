from pydantic import BaseModel, EmailStr, Field, model_validator
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from src.models import CompanyStatus, TripStatus

# Companies
class CompanyCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    country_code: Optional[str] = None
    address: Optional[str] = None
    license_number: Optional[str] = None
    description: Optional[str] = None

class Company(BaseModel):
    id: int
    name: str
    owner_id: int
    status: CompanyStatus
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    license_number: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True
    created_at: datetime

    class Config:
        from_attributes = True

# Fleet
class BusCreate(BaseModel):
    plate_number: str = Field(..., min_length=2, max_length=30)
    model: Optional[str] = None
    capacity: int = Field(..., gt=0, le=100)

class Bus(BaseModel):
    id: int
    company_id: int
    plate_number: str
    model: Optional[str] = None
    capacity: int
    is_active: bool

    class Config:
        from_attributes = True

# Routes
class RouteCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    departure_location: str = Field(..., min_length=2)
    arrival_location: str = Field(..., min_length=2)
    distance_km: Optional[Decimal] = Field(None, gt=0)
    estimated_duration_minutes: Optional[int] = Field(None, gt=0)
    base_price: Decimal = Field(..., gt=0)

class Route(BaseModel):
    id: int
    company_id: int
    name: str
    departure_location: str
    arrival_location: str
    distance_km: Optional[Decimal] = None
    estimated_duration_minutes: Optional[int] = None
    base_price: Decimal

    class Config:
        from_attributes = True

# Trips
class TripCreate(BaseModel):
    bus_id: int
    route_id: int
    departure_time: datetime
    arrival_time: datetime
    price: Optional[Decimal] = Field(None, gt=0)

    @model_validator(mode="after")
    def check_times(self):
        if self.arrival_time <= self.departure_time:
            raise ValueError("L'arrivée doit être postérieure au départ")
        return self

class TripStatusUpdate(BaseModel):
    status: TripStatus

class Trip(BaseModel):
    id: int
    company_id: int
    bus_id: int
    route_id: int
    departure_time: datetime
    arrival_time: datetime
    status: TripStatus
    available_seats: int
    price: Decimal

    class Config:
        from_attributes = True

class TripDetail(Trip):
    route: Route
    bus: Bus

class SeatMap(BaseModel):
    trip_id: int
    capacity: int
    available_seats: int
    taken_seats: List[int]

class TripStatusResult(BaseModel):
    trip: Trip
    notified_users: int

# Dashboard
class CompanyStats(BaseModel):
    company_id: int
    total_trips: int
    upcoming_trips: int
    total_buses: int
    total_employees: int
    confirmed_reservations: int
    pending_reservations: int
    cancelled_reservations: int
    tickets_sold: int
    revenue: Decimal
