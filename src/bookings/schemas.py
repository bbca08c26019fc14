from pydantic import BaseModel, Field, EmailStr, ConfigDict
from typing import List, Optional, Union
from datetime import datetime
from decimal import Decimal

from src.models import (
    ReservationStatus, PaymentStatus, PaymentMethod, TicketStatus, BookingSource
)

# Reservation Requests
class PassengerDetails(BaseModel):
    """Passenger travelling on the seat; defaults to the account holder"""
    name: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=30)
    email: Optional[EmailStr] = None

class ReservationCreate(BaseModel):
    trip_id: int
    seat_number: int = Field(..., ge=1)
    passenger: Optional[PassengerDetails] = None

class GuestReservationCreate(BaseModel):
    """Booking without an account; seats are assigned by the server"""
    model_config = ConfigDict(populate_by_name=True)

    trip_id: int = Field(..., alias="tripId")
    passenger_name: str = Field(..., alias="passengerName", min_length=1, max_length=255)
    passenger_email: EmailStr = Field(..., alias="passengerEmail")
    passenger_phone: str = Field(..., alias="passengerPhone", min_length=1, max_length=30)
    number_of_seats: int = Field(1, alias="numberOfSeats", ge=1, le=10)
    payment_method: Optional[PaymentMethod] = Field(None, alias="paymentMethod")

class PaymentRequest(BaseModel):
    """Body of POST /payment, camelCase on the wire"""
    model_config = ConfigDict(populate_by_name=True)

    reservation_id: int = Field(..., alias="reservationId")
    payment_method: PaymentMethod = Field(..., alias="paymentMethod")

# Responses
class Reservation(BaseModel):
    id: int
    reservation_code: str
    user_id: Optional[int] = None
    trip_id: int
    company_id: int
    passenger_name: Optional[str] = None
    passenger_phone: Optional[str] = None
    passenger_email: Optional[str] = None
    seat_numbers: List[int]
    total_amount: Decimal
    status: ReservationStatus
    payment_method: Optional[PaymentMethod] = None
    booking_source: BookingSource
    expires_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True

class Ticket(BaseModel):
    id: int
    ticket_code: str
    qr_code: str
    reservation_id: int
    trip_id: int
    company_id: int
    seat_number: int
    passenger_name: Optional[str] = None
    price: Decimal
    status: TicketStatus
    used_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True

class Payment(BaseModel):
    id: int
    reservation_id: int
    ticket_id: Optional[int] = None
    amount: Decimal
    method: PaymentMethod
    status: PaymentStatus
    transaction_reference: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class PaymentConfirmation(BaseModel):
    ticket: Ticket
    tickets: List[Ticket]
    reservation: Reservation
    payment: Payment
    message: str

class CancellationResponse(BaseModel):
    message: str
    reservation: Reservation

class ReservationWithTickets(Reservation):
    tickets: List[Ticket] = []

# Ticket QR & Validation
class TicketQRCode(BaseModel):
    ticket_id: int
    qr_data: dict
    qr_code_url: str

class TicketValidationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    qr_data: Union[str, dict] = Field(..., alias="qrData")

class TicketValidationResponse(BaseModel):
    success: bool = True
    message: str
    ticket: Ticket
    validated_by: Optional[str] = None

class ExpirationResult(BaseModel):
    expired: int
    processed_at: datetime
