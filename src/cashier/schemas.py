from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import List, Optional
from datetime import date
from decimal import Decimal

from src.bookings.schemas import Reservation, Ticket, Payment
from src.models import PaymentMethod

class TicketSale(BaseModel):
    """Walk-in sale; accepts the dashboard's camelCase keys"""
    model_config = ConfigDict(populate_by_name=True)

    trip_id: int = Field(..., alias="tripId")
    passenger_name: str = Field(..., alias="passengerName", min_length=2, max_length=255)
    passenger_phone: str = Field(..., alias="passengerPhone", min_length=4, max_length=30)
    passenger_email: Optional[EmailStr] = Field(None, alias="passengerEmail")
    number_of_tickets: int = Field(1, alias="numberOfTickets", ge=1, le=20)
    amount_paid: Decimal = Field(..., alias="amountPaid", ge=0)
    payment_method: PaymentMethod = Field(PaymentMethod.CASH, alias="paymentMethod")

class SaleReceipt(BaseModel):
    message: str
    reservation: Reservation
    tickets: List[Ticket]
    payment: Payment

class DailySales(BaseModel):
    day: date
    company_id: int
    tickets_sold: int
    payments: int
    revenue: Decimal
    cashier_revenue: Decimal
