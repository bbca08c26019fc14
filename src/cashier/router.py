from datetime import date
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from src.auth.dependencies import require_roles
from src.cashier.schemas import TicketSale, SaleReceipt, DailySales
from src.cashier.service import CashierService
from src.company.schemas import TripDetail
from src.database import get_db
from src.models import UserRole
from src.realtime import MessageBus, get_message_bus

router = APIRouter()

require_cashier = require_roles(UserRole.CAISSIER)

@router.post("/sell-ticket", response_model=SaleReceipt, status_code=status.HTTP_201_CREATED)
def sell_ticket(
    sale: TicketSale,
    current_user=Depends(require_cashier),
    db: Session = Depends(get_db),
    bus: MessageBus = Depends(get_message_bus),
):
    """Sell seats to a walk-in passenger"""
    reservation, tickets, payment = CashierService(db, bus).sell_tickets(current_user, sale)
    return SaleReceipt(
        message=f"{len(tickets)} billet(s) vendu(s) avec succès",
        reservation=reservation,
        tickets=tickets,
        payment=payment,
    )

@router.get("/trips", response_model=List[TripDetail])
def list_bookable_trips(
    current_user=Depends(require_cashier),
    db: Session = Depends(get_db),
    bus: MessageBus = Depends(get_message_bus),
):
    return CashierService(db, bus).bookable_trips(current_user)

@router.get("/daily-sales", response_model=DailySales)
def get_daily_sales(
    day: Optional[date] = Query(None),
    current_user=Depends(require_cashier),
    db: Session = Depends(get_db),
    bus: MessageBus = Depends(get_message_bus),
):
    return CashierService(db, bus).daily_sales(current_user, day)
