"""
Appointment & Revenue Ledger Models
"""
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from enum import Enum


ANNUALIZATION_FACTOR = 12


class AppointmentStatus(str, Enum):
    """Appointment outcome status"""
    SCHEDULED = "scheduled"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"
    SOLD = "sold"
    NO_SHOW = "no_show"


class Appointment(BaseModel):
    """Appointment booked with a lead"""
    id: str
    account_id: str
    lead_id: Optional[str] = None
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    is_sold: bool = False
    recurring_payment_amount: Optional[float] = None
    sold_at: Optional[datetime] = None
    sold_day: Optional[str] = None  # Ledger day the sale was recorded against
    scheduled_at: Optional[datetime] = None

    @property
    def annualized_amount(self) -> float:
        """Revenue value currently booked for this appointment (0 when unsold)."""
        if not self.is_sold or not self.recurring_payment_amount:
            return 0.0
        return annualize(self.recurring_payment_amount)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


class RevenueLedgerEntry(BaseModel):
    """Accumulated revenue for one (account, day)"""
    account_id: str
    day: str
    revenue: float = 0.0


def annualize(monthly_payment: float) -> float:
    """Annualized premium of a monthly payment."""
    return round(monthly_payment * ANNUALIZATION_FACTOR, 2)
