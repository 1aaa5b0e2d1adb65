"""
Balance Domain Models
Prepaid call balance and its transaction log
"""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum


class TransactionType(str, Enum):
    """Kind of balance movement"""
    AUTO_REFILL = "auto_refill"
    CALL_CHARGE = "call_charge"


class Balance(BaseModel):
    """Prepaid balance for one account"""
    account_id: str
    balance: float = 0.0
    auto_refill_enabled: bool = True
    auto_refill_amount: float = 25
    auto_refill_threshold: float = 1.00
    updated_at: Optional[datetime] = None

    def needs_refill(self) -> bool:
        return self.auto_refill_enabled and self.balance < self.auto_refill_threshold

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


class BalanceTransaction(BaseModel):
    """Audit entry for a balance change"""
    account_id: str
    amount: float
    transaction_type: TransactionType
    description: str
    balance_after: float
    charge_id: Optional[str] = None
    created_at: datetime

    model_config = {"use_enum_values": True}

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


class ChargeResult(BaseModel):
    """Result of a synchronous charge against the stored instrument"""
    success: bool
    charge_id: Optional[str] = None
    error: Optional[str] = None


class RefillOutcome(BaseModel):
    """What happened during an auto-refill check"""
    attempted: bool = False
    success: bool = False
    amount: float = 0.0
    charge_id: Optional[str] = None
    new_balance: Optional[float] = None
    error: Optional[str] = None
    transaction_logged: bool = Field(default=False, description="False when the audit write failed")
