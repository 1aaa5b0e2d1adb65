"""
Lead Domain Models
"""
from pydantic import BaseModel, Field
from typing import Optional, FrozenSet
from datetime import datetime
from enum import Enum


class LeadStatus(str, Enum):
    """Lifecycle status of a lead"""
    NEW = "new"
    CALLING_IN_PROGRESS = "calling_in_progress"  # Advisory marker set at dispatch
    NO_ANSWER = "no_answer"
    CALLBACK_LATER = "callback_later"
    UNCLASSIFIED = "unclassified"
    POTENTIAL_APPOINTMENT = "potential_appointment"
    NEEDS_REVIEW = "needs_review"
    NOT_INTERESTED = "not_interested"
    APPOINTMENT_BOOKED = "appointment_booked"
    LIVE_TRANSFER = "live_transfer"
    NOT_ELIGIBLE = "not_eligible"


# Statuses a lead may be dialed from
CALLABLE_STATUSES: FrozenSet[LeadStatus] = frozenset({
    LeadStatus.NEW,
    LeadStatus.CALLBACK_LATER,
    LeadStatus.UNCLASSIFIED,
    LeadStatus.NO_ANSWER,
    LeadStatus.POTENTIAL_APPOINTMENT,
    LeadStatus.NEEDS_REVIEW,
})

# Statuses that end outreach for a lead
TERMINAL_STATUSES: FrozenSet[LeadStatus] = frozenset({
    LeadStatus.NOT_INTERESTED,
    LeadStatus.APPOINTMENT_BOOKED,
    LeadStatus.LIVE_TRANSFER,
    LeadStatus.NOT_ELIGIBLE,
})

# Retryable on the same canonical day
SAME_DAY_RETRY_STATUSES: FrozenSet[LeadStatus] = frozenset({LeadStatus.NEEDS_REVIEW})

# Lifetime attempts after which a lead is never dialed again
LEAD_CALL_CAP = 20


class LeadSource(BaseModel):
    """An imported lead list (e.g. a spreadsheet). Only active sources are dialed."""
    id: str
    account_id: str
    name: Optional[str] = None
    is_active: bool = True


class Lead(BaseModel):
    """Lead/Contact for calling"""
    id: str
    account_id: str
    phone: str
    name: Optional[str] = None
    is_qualified: bool = True
    source_id: Optional[str] = None
    status: LeadStatus = LeadStatus.NEW

    # Attempt tracking
    total_calls_made: int = Field(default=0, ge=0)
    call_attempts_today: int = Field(default=0, ge=0)
    last_attempt_date: Optional[str] = None  # Canonical day (YYYY-MM-DD)
    last_outcome: Optional[str] = None

    created_at: datetime
    last_called_at: Optional[datetime] = None

    def effective_attempts_today(self, today: str) -> int:
        """Attempts on `today`; a stale counter from an earlier day reads as zero."""
        if self.last_attempt_date != today:
            return 0
        return self.call_attempts_today

    def attempted_on(self, today: str) -> bool:
        return self.effective_attempts_today(today) > 0

    def is_cap_reached(self, cap: int = LEAD_CALL_CAP) -> bool:
        return self.total_calls_made >= cap

    def to_dict(self) -> dict:
        """Convert to dictionary for database storage."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict) -> "Lead":
        """Create from a database row, tolerating NULL counters."""
        row = dict(data)
        for counter in ("total_calls_made", "call_attempts_today"):
            if row.get(counter) is None:
                row[counter] = 0
        if row.get("is_qualified") is None:
            row["is_qualified"] = False
        return cls(**row)
