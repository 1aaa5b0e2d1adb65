"""
Call Domain Models
Call records, provider callbacks and the outcome vocabulary mapping
"""
import logging
from pydantic import BaseModel, Field, field_validator
from typing import Dict, Optional
from datetime import datetime
from enum import Enum

from leadflow.domain.models.lead import LeadStatus

logger = logging.getLogger(__name__)


class CallStatus(str, Enum):
    """Call record status"""
    INITIATED = "initiated"
    COMPLETED = "completed"


class CallOutcome(str, Enum):
    """Outcome vocabulary reported by the call provider"""
    BOOKED = "booked"
    APPOINTMENT_BOOKED = "appointment_booked"
    ANSWERED = "answered"
    UNCLASSIFIED = "unclassified"
    NO_ANSWER = "no_answer"
    NO_PICKUP = "no_pickup"
    VOICEMAIL = "voicemail"
    BUSY = "busy"
    DECLINED = "declined"
    NOT_INTERESTED = "not_interested"
    LIVE_TRANSFER = "live_transfer"
    CALLBACK = "callback"
    CALLBACK_LATER = "callback_later"
    POTENTIAL_APPOINTMENT = "potential_appointment"
    INVALID_NUMBER = "invalid_number"
    FAILED = "failed"
    NOT_ELIGIBLE = "not_eligible"


# Provider outcome -> lead status
OUTCOME_TO_LEAD_STATUS: Dict[CallOutcome, LeadStatus] = {
    CallOutcome.BOOKED: LeadStatus.APPOINTMENT_BOOKED,
    CallOutcome.APPOINTMENT_BOOKED: LeadStatus.APPOINTMENT_BOOKED,
    CallOutcome.ANSWERED: LeadStatus.UNCLASSIFIED,
    CallOutcome.UNCLASSIFIED: LeadStatus.UNCLASSIFIED,
    CallOutcome.NO_ANSWER: LeadStatus.NO_ANSWER,
    CallOutcome.NO_PICKUP: LeadStatus.NO_ANSWER,
    CallOutcome.VOICEMAIL: LeadStatus.NO_ANSWER,
    CallOutcome.BUSY: LeadStatus.NO_ANSWER,
    CallOutcome.DECLINED: LeadStatus.NOT_INTERESTED,
    CallOutcome.NOT_INTERESTED: LeadStatus.NOT_INTERESTED,
    CallOutcome.LIVE_TRANSFER: LeadStatus.LIVE_TRANSFER,
    CallOutcome.CALLBACK: LeadStatus.CALLBACK_LATER,
    CallOutcome.CALLBACK_LATER: LeadStatus.CALLBACK_LATER,
    CallOutcome.POTENTIAL_APPOINTMENT: LeadStatus.POTENTIAL_APPOINTMENT,
    CallOutcome.INVALID_NUMBER: LeadStatus.NEEDS_REVIEW,
    CallOutcome.FAILED: LeadStatus.NEEDS_REVIEW,
    CallOutcome.NOT_ELIGIBLE: LeadStatus.NOT_ELIGIBLE,
}

# Outcomes where nobody picked up; these calls are not billed
UNCONNECTED_OUTCOMES = frozenset({
    CallOutcome.NO_ANSWER,
    CallOutcome.NO_PICKUP,
    CallOutcome.VOICEMAIL,
    CallOutcome.BUSY,
    CallOutcome.INVALID_NUMBER,
    CallOutcome.FAILED,
})


_OUTCOME_VALUES = frozenset(o.value for o in CallOutcome)


def map_outcome(outcome: CallOutcome) -> LeadStatus:
    """Map a provider outcome onto the lead status enum."""
    return OUTCOME_TO_LEAD_STATUS[outcome]


class CallOutcomeCallback(BaseModel):
    """Asynchronous outcome report from the call provider"""
    call_id: str = Field(..., min_length=1)
    lead_id: str = Field(..., min_length=1)
    outcome: CallOutcome
    duration_seconds: float = Field(default=0, ge=0)

    @field_validator("outcome", mode="before")
    @classmethod
    def normalize_outcome(cls, v):
        if isinstance(v, str):
            v = v.strip().lower().replace("-", "_").replace(" ", "_")
            if v not in _OUTCOME_VALUES:
                logger.warning(f"Unknown call outcome '{v}', recording as unclassified")
                return CallOutcome.UNCLASSIFIED
        return v

    @property
    def connected(self) -> bool:
        return self.outcome not in UNCONNECTED_OUTCOMES


class CallRecord(BaseModel):
    """Call record"""
    call_id: str
    account_id: str
    lead_id: str
    status: CallStatus = CallStatus.INITIATED
    outcome: Optional[str] = None
    duration_seconds: Optional[float] = None
    cost: Optional[float] = None
    created_at: datetime
    ended_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


class CallerProfile(BaseModel):
    """Per-account call provider configuration"""
    account_id: str
    agent_id: Optional[str] = None
    from_number: Optional[str] = None
