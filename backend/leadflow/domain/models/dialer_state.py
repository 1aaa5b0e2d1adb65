"""
Dialer State Model
Per-account session state, schedule and override batch
"""
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Tuple
from datetime import datetime, time
from enum import Enum


class DialerStatus(str, Enum):
    """Account-level dialer session status"""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED_BUDGET = "paused-budget"
    PAUSED_BALANCE = "paused-balance"
    NO_LEADS = "no-leads"
    STOPPED = "stopped"


class LeadPriorityMode(str, Enum):
    """Ordering policy for the callable-lead set"""
    FRESH_FIRST = "fresh-first"
    CALLBACKS_FIRST = "callbacks-first"
    AGED_FIRST = "aged-first"
    RANDOM = "random"


DAY_NAMES = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


class DialerSchedule(BaseModel):
    """
    Auto-start schedule, evaluated in the account's own timezone.

    Days use three-letter lowercase names ("mon".."sun"), the window uses
    HH:MM strings like the rest of the calling configuration.
    """

    auto_start_enabled: bool = False
    days: List[str] = Field(default_factory=lambda: ["mon", "tue", "wed", "thu", "fri"])
    start_time: str = Field(default="09:00", description="Window start (HH:MM)")
    end_time: str = Field(default="10:00", description="Window end, exclusive (HH:MM)")
    timezone: str = Field(default="America/New_York", description="IANA timezone of the account")

    @field_validator("days")
    @classmethod
    def validate_days(cls, v: List[str]) -> List[str]:
        normalized = [d.strip().lower()[:3] for d in v]
        unknown = [d for d in normalized if d not in DAY_NAMES]
        if unknown:
            raise ValueError(f"Unknown schedule days: {unknown}")
        return normalized

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        try:
            hour, minute = map(int, v.split(":"))
            time(hour, minute)
        except ValueError:
            raise ValueError(f"Invalid time (expected HH:MM): {v}")
        return v

    def window(self) -> Tuple[time, time]:
        start_hour, start_min = map(int, self.start_time.split(":"))
        end_hour, end_min = map(int, self.end_time.split(":"))
        return time(start_hour, start_min), time(end_hour, end_min)

    def is_scheduled_day(self, local_now: datetime) -> bool:
        return DAY_NAMES[local_now.weekday()] in self.days

    def is_within_window(self, local_now: datetime) -> bool:
        start, end = self.window()
        return start <= local_now.time() < end


class OverrideBatch(BaseModel):
    """Operator-authorized extra attempts that bypass the budget gate."""

    active: bool = False
    leads_remaining: int = Field(default=0, ge=0)
    started_at: Optional[datetime] = None

    @property
    def in_effect(self) -> bool:
        return self.active and self.leads_remaining > 0


class AccountDialerState(BaseModel):
    """
    Dialer session state for one account.

    `current_call_id` / `current_lead_id` form an advisory lock: they signal
    an in-flight attempt but are not enforced by the store.
    """

    account_id: str
    status: DialerStatus = DialerStatus.IDLE

    # Advisory lock
    current_call_id: Optional[str] = None
    current_lead_id: Optional[str] = None
    queue_length: int = Field(default=0, ge=0)

    # Budget
    daily_call_limit: int = Field(default=50, ge=0)
    cost_per_minute: float = Field(default=0.30, ge=0)
    today_spend: float = Field(default=0.0, ge=0)
    spend_reset_date: Optional[str] = None  # Canonical day of today_spend

    # Session progress
    calls_made_today: int = Field(default=0, ge=0)
    target_lead_count: int = Field(default=100, ge=1)
    lead_priority_mode: LeadPriorityMode = LeadPriorityMode.FRESH_FIRST
    last_call_status: Optional[str] = None

    schedule: DialerSchedule = Field(default_factory=DialerSchedule)
    override: OverrideBatch = Field(default_factory=OverrideBatch)

    updated_at: Optional[datetime] = None

    def effective_spend(self, today: str) -> float:
        """Spend for `today`; a stale counter from an earlier day reads as zero."""
        if self.spend_reset_date != today:
            return 0.0
        return self.today_spend

    def effective_calls_today(self, today: str) -> int:
        if self.spend_reset_date != today:
            return 0
        return self.calls_made_today

    def budget_equivalent(self, minutes_per_call: float) -> float:
        """Dollar value of the daily call limit at this account's rate."""
        return self.daily_call_limit * minutes_per_call * self.cost_per_minute

    def is_clean_stop(self) -> bool:
        """True when the state already matches what a reset would write."""
        return (
            self.status == DialerStatus.STOPPED
            and self.current_call_id is None
            and self.current_lead_id is None
            and self.queue_length == 0
            and not self.override.active
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for database storage."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict) -> "AccountDialerState":
        """Create from dictionary (database load)."""
        row = {k: v for k, v in data.items() if v is not None}
        return cls(**row)
