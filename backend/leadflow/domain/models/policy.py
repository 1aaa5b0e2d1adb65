"""
Dialer Policy
Tunable constants for eligibility, admission and billing
"""
from pydantic import BaseModel, Field
from typing import List, Optional

from leadflow.core.config import ConfigManager
from leadflow.domain.models.dialer_state import LeadPriorityMode
from leadflow.domain.models.lead import LEAD_CALL_CAP


class DialerPolicy(BaseModel):
    """Policy values shared by every account"""

    reference_timezone: str = "America/New_York"
    lead_call_cap: int = Field(default=LEAD_CALL_CAP, ge=1)
    minutes_per_call: float = Field(default=1.0, gt=0)
    default_cost_per_minute: float = Field(default=0.30, ge=0)
    default_daily_call_limit: int = Field(default=50, ge=0)
    default_target_lead_count: int = Field(default=100, ge=1)
    default_priority_mode: LeadPriorityMode = LeadPriorityMode.FRESH_FIRST
    override_min_leads: int = 1
    override_max_leads: int = 100

    auto_refill_amounts: List[float] = Field(default_factory=lambda: [25, 50, 100, 200, 400])
    default_balance: float = 0.0
    default_auto_refill_enabled: bool = True
    default_auto_refill_amount: float = 25
    default_auto_refill_threshold: float = 1.00
    currency: str = "usd"

    @classmethod
    def from_config(cls, config: Optional[ConfigManager] = None) -> "DialerPolicy":
        """Build the policy from the `dialer` and `billing` YAML sections."""
        config = config or ConfigManager()
        values = {}
        values.update(config.get_section("dialer"))
        values.update(config.get_section("billing"))
        known = {k: v for k, v in values.items() if k in cls.model_fields}
        return cls(**known)
