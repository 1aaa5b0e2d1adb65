"""
Stuck-State Recovery
Clears attempts that never reported completion
"""
import logging
from typing import Optional

from pydantic import BaseModel

from leadflow.domain.interfaces.store import DialerStore
from leadflow.domain.models.balance import Balance
from leadflow.domain.models.lead import LeadStatus
from leadflow.domain.models.policy import DialerPolicy

logger = logging.getLogger(__name__)

RESET_OUTCOME = "reset_cleanup"


class ResetReport(BaseModel):
    """What a reset actually changed"""
    account_id: str
    leads_reset: int = 0
    state_reset: bool = False
    balance_created: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.leads_reset or self.state_reset or self.balance_created)


class RecoveryService:
    """
    Repairs an account left mid-call.

    Every write is conditional on the stuck condition still holding, so a
    second reset performs no mutation and a reset may interleave with normal
    dispatch.
    """

    def __init__(self, store: DialerStore, policy: Optional[DialerPolicy] = None):
        self.store = store
        self.policy = policy or DialerPolicy()

    async def reset(self, account_id: str) -> ResetReport:
        report = ResetReport(account_id=account_id)

        report.leads_reset = await self.store.update_leads_with_status(
            account_id,
            LeadStatus.CALLING_IN_PROGRESS,
            {"status": LeadStatus.NO_ANSWER, "last_outcome": RESET_OUTCOME},
        )

        report.state_reset = await self.store.stop_dialer_state_if_dirty(account_id)

        report.balance_created = await self.store.create_balance_if_absent(Balance(
            account_id=account_id,
            balance=self.policy.default_balance,
            auto_refill_enabled=self.policy.default_auto_refill_enabled,
            auto_refill_amount=self.policy.default_auto_refill_amount,
            auto_refill_threshold=self.policy.default_auto_refill_threshold,
        ))

        if report.changed:
            logger.info(
                f"Reset account {account_id}: leads={report.leads_reset}, "
                f"state={report.state_reset}, balance_created={report.balance_created}"
            )
        else:
            logger.info(f"Reset account {account_id}: nothing to repair")
        return report
