"""
Scheduled-Trigger Evaluator
Periodic auto-start check over every account with a schedule
"""
import logging
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from leadflow.core.errors import DialerError
from leadflow.domain.interfaces.store import DialerStore
from leadflow.domain.models.dialer_state import DialerStatus
from leadflow.domain.services.call_state_machine import CallStateMachine
from leadflow.domain.services.day_boundary import DayBoundaryResolver

logger = logging.getLogger(__name__)


class SweepResult(BaseModel):
    """Per-account outcome of one sweep"""
    account_id: str
    action: str  # started | skipped | refused | error
    reason: Optional[str] = None
    status: Optional[DialerStatus] = None


class ScheduledTriggerEvaluator:
    """
    Starts sessions for accounts whose auto-start window is open.

    Each account's weekday and clock are computed in its own timezone. The
    state is re-read per account so a repeated sweep in the same window
    never starts a running session twice.
    """

    def __init__(
        self,
        store: DialerStore,
        state_machine: CallStateMachine,
        resolver: DayBoundaryResolver
    ):
        self.store = store
        self.state_machine = state_machine
        self.resolver = resolver

    async def run_sweep(self, now: Optional[datetime] = None) -> List[SweepResult]:
        states = await self.store.list_auto_start_states()
        logger.info(f"Schedule sweep over {len(states)} account(s)")

        results = []
        for candidate in states:
            results.append(await self._evaluate(candidate.account_id, now))

        started = sum(1 for r in results if r.action == "started")
        logger.info(f"Schedule sweep complete: {started} started, {len(results) - started} not started")
        return results

    async def _evaluate(self, account_id: str, now: Optional[datetime]) -> SweepResult:
        state = await self.store.get_dialer_state(account_id)
        if state is None or not state.schedule.auto_start_enabled:
            return SweepResult(account_id=account_id, action="skipped", reason="auto_start_disabled")

        local_now = self.resolver.local_now(state.schedule.timezone, now)
        if not state.schedule.is_scheduled_day(local_now):
            return SweepResult(account_id=account_id, action="skipped", reason="not_scheduled_day", status=state.status)
        if not state.schedule.is_within_window(local_now):
            return SweepResult(account_id=account_id, action="skipped", reason="outside_window", status=state.status)
        if state.status == DialerStatus.RUNNING:
            return SweepResult(account_id=account_id, action="skipped", reason="already_running", status=state.status)

        profile = await self.store.get_caller_profile(account_id)
        if profile is None or not profile.agent_id or not profile.from_number:
            return SweepResult(account_id=account_id, action="skipped", reason="no_caller_profile", status=state.status)

        try:
            result = await self.state_machine.start(
                account_id,
                limit=state.target_lead_count,
                trigger="schedule",
                now=now,
            )
        except DialerError as e:
            logger.error(f"Scheduled start failed for account {account_id}: {e.message}", exc_info=True)
            return SweepResult(account_id=account_id, action="error", reason=e.reason, status=state.status)

        if result.started:
            logger.info(f"Scheduled start for account {account_id} at {local_now.strftime('%a %H:%M %Z')}")
            return SweepResult(account_id=account_id, action="started", status=result.status)
        return SweepResult(account_id=account_id, action="refused", reason=result.reason, status=result.status)
