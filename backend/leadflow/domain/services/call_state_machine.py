"""
Call-Attempt State Machine
Session lifecycle, dispatch and outcome handling for the outbound dialer
"""
import logging
from datetime import datetime
from typing import Optional

import pytz
from pydantic import BaseModel

from leadflow.core.errors import (
    NotFoundError,
    PartialFailure,
    SessionConflictError,
    UpstreamProviderError,
    ValidationError,
)
from leadflow.domain.interfaces.call_provider import CallProvider
from leadflow.domain.interfaces.store import DialerStore
from leadflow.domain.models.call import CallOutcomeCallback, CallRecord, CallStatus, map_outcome
from leadflow.domain.models.dialer_state import AccountDialerState, DialerStatus, OverrideBatch
from leadflow.domain.models.lead import Lead, LeadStatus
from leadflow.domain.models.policy import DialerPolicy
from leadflow.domain.services.admission_controller import AdmissionController, AdmissionResult
from leadflow.domain.services.day_boundary import DayBoundaryResolver
from leadflow.domain.services.lead_eligibility import LeadEligibilityService
from leadflow.domain.services.notification_outbox import NotificationOutbox

logger = logging.getLogger(__name__)


class StartResult(BaseModel):
    """Outcome of a start request"""
    started: bool
    status: DialerStatus
    reason: Optional[str] = None
    trigger: str = "operator"
    callable_leads: int = 0
    target_lead_count: Optional[int] = None
    admission: Optional[AdmissionResult] = None


class DispatchResult(BaseModel):
    """Outcome of one dispatch attempt"""
    dispatched: bool
    status: DialerStatus
    reason: Optional[str] = None
    call_id: Optional[str] = None
    lead_id: Optional[str] = None
    override_remaining: Optional[int] = None


class OutcomeResult(BaseModel):
    """Outcome of a provider callback"""
    call_id: str
    lead_id: str
    duplicate: bool = False
    lead_status: Optional[LeadStatus] = None
    cost: float = 0.0
    lock_released: bool = False


class CallStateMachine:
    """
    Drives an account's dialer session.

    Account: idle -> running -> {paused-budget, paused-balance, no-leads}
    -> stopped. Lead: callable status -> calling_in_progress -> outcome
    status from the provider callback.

    The current_call_id / current_lead_id pair is an advisory lock; a lead
    whose callback never arrives stays calling_in_progress until the
    recovery procedure clears it.
    """

    def __init__(
        self,
        store: DialerStore,
        eligibility: LeadEligibilityService,
        admission: AdmissionController,
        call_provider: CallProvider,
        outbox: NotificationOutbox,
        resolver: DayBoundaryResolver,
        policy: Optional[DialerPolicy] = None
    ):
        self.store = store
        self.eligibility = eligibility
        self.admission = admission
        self.call_provider = call_provider
        self.outbox = outbox
        self.resolver = resolver
        self.policy = policy or DialerPolicy()

    async def get_state(self, account_id: str) -> AccountDialerState:
        state = await self.store.get_dialer_state(account_id)
        return state or self.admission.default_state(account_id)

    # Session lifecycle

    async def start(
        self,
        account_id: str,
        limit: Optional[int] = None,
        trigger: str = "operator",
        now: Optional[datetime] = None
    ) -> StartResult:
        """
        Start a dialing session.

        Requires an admission pass and a non-empty callable set. A refused
        start records the paused/no-leads status and returns its reason.

        Raises:
            ValidationError: limit < 1
            SessionConflictError: session already running
        """
        if limit is not None and limit < 1:
            raise ValidationError("limit must be >= 1", reason="invalid_limit")

        state = await self.get_state(account_id)
        if state.status == DialerStatus.RUNNING:
            raise SessionConflictError(
                f"Dialer already running for account {account_id}",
                reason="already_running"
            )

        admission = await self.admission.check_admission(account_id, now)
        if not admission.allowed:
            await self.store.update_dialer_state(account_id, {
                "status": admission.new_session_status,
                "last_call_status": admission.reason,
            })
            return StartResult(
                started=False,
                status=admission.new_session_status,
                reason=admission.reason,
                trigger=trigger,
                admission=admission,
            )

        candidates = await self.eligibility.callable_leads(account_id, now)
        if candidates.is_empty:
            await self.store.update_dialer_state(account_id, {
                "status": DialerStatus.NO_LEADS,
                "last_call_status": candidates.reason.value,
            })
            logger.info(f"Start refused for account {account_id}: {candidates.reason.value}")
            return StartResult(
                started=False,
                status=DialerStatus.NO_LEADS,
                reason=candidates.reason.value,
                trigger=trigger,
                admission=admission,
            )

        today = self.resolver.canonical_day(now)
        target = limit or state.target_lead_count
        fields = {
            "status": DialerStatus.RUNNING,
            "target_lead_count": target,
            "calls_made_today": 0,
            "queue_length": len(candidates.leads),
            "last_call_status": f"{trigger}_start",
        }
        if state.spend_reset_date != today:
            fields["today_spend"] = 0.0
            fields["spend_reset_date"] = today
        await self.store.update_dialer_state(account_id, fields)

        logger.info(
            f"Dialer started for account {account_id} (trigger={trigger}, "
            f"target={target}, callable={len(candidates.leads)})"
        )
        await self._notify("dialer.started", {
            "account_id": account_id,
            "trigger": trigger,
            "target_lead_count": target,
        })

        return StartResult(
            started=True,
            status=DialerStatus.RUNNING,
            trigger=trigger,
            callable_leads=len(candidates.leads),
            target_lead_count=target,
            admission=admission,
        )

    async def stop(self, account_id: str, emergency: bool = False) -> AccountDialerState:
        """
        Stop the session. Blocks further dispatch; an in-flight call is not
        touched. An emergency stop also releases the advisory lock.
        """
        fields = {
            "status": DialerStatus.STOPPED,
            "queue_length": 0,
            "override": OverrideBatch(),
            "last_call_status": "emergency_stop" if emergency else "stopped",
        }
        if emergency:
            fields["current_call_id"] = None
            fields["current_lead_id"] = None

        await self.store.update_dialer_state(account_id, fields)
        logger.info(f"Dialer {'emergency-' if emergency else ''}stopped for account {account_id}")
        await self._notify("dialer.stopped", {"account_id": account_id, "emergency": emergency})
        return await self.get_state(account_id)

    async def activate_override(
        self,
        account_id: str,
        extra_leads: int,
        now: Optional[datetime] = None
    ) -> AccountDialerState:
        """
        Authorize `extra_leads` attempts past the daily budget.

        The balance gate still applies. A session paused on budget resumes.
        """
        low, high = self.policy.override_min_leads, self.policy.override_max_leads
        if not low <= extra_leads <= high:
            raise ValidationError(
                f"extra_leads must be between {low} and {high}",
                reason="invalid_override"
            )

        state = await self.get_state(account_id)
        fields = {
            "override": OverrideBatch(
                active=True,
                leads_remaining=extra_leads,
                started_at=now or datetime.now(pytz.UTC),
            ),
        }
        if state.status == DialerStatus.PAUSED_BUDGET:
            fields["status"] = DialerStatus.RUNNING
            fields["last_call_status"] = "override_resume"

        await self.store.update_dialer_state(account_id, fields)
        logger.info(f"Override activated for account {account_id}: {extra_leads} leads")
        await self._notify("dialer.override_activated", {
            "account_id": account_id,
            "extra_leads": extra_leads,
        })
        return await self.get_state(account_id)

    # Dispatch

    async def dispatch_next(self, account_id: str, now: Optional[datetime] = None) -> DispatchResult:
        """
        Place the next call of a running session.

        Re-validates the lock, the target count, admission and the callable
        set before dialing the first lead in priority order.

        Raises:
            ValidationError: No caller profile configured
            UpstreamProviderError: The call provider failed; the lead is
                moved to needs_review and the lock released
        """
        state = await self.get_state(account_id)
        today = self.resolver.canonical_day(now)

        if state.status != DialerStatus.RUNNING:
            return DispatchResult(dispatched=False, status=state.status, reason="not_running")

        if state.current_call_id or state.current_lead_id:
            return DispatchResult(
                dispatched=False,
                status=state.status,
                reason="call_in_progress",
                call_id=state.current_call_id,
                lead_id=state.current_lead_id,
            )

        calls_today = state.effective_calls_today(today)
        if calls_today >= state.target_lead_count:
            await self.store.update_dialer_state(account_id, {
                "status": DialerStatus.STOPPED,
                "queue_length": 0,
                "last_call_status": "target_reached",
            })
            logger.info(f"Target of {state.target_lead_count} reached for account {account_id}")
            await self._notify("dialer.stopped", {"account_id": account_id, "reason": "target_reached"})
            return DispatchResult(dispatched=False, status=DialerStatus.STOPPED, reason="target_reached")

        admission = await self.admission.check_admission(account_id, now)
        if not admission.allowed:
            await self._notify("dialer.paused", {"account_id": account_id, "reason": admission.reason})
            return DispatchResult(
                dispatched=False,
                status=admission.new_session_status,
                reason=admission.reason,
            )

        candidates = await self.eligibility.callable_leads(account_id, now, state.lead_priority_mode)
        if candidates.is_empty:
            await self.store.update_dialer_state(account_id, {
                "status": DialerStatus.NO_LEADS,
                "queue_length": 0,
                "last_call_status": candidates.reason.value,
            })
            await self._notify("dialer.no_leads", {
                "account_id": account_id,
                "reason": candidates.reason.value,
            })
            return DispatchResult(
                dispatched=False,
                status=DialerStatus.NO_LEADS,
                reason=candidates.reason.value,
            )

        profile = await self.store.get_caller_profile(account_id)
        if profile is None or not profile.agent_id or not profile.from_number:
            raise ValidationError(
                f"No caller profile configured for account {account_id}",
                reason="no_caller_profile"
            )

        lead = candidates.leads[0]
        attempts = lead.effective_attempts_today(today) + 1
        dialed_at = now or datetime.now(pytz.UTC)

        await self.store.update_lead(lead.id, {
            "status": LeadStatus.CALLING_IN_PROGRESS,
            "last_called_at": dialed_at,
        })
        await self.store.update_dialer_state(account_id, {"current_lead_id": lead.id})

        try:
            call_id = await self.call_provider.place_call(
                agent_id=profile.agent_id,
                to_number=lead.phone,
                from_number=profile.from_number,
                metadata={"lead_id": lead.id, "account_id": account_id},
            )
        except UpstreamProviderError:
            await self._fail_dispatch(account_id, lead, attempts, today)
            raise

        await self.store.update_lead(lead.id, {
            "call_attempts_today": attempts,
            "last_attempt_date": today,
        })
        await self._record_call(CallRecord(
            call_id=call_id,
            account_id=account_id,
            lead_id=lead.id,
            created_at=dialed_at,
        ))

        fields = {
            "current_call_id": call_id,
            "current_lead_id": lead.id,
            "queue_length": len(candidates.leads) - 1,
            "last_call_status": "calling",
        }
        if state.spend_reset_date == today:
            fields["calls_made_today"] = calls_today + 1
        else:
            fields["calls_made_today"] = 1
            fields["today_spend"] = 0.0
            fields["spend_reset_date"] = today

        override_remaining = None
        if state.override.in_effect:
            override_remaining = state.override.leads_remaining - 1
            fields["override"] = OverrideBatch(
                active=override_remaining > 0,
                leads_remaining=override_remaining,
                started_at=state.override.started_at,
            )
        await self.store.update_dialer_state(account_id, fields)

        logger.info(f"Dispatched call {call_id} to lead {lead.id} for account {account_id}")
        await self._notify("call.dispatched", {
            "account_id": account_id,
            "call_id": call_id,
            "lead_id": lead.id,
        })

        return DispatchResult(
            dispatched=True,
            status=DialerStatus.RUNNING,
            call_id=call_id,
            lead_id=lead.id,
            override_remaining=override_remaining,
        )

    async def _fail_dispatch(self, account_id: str, lead: Lead, attempts: int, today: str) -> None:
        logger.error(f"Dispatch failed for lead {lead.id} (account {account_id})")
        await self.store.update_lead(lead.id, {
            "status": LeadStatus.NEEDS_REVIEW,
            "call_attempts_today": attempts,
            "last_attempt_date": today,
            "last_outcome": "dispatch_failed",
        })
        await self.store.update_dialer_state(account_id, {
            "current_call_id": None,
            "current_lead_id": None,
            "last_call_status": "dispatch_failed",
        })

    # Outcomes

    async def record_outcome(
        self,
        callback: CallOutcomeCallback,
        now: Optional[datetime] = None
    ) -> OutcomeResult:
        """
        Apply a provider outcome callback.

        A callback for a call that already has an end time is ignored.
        """
        record = await self.store.get_call_record(callback.call_id)
        if record is not None and record.ended_at is not None:
            logger.info(f"Duplicate callback ignored for call {callback.call_id}")
            return OutcomeResult(call_id=callback.call_id, lead_id=callback.lead_id, duplicate=True)

        lead = await self.store.get_lead(callback.lead_id)
        if lead is None:
            raise NotFoundError(f"Lead {callback.lead_id} not found", reason="lead_not_found")

        new_status = map_outcome(callback.outcome)
        ended_at = now or datetime.now(pytz.UTC)

        await self.store.update_lead(lead.id, {
            "status": new_status,
            "last_outcome": callback.outcome.value,
            "total_calls_made": lead.total_calls_made + 1,
        })

        cost = 0.0
        if callback.connected and callback.duration_seconds > 0:
            cost = await self.admission.accrue_call_cost(
                lead.account_id,
                callback.duration_seconds,
                now=now,
                call_id=callback.call_id,
            )

        completed = {
            "status": CallStatus.COMPLETED,
            "outcome": callback.outcome.value,
            "duration_seconds": callback.duration_seconds,
            "cost": cost,
            "ended_at": ended_at,
        }
        if record is not None:
            await self._update_call(callback.call_id, completed)
        else:
            logger.warning(f"Callback for unknown call {callback.call_id}, recording it")
            await self._record_call(CallRecord(
                call_id=callback.call_id,
                account_id=lead.account_id,
                lead_id=lead.id,
                created_at=ended_at,
                **completed,
            ))

        state = await self.get_state(lead.account_id)
        released = False
        if state.current_call_id == callback.call_id or (
            state.current_call_id is None and state.current_lead_id == lead.id
        ):
            await self.store.update_dialer_state(lead.account_id, {
                "current_call_id": None,
                "current_lead_id": None,
                "last_call_status": new_status.value,
            })
            released = True

        logger.info(
            f"Call {callback.call_id} completed: {callback.outcome.value} -> {new_status.value} "
            f"(lead {lead.id}, cost {cost:.4f})"
        )

        await self._notify("call.completed", {
            "account_id": lead.account_id,
            "call_id": callback.call_id,
            "lead_id": lead.id,
            "outcome": callback.outcome.value,
            "lead_status": new_status.value,
            "duration_seconds": callback.duration_seconds,
        })
        if released and state.status == DialerStatus.RUNNING:
            await self._notify("dialer.continue", {"account_id": lead.account_id})

        return OutcomeResult(
            call_id=callback.call_id,
            lead_id=lead.id,
            lead_status=new_status,
            cost=cost,
            lock_released=released,
        )

    async def mark_outcome(
        self,
        call_id: str,
        new_status: LeadStatus,
        lead_id: Optional[str] = None
    ) -> Lead:
        """Operator correction of a call's recorded outcome and the lead's status."""
        if new_status == LeadStatus.CALLING_IN_PROGRESS:
            raise ValidationError("calling_in_progress cannot be set manually", reason="invalid_status")

        record = await self.store.get_call_record(call_id)
        if record is None and lead_id is None:
            raise NotFoundError(f"Call {call_id} not found", reason="call_not_found")

        lead_id = lead_id or record.lead_id
        lead = await self.store.get_lead(lead_id)
        if lead is None:
            raise NotFoundError(f"Lead {lead_id} not found", reason="lead_not_found")

        if record is not None:
            await self._update_call(call_id, {"outcome": new_status.value})
        await self.store.update_lead(lead_id, {
            "status": new_status,
            "last_outcome": new_status.value,
        })

        logger.info(f"Outcome of call {call_id} corrected: lead {lead_id} -> {new_status.value}")
        await self._notify("call.outcome_corrected", {
            "account_id": lead.account_id,
            "call_id": call_id,
            "lead_id": lead_id,
            "previous_status": lead.status.value,
            "lead_status": new_status.value,
        })
        return lead.model_copy(update={"status": new_status, "last_outcome": new_status.value})

    # Secondary writes

    async def _record_call(self, record: CallRecord) -> None:
        try:
            await self.store.create_call_record(record)
        except Exception as e:
            failure = PartialFailure(f"Call record write failed: {e}", operation="create_call_record")
            logger.error(f"{failure.reason}: {failure.message} (call {record.call_id})", exc_info=True)

    async def _update_call(self, call_id: str, fields: dict) -> None:
        try:
            await self.store.update_call_record(call_id, fields)
        except Exception as e:
            failure = PartialFailure(f"Call record update failed: {e}", operation="update_call_record")
            logger.error(f"{failure.reason}: {failure.message} (call {call_id})", exc_info=True)

    async def _notify(self, event: str, payload: dict) -> None:
        await self.outbox.publish(event, payload)
