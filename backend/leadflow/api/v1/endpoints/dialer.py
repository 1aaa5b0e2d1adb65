"""
Dialer API Endpoints
Operator and automation commands for an account's dialing session
"""
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel

from leadflow.domain.interfaces.store import DialerStore
from leadflow.domain.models.lead import LeadStatus
from leadflow.domain.models.policy import DialerPolicy
from leadflow.domain.services.call_state_machine import CallStateMachine
from leadflow.domain.services.day_boundary import DayBoundaryResolver
from leadflow.domain.services.lead_eligibility import LeadEligibilityService
from leadflow.domain.services.notification_outbox import NotificationOutbox
from leadflow.domain.services.recovery_service import RecoveryService
from leadflow.api.v1.dependencies import (
    get_eligibility_service,
    get_outbox,
    get_policy,
    get_recovery_service,
    get_resolver,
    get_state_machine,
    get_store,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dialer", tags=["dialer"])


class StartRequest(BaseModel):
    limit: Optional[int] = None


class StopRequest(BaseModel):
    emergency: bool = False


class OverrideRequest(BaseModel):
    extra_leads: int


class MarkOutcomeRequest(BaseModel):
    status: LeadStatus
    lead_id: Optional[str] = None


@router.post("/{account_id}/start")
async def start_dialer(
    account_id: str,
    background_tasks: BackgroundTasks,
    request: Optional[StartRequest] = None,
    state_machine: CallStateMachine = Depends(get_state_machine),
    outbox: NotificationOutbox = Depends(get_outbox)
):
    """
    Start a dialing session.

    A refused start is not an error: the response carries the resulting
    status and its reason code (paused-balance, paused-budget, no_sheets, ...).
    """
    limit = request.limit if request else None
    result = await state_machine.start(account_id, limit=limit, trigger="operator")
    background_tasks.add_task(outbox.drain)
    return result.model_dump(mode="json")


@router.post("/{account_id}/stop")
async def stop_dialer(
    account_id: str,
    background_tasks: BackgroundTasks,
    request: Optional[StopRequest] = None,
    state_machine: CallStateMachine = Depends(get_state_machine),
    outbox: NotificationOutbox = Depends(get_outbox)
):
    emergency = request.emergency if request else False
    state = await state_machine.stop(account_id, emergency=emergency)
    background_tasks.add_task(outbox.drain)
    return {"status": state.status.value, "emergency": emergency}


@router.post("/{account_id}/override")
async def activate_override(
    account_id: str,
    request: OverrideRequest,
    background_tasks: BackgroundTasks,
    state_machine: CallStateMachine = Depends(get_state_machine),
    outbox: NotificationOutbox = Depends(get_outbox)
):
    """Authorize extra attempts past today's budget (balance still applies)."""
    state = await state_machine.activate_override(account_id, request.extra_leads)
    background_tasks.add_task(outbox.drain)
    return {
        "status": state.status.value,
        "override": state.override.model_dump(mode="json"),
    }


@router.post("/{account_id}/reset")
async def reset_dialer(
    account_id: str,
    recovery: RecoveryService = Depends(get_recovery_service)
):
    """Clear stuck in-progress leads and the session lock. Safe to repeat."""
    report = await recovery.reset(account_id)
    return {**report.model_dump(), "changed": report.changed}


@router.post("/{account_id}/dispatch")
async def dispatch_next(
    account_id: str,
    background_tasks: BackgroundTasks,
    state_machine: CallStateMachine = Depends(get_state_machine),
    outbox: NotificationOutbox = Depends(get_outbox)
):
    """Place the next call of a running session."""
    result = await state_machine.dispatch_next(account_id)
    background_tasks.add_task(outbox.drain)
    return result.model_dump(mode="json")


@router.get("/{account_id}/status")
async def get_dialer_status(
    account_id: str,
    state_machine: CallStateMachine = Depends(get_state_machine),
    store: DialerStore = Depends(get_store),
    resolver: DayBoundaryResolver = Depends(get_resolver),
    policy: DialerPolicy = Depends(get_policy)
):
    """Session state with today's spend and balance. Read-only."""
    state = await state_machine.get_state(account_id)
    balance = await store.get_balance(account_id)
    today = resolver.canonical_day()

    return {
        "account_id": account_id,
        "status": state.status.value,
        "current_call_id": state.current_call_id,
        "current_lead_id": state.current_lead_id,
        "queue_length": state.queue_length,
        "calls_made_today": state.effective_calls_today(today),
        "target_lead_count": state.target_lead_count,
        "today_spend": state.effective_spend(today),
        "budget_equivalent": state.budget_equivalent(policy.minutes_per_call),
        "balance": balance.balance if balance else None,
        "override": state.override.model_dump(mode="json"),
        "last_call_status": state.last_call_status,
        "day": today,
    }


@router.get("/{account_id}/callable-leads")
async def get_callable_leads(
    account_id: str,
    limit: int = Query(default=25, ge=1, le=500),
    eligibility: LeadEligibilityService = Depends(get_eligibility_service)
):
    """Callable-lead diagnostics: count, reason when empty, and the head of the queue."""
    result = await eligibility.callable_leads(account_id)
    return {
        "account_id": account_id,
        "count": len(result.leads),
        "reason": result.reason.value if result.reason else None,
        "active_sources": result.active_sources,
        "qualified_leads": result.qualified_leads,
        "dialed_today": result.dialed_today,
        "exhausted": result.exhausted,
        "leads": [lead.to_dict() for lead in result.leads[:limit]],
    }


@router.post("/calls/{call_id}/outcome")
async def mark_call_outcome(
    call_id: str,
    request: MarkOutcomeRequest,
    background_tasks: BackgroundTasks,
    state_machine: CallStateMachine = Depends(get_state_machine),
    outbox: NotificationOutbox = Depends(get_outbox)
):
    """Operator correction of a call's outcome."""
    lead = await state_machine.mark_outcome(call_id, request.status, request.lead_id)
    background_tasks.add_task(outbox.drain)
    return {"call_id": call_id, "lead_id": lead.id, "status": lead.status.value}
