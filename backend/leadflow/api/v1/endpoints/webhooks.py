"""
Webhooks API Endpoints
Outcome callbacks from the call provider
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from pydantic import ValidationError as PydanticValidationError

from leadflow.core.errors import ValidationError
from leadflow.domain.models.call import CallOutcomeCallback
from leadflow.domain.services.call_state_machine import CallStateMachine
from leadflow.domain.services.notification_outbox import NotificationOutbox
from leadflow.api.v1.dependencies import get_outbox, get_state_machine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

RECORDED_EVENT = "call_analyzed"


# Retell disconnection reasons that settle the outcome on their own
DISCONNECTION_OUTCOMES = {
    "dial_no_answer": "no_answer",
    "voicemail_reached": "voicemail",
    "dial_busy": "busy",
    "dial_failed": "failed",
    "invalid_destination": "invalid_number",
}


def parse_callback(body: Dict[str, Any]) -> CallOutcomeCallback:
    """
    Accept either the flat callback `{call_id, lead_id, outcome,
    duration_seconds}` or Retell's `{event, call: {...}}` envelope.
    """
    call = body.get("call")
    if not isinstance(call, dict):
        return CallOutcomeCallback(**body)

    metadata = call.get("metadata") or {}
    analysis = (call.get("call_analysis") or {}).get("custom_analysis_data") or {}
    outcome = (
        DISCONNECTION_OUTCOMES.get(call.get("disconnection_reason"))
        or analysis.get("outcome")
        or call.get("outcome")
        or "unclassified"
    )
    return CallOutcomeCallback(
        call_id=call.get("call_id", ""),
        lead_id=metadata.get("lead_id", ""),
        outcome=outcome,
        duration_seconds=(call.get("duration_ms") or 0) / 1000.0,
    )


@router.post("/call-provider")
async def call_provider_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    state_machine: CallStateMachine = Depends(get_state_machine),
    outbox: NotificationOutbox = Depends(get_outbox)
):
    """
    Handle the call provider's outcome callback.

    Retell sends call_ended before call_analyzed for the same call; only
    call_analyzed carries the classified outcome, so it is the one recorded.
    Duplicate deliveries for an already-completed call are acknowledged and
    ignored.
    """
    body = await request.json()

    event = body.get("event")
    if event and event != RECORDED_EVENT:
        logger.debug(f"Ignoring provider event '{event}'")
        return {"status": "ignored", "event": event}

    try:
        callback = parse_callback(body)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid callback payload: {e.errors()}", reason="invalid_callback")

    result = await state_machine.record_outcome(callback)
    background_tasks.add_task(outbox.drain)

    return {
        "status": "duplicate" if result.duplicate else "recorded",
        **result.model_dump(mode="json"),
    }
