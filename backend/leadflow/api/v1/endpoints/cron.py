"""
Cron API Endpoints
Entry points for the external scheduler
"""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends

from leadflow.domain.services.notification_outbox import NotificationOutbox
from leadflow.domain.services.scheduled_trigger import ScheduledTriggerEvaluator
from leadflow.api.v1.dependencies import get_outbox, get_trigger_evaluator, verify_cron_secret

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(verify_cron_secret)])


@router.post("/auto-start")
async def auto_start(
    background_tasks: BackgroundTasks,
    evaluator: ScheduledTriggerEvaluator = Depends(get_trigger_evaluator),
    outbox: NotificationOutbox = Depends(get_outbox)
):
    """Run one schedule sweep across every auto-start account."""
    results = await evaluator.run_sweep()
    background_tasks.add_task(outbox.drain)

    started = [r for r in results if r.action == "started"]
    return {
        "accounts_checked": len(results),
        "started": len(started),
        "results": [r.model_dump(mode="json") for r in results],
    }
