"""
Schedule Sweep Worker
One-shot auto-start sweep plus outbox drain, run by an external cron
"""
import asyncio
import logging
import sys
from datetime import datetime
from typing import List, Optional

from supabase import create_client

from leadflow.core.config import ConfigManager, Settings, get_settings
from leadflow.domain.models.policy import DialerPolicy
from leadflow.domain.services.admission_controller import AdmissionController
from leadflow.domain.services.call_state_machine import CallStateMachine
from leadflow.domain.services.day_boundary import DayBoundaryResolver
from leadflow.domain.services.lead_eligibility import LeadEligibilityService
from leadflow.domain.services.notification_outbox import NotificationOutbox
from leadflow.domain.services.scheduled_trigger import ScheduledTriggerEvaluator, SweepResult
from leadflow.infrastructure.billing.stripe_gateway import StripePaymentProvider
from leadflow.infrastructure.relay.http_relay import HttpWorkflowRelay
from leadflow.infrastructure.storage.supabase_store import SupabaseDialerStore
from leadflow.infrastructure.telephony.retell_caller import RetellCallProvider

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


class ScheduleSweepWorker:
    """
    Runs a single schedule sweep and exits.

    There is no loop: scheduling is owned by the external cron, which calls
    this module (or POST /api/v1/cron/auto-start) periodically.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.evaluator: Optional[ScheduledTriggerEvaluator] = None
        self.outbox: Optional[NotificationOutbox] = None

    async def initialize(self) -> None:
        """Build the store, providers and services from settings."""
        logger.info("Initializing Schedule Sweep Worker...")

        if not self.settings.supabase_url or not self.settings.supabase_service_key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")

        config = ConfigManager()
        policy = DialerPolicy.from_config(config)
        supabase = create_client(self.settings.supabase_url, self.settings.supabase_service_key)
        store = SupabaseDialerStore(supabase)
        resolver = DayBoundaryResolver(policy.reference_timezone)

        relay = HttpWorkflowRelay(
            self.settings.workflow_relay_url,
            timeout=config.get("relay.timeout_seconds", 5.0)
        )
        self.outbox = NotificationOutbox(relay, redis_url=self.settings.redis_url)
        await self.outbox.initialize()

        admission = AdmissionController(
            store,
            StripePaymentProvider(supabase, self.settings.stripe_secret_key, policy.currency),
            resolver,
            policy
        )
        state_machine = CallStateMachine(
            store,
            LeadEligibilityService(store, resolver, policy),
            admission,
            RetellCallProvider(self.settings.retell_api_key, self.settings.retell_base_url),
            self.outbox,
            resolver,
            policy
        )
        self.evaluator = ScheduledTriggerEvaluator(store, state_machine, resolver)

        logger.info("Schedule Sweep Worker initialized successfully")

    async def run_once(self, now: Optional[datetime] = None) -> List[SweepResult]:
        if self.evaluator is None:
            await self.initialize()

        results = await self.evaluator.run_sweep(now)
        delivered = await self.outbox.drain()
        pending = await self.outbox.pending()

        logger.info(f"Sweep finished: {len(results)} account(s), {delivered} notification(s) sent, {pending} pending")
        return results

    async def shutdown(self) -> None:
        if self.outbox is not None:
            await self.outbox.close()


async def main() -> int:
    worker = ScheduleSweepWorker()
    try:
        results = await worker.run_once()
    except Exception as e:
        logger.error(f"Schedule sweep failed: {e}", exc_info=True)
        return 1
    finally:
        await worker.shutdown()

    errors = [r for r in results if r.action == "error"]
    return 1 if errors else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
