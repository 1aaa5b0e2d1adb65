"""
API Dependencies
Builds the store, providers and dialer services for request handlers
"""
import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from supabase import create_client, Client

from leadflow.core.config import ConfigManager, Settings, get_settings
from leadflow.domain.interfaces.call_provider import CallProvider
from leadflow.domain.interfaces.payment_provider import PaymentProvider
from leadflow.domain.interfaces.store import DialerStore
from leadflow.domain.models.policy import DialerPolicy
from leadflow.domain.services.admission_controller import AdmissionController
from leadflow.domain.services.call_state_machine import CallStateMachine
from leadflow.domain.services.day_boundary import DayBoundaryResolver
from leadflow.domain.services.lead_eligibility import LeadEligibilityService
from leadflow.domain.services.notification_outbox import NotificationOutbox
from leadflow.domain.services.recovery_service import RecoveryService
from leadflow.domain.services.revenue_reconciliation import RevenueReconciliationService
from leadflow.domain.services.scheduled_trigger import ScheduledTriggerEvaluator
from leadflow.infrastructure.billing.stripe_gateway import StripePaymentProvider
from leadflow.infrastructure.relay.http_relay import HttpWorkflowRelay
from leadflow.infrastructure.storage.memory_store import InMemoryDialerStore
from leadflow.infrastructure.storage.supabase_store import SupabaseDialerStore
from leadflow.infrastructure.telephony.retell_caller import RetellCallProvider

logger = logging.getLogger(__name__)


@lru_cache
def get_supabase() -> Optional[Client]:
    """
    Supabase client, or None when the store is not configured.
    """
    settings = get_settings()
    if not settings.supabase_url or not settings.supabase_service_key:
        return None
    return create_client(settings.supabase_url, settings.supabase_service_key)


@lru_cache
def get_policy() -> DialerPolicy:
    return DialerPolicy.from_config(ConfigManager())


@lru_cache
def get_store() -> DialerStore:
    """
    Process-wide store. Falls back to the in-memory store (data is lost on
    restart) when Supabase is not configured.
    """
    supabase = get_supabase()
    if supabase is None:
        logger.warning("Supabase not configured - using in-memory dialer store")
        return InMemoryDialerStore()
    return SupabaseDialerStore(supabase)


@lru_cache
def get_outbox() -> NotificationOutbox:
    settings = get_settings()
    config = ConfigManager()
    relay = HttpWorkflowRelay(
        settings.workflow_relay_url,
        timeout=config.get("relay.timeout_seconds", 5.0)
    )
    return NotificationOutbox(relay, redis_url=settings.redis_url)


def get_resolver(policy: DialerPolicy = Depends(get_policy)) -> DayBoundaryResolver:
    return DayBoundaryResolver(policy.reference_timezone)


def get_call_provider(settings: Settings = Depends(get_settings)) -> CallProvider:
    return RetellCallProvider(settings.retell_api_key, settings.retell_base_url)


def get_payment_provider(
    settings: Settings = Depends(get_settings),
    policy: DialerPolicy = Depends(get_policy)
) -> PaymentProvider:
    return StripePaymentProvider(get_supabase(), settings.stripe_secret_key, policy.currency)


def get_eligibility_service(
    store: DialerStore = Depends(get_store),
    resolver: DayBoundaryResolver = Depends(get_resolver),
    policy: DialerPolicy = Depends(get_policy)
) -> LeadEligibilityService:
    return LeadEligibilityService(store, resolver, policy)


def get_admission_controller(
    store: DialerStore = Depends(get_store),
    payment_provider: PaymentProvider = Depends(get_payment_provider),
    resolver: DayBoundaryResolver = Depends(get_resolver),
    policy: DialerPolicy = Depends(get_policy)
) -> AdmissionController:
    return AdmissionController(store, payment_provider, resolver, policy)


def get_state_machine(
    store: DialerStore = Depends(get_store),
    eligibility: LeadEligibilityService = Depends(get_eligibility_service),
    admission: AdmissionController = Depends(get_admission_controller),
    call_provider: CallProvider = Depends(get_call_provider),
    outbox: NotificationOutbox = Depends(get_outbox),
    resolver: DayBoundaryResolver = Depends(get_resolver),
    policy: DialerPolicy = Depends(get_policy)
) -> CallStateMachine:
    return CallStateMachine(store, eligibility, admission, call_provider, outbox, resolver, policy)


def get_recovery_service(
    store: DialerStore = Depends(get_store),
    policy: DialerPolicy = Depends(get_policy)
) -> RecoveryService:
    return RecoveryService(store, policy)


def get_revenue_service(
    store: DialerStore = Depends(get_store),
    resolver: DayBoundaryResolver = Depends(get_resolver),
    outbox: NotificationOutbox = Depends(get_outbox)
) -> RevenueReconciliationService:
    return RevenueReconciliationService(store, resolver, outbox)


def get_trigger_evaluator(
    store: DialerStore = Depends(get_store),
    state_machine: CallStateMachine = Depends(get_state_machine),
    resolver: DayBoundaryResolver = Depends(get_resolver)
) -> ScheduledTriggerEvaluator:
    return ScheduledTriggerEvaluator(store, state_machine, resolver)


def verify_cron_secret(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    settings: Settings = Depends(get_settings)
) -> None:
    """
    Guard for the external cron caller (`Authorization: Bearer <CRON_SECRET>`).
    """
    if not settings.cron_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="CRON_SECRET is not configured"
        )
    if authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron credentials"
        )
