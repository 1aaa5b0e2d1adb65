"""
Shared fixtures for dialer unit tests
"""
import pytest
import pytz
from datetime import datetime
from unittest.mock import AsyncMock

from leadflow.domain.models.lead import Lead, LeadSource, LeadStatus
from leadflow.domain.models.dialer_state import AccountDialerState, DialerStatus
from leadflow.domain.models.balance import Balance, ChargeResult
from leadflow.domain.models.call import CallerProfile
from leadflow.domain.models.policy import DialerPolicy
from leadflow.domain.services.day_boundary import DayBoundaryResolver
from leadflow.domain.services.lead_eligibility import LeadEligibilityService
from leadflow.domain.services.admission_controller import AdmissionController
from leadflow.domain.services.call_state_machine import CallStateMachine
from leadflow.domain.services.notification_outbox import NotificationOutbox
from leadflow.infrastructure.storage.memory_store import InMemoryDialerStore


ACCOUNT_ID = "acct-1"
SOURCE_ID = "sheet-1"

# Tuesday 2026-01-13, 10:00 in New York
NOW = datetime(2026, 1, 13, 15, 0, tzinfo=pytz.UTC)
TODAY = "2026-01-13"
YESTERDAY = "2026-01-12"


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_lead():
    """Factory for leads in the default account and source."""
    def _make(lead_id: str, minutes_old: int = 0, **overrides) -> Lead:
        data = {
            "id": lead_id,
            "account_id": ACCOUNT_ID,
            "phone": "+15551230000",
            "name": f"Lead {lead_id}",
            "is_qualified": True,
            "source_id": SOURCE_ID,
            "status": LeadStatus.NEW,
            "created_at": datetime(2026, 1, 1, 12, minutes_old, tzinfo=pytz.UTC),
        }
        data.update(overrides)
        return Lead(**data)
    return _make


@pytest.fixture
def store():
    """In-memory store with one active lead source and a funded balance."""
    s = InMemoryDialerStore()
    s.add_source(LeadSource(id=SOURCE_ID, account_id=ACCOUNT_ID, name="Leads"))
    s.balances[ACCOUNT_ID] = Balance(account_id=ACCOUNT_ID, balance=50.0)
    s.add_caller_profile(CallerProfile(account_id=ACCOUNT_ID, agent_id="agent-1", from_number="+15550001111"))
    return s


@pytest.fixture
def policy():
    return DialerPolicy()


@pytest.fixture
def resolver():
    return DayBoundaryResolver("America/New_York")


@pytest.fixture
def payment_provider():
    provider = AsyncMock()
    provider.charge.return_value = ChargeResult(success=True, charge_id="pi_test_1")
    return provider


@pytest.fixture
def call_provider():
    provider = AsyncMock()
    provider.place_call.return_value = "call-1"
    provider.name = "mock"
    return provider


@pytest.fixture
def relay():
    return AsyncMock()


@pytest.fixture
def outbox(relay):
    """Outbox in memory-only mode."""
    return NotificationOutbox(relay)


@pytest.fixture
def eligibility(store, resolver, policy):
    return LeadEligibilityService(store, resolver, policy)


@pytest.fixture
def admission(store, payment_provider, resolver, policy):
    return AdmissionController(store, payment_provider, resolver, policy)


@pytest.fixture
def state_machine(store, eligibility, admission, call_provider, outbox, resolver, policy):
    return CallStateMachine(store, eligibility, admission, call_provider, outbox, resolver, policy)


@pytest.fixture
def running_state():
    """Factory for a running session state of the default account."""
    def _make(**overrides) -> AccountDialerState:
        data = {
            "account_id": ACCOUNT_ID,
            "status": DialerStatus.RUNNING,
            "spend_reset_date": TODAY,
        }
        data.update(overrides)
        return AccountDialerState(**data)
    return _make
