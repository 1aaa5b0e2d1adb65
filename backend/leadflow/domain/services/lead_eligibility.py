"""
Lead Eligibility Filter
Computes the callable-lead set for an account
"""
import logging
import random
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from leadflow.domain.interfaces.store import DialerStore
from leadflow.domain.models.lead import (
    CALLABLE_STATUSES,
    SAME_DAY_RETRY_STATUSES,
    Lead,
    LeadStatus,
)
from leadflow.domain.models.dialer_state import LeadPriorityMode
from leadflow.domain.models.policy import DialerPolicy
from leadflow.domain.services.day_boundary import DayBoundaryResolver

logger = logging.getLogger(__name__)


class EligibilityReason(str, Enum):
    """Why the callable set is empty. Exactly one applies."""
    NO_SHEETS = "no_sheets"
    NO_LEADS = "no_leads"
    ALL_DIALED_TODAY = "all_dialed_today"
    ALL_EXHAUSTED = "all_exhausted"


class CallableLeads(BaseModel):
    """Ordered callable leads, or the reason there are none"""
    leads: List[Lead] = Field(default_factory=list)
    reason: Optional[EligibilityReason] = None

    # Diagnostics
    active_sources: int = 0
    qualified_leads: int = 0
    dialed_today: int = 0
    exhausted: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.leads


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _created(lead: Lead) -> datetime:
    created = lead.created_at
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created


def _last_called(lead: Lead) -> datetime:
    called = lead.last_called_at
    if called is None:
        return _EPOCH
    if called.tzinfo is None:
        called = called.replace(tzinfo=timezone.utc)
    return called


_CALLBACK_RANK = {
    LeadStatus.CALLBACK_LATER: 0,
    LeadStatus.POTENTIAL_APPOINTMENT: 1,
}


def _fresh_first(leads: List[Lead], rng: random.Random) -> List[Lead]:
    # Never-called leads first, then fewest lifetime attempts
    return sorted(leads, key=lambda l: (l.total_calls_made > 0, l.total_calls_made, _created(l)))


def _callbacks_first(leads: List[Lead], rng: random.Random) -> List[Lead]:
    return sorted(leads, key=lambda l: (_CALLBACK_RANK.get(l.status, 2), _created(l)))


def _aged_first(leads: List[Lead], rng: random.Random) -> List[Lead]:
    # Longest since last contact first; never-called leads go last
    return sorted(
        leads,
        key=lambda l: (l.last_called_at is None, _last_called(l), _created(l))
    )


def _random(leads: List[Lead], rng: random.Random) -> List[Lead]:
    ordered = sorted(leads, key=_created)
    rng.shuffle(ordered)
    return ordered


ORDERING_POLICIES: Dict[LeadPriorityMode, Callable[[List[Lead], random.Random], List[Lead]]] = {
    LeadPriorityMode.FRESH_FIRST: _fresh_first,
    LeadPriorityMode.CALLBACKS_FIRST: _callbacks_first,
    LeadPriorityMode.AGED_FIRST: _aged_first,
    LeadPriorityMode.RANDOM: _random,
}


class LeadEligibilityService:
    """
    Read-only filter over the lead store.

    A lead is callable when it belongs to an active source, is qualified,
    has a callable status, is under the lifetime call cap, and has not been
    attempted on the current canonical day (needs_review leads excepted).
    """

    def __init__(
        self,
        store: DialerStore,
        resolver: DayBoundaryResolver,
        policy: Optional[DialerPolicy] = None,
        rng: Optional[random.Random] = None
    ):
        self.store = store
        self.resolver = resolver
        self.policy = policy or DialerPolicy()
        self._rng = rng or random.Random()

    async def callable_leads(
        self,
        account_id: str,
        now: Optional[datetime] = None,
        mode: Optional[LeadPriorityMode] = None
    ) -> CallableLeads:
        """
        Compute the ordered callable set for an account.

        Args:
            account_id: Account to evaluate
            now: Evaluation time (default: now)
            mode: Ordering policy; defaults to the account's configured mode

        Returns:
            CallableLeads with either a non-empty list or a reason
        """
        today = self.resolver.canonical_day(now)

        sources = await self.store.list_active_sources(account_id)
        if not sources:
            return CallableLeads(reason=EligibilityReason.NO_SHEETS)

        leads = await self.store.list_leads(account_id, [s.id for s in sources])
        qualified = [lead for lead in leads if lead.is_qualified]
        if not qualified:
            return CallableLeads(
                reason=EligibilityReason.NO_LEADS,
                active_sources=len(sources)
            )

        callable_by_status = [
            lead for lead in qualified
            if lead.status in CALLABLE_STATUSES
            and not lead.is_cap_reached(self.policy.lead_call_cap)
        ]
        ready = [
            lead for lead in callable_by_status
            if lead.status in SAME_DAY_RETRY_STATUSES or not lead.attempted_on(today)
        ]

        result = CallableLeads(
            active_sources=len(sources),
            qualified_leads=len(qualified),
            dialed_today=len(callable_by_status) - len(ready),
            exhausted=len(qualified) - len(callable_by_status),
        )

        if not ready:
            result.reason = (
                EligibilityReason.ALL_DIALED_TODAY if callable_by_status
                else EligibilityReason.ALL_EXHAUSTED
            )
            logger.info(f"No callable leads for account {account_id}: {result.reason.value}")
            return result

        if mode is None:
            state = await self.store.get_dialer_state(account_id)
            mode = state.lead_priority_mode if state else self.policy.default_priority_mode

        result.leads = ORDERING_POLICIES[mode](ready, self._rng)
        return result
