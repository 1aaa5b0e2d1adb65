"""
In-Memory Dialer Store
Process-local store used in development and tests
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytz

from leadflow.domain.interfaces.store import DialerStore
from leadflow.domain.models.lead import Lead, LeadSource, LeadStatus
from leadflow.domain.models.dialer_state import AccountDialerState, DialerStatus, OverrideBatch
from leadflow.domain.models.balance import Balance, BalanceTransaction
from leadflow.domain.models.call import CallRecord, CallerProfile
from leadflow.domain.models.appointment import Appointment

logger = logging.getLogger(__name__)


class InMemoryDialerStore(DialerStore):
    """
    Dict-backed DialerStore.

    Records are copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self):
        self.sources: Dict[str, LeadSource] = {}
        self.leads: Dict[str, Lead] = {}
        self.states: Dict[str, AccountDialerState] = {}
        self.balances: Dict[str, Balance] = {}
        self.transactions: List[BalanceTransaction] = []
        self.caller_profiles: Dict[str, CallerProfile] = {}
        self.call_records: Dict[str, CallRecord] = {}
        self.appointments: Dict[str, Appointment] = {}
        self.revenue: Dict[tuple, float] = {}

    # Seeding helpers

    def add_source(self, source: LeadSource) -> None:
        self.sources[source.id] = source.model_copy()

    def add_lead(self, lead: Lead) -> None:
        self.leads[lead.id] = lead.model_copy()

    def add_appointment(self, appointment: Appointment) -> None:
        self.appointments[appointment.id] = appointment.model_copy()

    def add_caller_profile(self, profile: CallerProfile) -> None:
        self.caller_profiles[profile.account_id] = profile.model_copy()

    # Leads

    async def list_active_sources(self, account_id: str) -> List[LeadSource]:
        return [
            s.model_copy() for s in self.sources.values()
            if s.account_id == account_id and s.is_active
        ]

    async def list_leads(self, account_id: str, source_ids: List[str]) -> List[Lead]:
        wanted = set(source_ids)
        return [
            lead.model_copy() for lead in self.leads.values()
            if lead.account_id == account_id and lead.source_id in wanted
        ]

    async def get_lead(self, lead_id: str) -> Optional[Lead]:
        lead = self.leads.get(lead_id)
        return lead.model_copy() if lead else None

    async def update_lead(self, lead_id: str, fields: Dict[str, Any]) -> None:
        lead = self.leads.get(lead_id)
        if lead is None:
            logger.warning(f"update_lead: lead {lead_id} not found")
            return
        self.leads[lead_id] = lead.model_copy(update=fields)

    async def update_leads_with_status(
        self,
        account_id: str,
        current_status: LeadStatus,
        fields: Dict[str, Any]
    ) -> int:
        updated = 0
        for lead_id, lead in list(self.leads.items()):
            if lead.account_id == account_id and lead.status == current_status:
                self.leads[lead_id] = lead.model_copy(update=fields)
                updated += 1
        return updated

    # Dialer state

    async def get_dialer_state(self, account_id: str) -> Optional[AccountDialerState]:
        state = self.states.get(account_id)
        return state.model_copy(deep=True) if state else None

    async def save_dialer_state(self, state: AccountDialerState) -> None:
        self.states[state.account_id] = state.model_copy(
            deep=True, update={"updated_at": datetime.now(pytz.UTC)}
        )

    async def update_dialer_state(self, account_id: str, fields: Dict[str, Any]) -> None:
        state = self.states.get(account_id)
        if state is None:
            state = AccountDialerState(account_id=account_id)
        update = dict(fields)
        update["updated_at"] = datetime.now(pytz.UTC)
        self.states[account_id] = state.model_copy(deep=True, update=update)

    async def stop_dialer_state_if_dirty(self, account_id: str) -> bool:
        state = self.states.get(account_id)
        if state is None or state.is_clean_stop():
            return False
        await self.update_dialer_state(account_id, {
            "status": DialerStatus.STOPPED,
            "current_call_id": None,
            "current_lead_id": None,
            "queue_length": 0,
            "override": OverrideBatch(),
        })
        return True

    async def list_auto_start_states(self) -> List[AccountDialerState]:
        return [
            s.model_copy(deep=True) for s in self.states.values()
            if s.schedule.auto_start_enabled
        ]

    # Balance

    async def get_balance(self, account_id: str) -> Optional[Balance]:
        balance = self.balances.get(account_id)
        return balance.model_copy() if balance else None

    async def create_balance_if_absent(self, balance: Balance) -> bool:
        if balance.account_id in self.balances:
            return False
        self.balances[balance.account_id] = balance.model_copy()
        return True

    async def update_balance(self, account_id: str, fields: Dict[str, Any]) -> None:
        balance = self.balances.get(account_id) or Balance(account_id=account_id)
        update = dict(fields)
        update["updated_at"] = datetime.now(pytz.UTC)
        self.balances[account_id] = balance.model_copy(update=update)

    async def add_balance_transaction(self, transaction: BalanceTransaction) -> None:
        self.transactions.append(transaction.model_copy())

    # Calls

    async def get_caller_profile(self, account_id: str) -> Optional[CallerProfile]:
        profile = self.caller_profiles.get(account_id)
        return profile.model_copy() if profile else None

    async def create_call_record(self, record: CallRecord) -> None:
        self.call_records[record.call_id] = record.model_copy()

    async def get_call_record(self, call_id: str) -> Optional[CallRecord]:
        record = self.call_records.get(call_id)
        return record.model_copy() if record else None

    async def update_call_record(self, call_id: str, fields: Dict[str, Any]) -> None:
        record = self.call_records.get(call_id)
        if record is None:
            logger.warning(f"update_call_record: call {call_id} not found")
            return
        self.call_records[call_id] = record.model_copy(update=fields)

    # Appointments & revenue ledger

    async def get_appointment(self, account_id: str, appointment_id: str) -> Optional[Appointment]:
        appointment = self.appointments.get(appointment_id)
        if appointment is None or appointment.account_id != account_id:
            return None
        return appointment.model_copy()

    async def update_appointment(self, appointment_id: str, fields: Dict[str, Any]) -> None:
        appointment = self.appointments.get(appointment_id)
        if appointment is None:
            logger.warning(f"update_appointment: appointment {appointment_id} not found")
            return
        self.appointments[appointment_id] = appointment.model_copy(update=fields)

    async def adjust_revenue(self, account_id: str, day: str, delta: float) -> float:
        key = (account_id, day)
        self.revenue[key] = round(self.revenue.get(key, 0.0) + delta, 2)
        return self.revenue[key]

    async def get_revenue(self, account_id: str, day: str) -> Optional[float]:
        return self.revenue.get((account_id, day))
