"""
Supabase Dialer Store
DialerStore backed by Supabase PostgreSQL tables
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from supabase import Client

from leadflow.domain.interfaces.store import DialerStore
from leadflow.domain.models.lead import Lead, LeadSource, LeadStatus
from leadflow.domain.models.dialer_state import (
    AccountDialerState,
    DialerSchedule,
    DialerStatus,
    OverrideBatch,
)
from leadflow.domain.models.balance import Balance, BalanceTransaction
from leadflow.domain.models.call import CallRecord, CallerProfile
from leadflow.domain.models.appointment import Appointment

logger = logging.getLogger(__name__)


# A state row is "dirty" when any of these hold; recovery only writes then
DIRTY_STATE_FILTER = (
    "status.neq.stopped,"
    "current_call_id.not.is.null,"
    "current_lead_id.not.is.null,"
    "queue_length.gt.0,"
    "override_active.eq.true"
)


def _to_column(value: Any) -> Any:
    """Convert a python value to something the REST client can serialize."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


def _state_to_row(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten dialer state fields into dialer_states columns."""
    row: Dict[str, Any] = {}
    for key, value in fields.items():
        if key == "override":
            override = value if isinstance(value, OverrideBatch) else OverrideBatch(**value)
            row["override_active"] = override.active
            row["override_leads_remaining"] = override.leads_remaining
            row["override_started_at"] = _to_column(override.started_at)
        elif key == "schedule":
            schedule = value if isinstance(value, DialerSchedule) else DialerSchedule(**value)
            row["auto_start_enabled"] = schedule.auto_start_enabled
            row["schedule_days"] = schedule.days
            row["schedule_start_time"] = schedule.start_time
            row["schedule_end_time"] = schedule.end_time
            row["timezone"] = schedule.timezone
        else:
            row[key] = _to_column(value)
    return row


def _state_from_row(row: Dict[str, Any]) -> AccountDialerState:
    """Rebuild an AccountDialerState from a flat dialer_states row."""
    data = dict(row)
    schedule = {
        "auto_start_enabled": data.pop("auto_start_enabled", None),
        "days": data.pop("schedule_days", None),
        "start_time": data.pop("schedule_start_time", None),
        "end_time": data.pop("schedule_end_time", None),
        "timezone": data.pop("timezone", None),
    }
    override = {
        "active": data.pop("override_active", None),
        "leads_remaining": data.pop("override_leads_remaining", None),
        "started_at": data.pop("override_started_at", None),
    }
    data["schedule"] = DialerSchedule(**{k: v for k, v in schedule.items() if v is not None})
    data["override"] = OverrideBatch(**{k: v for k, v in override.items() if v is not None})
    return AccountDialerState.from_dict(data)


class SupabaseDialerStore(DialerStore):
    """
    DialerStore over the Supabase REST client.

    Tables: lead_sources, leads, dialer_states, balances,
    balance_transactions, caller_profiles, calls, appointments,
    revenue_ledger. The ledger prefers the `adjust_revenue_ledger`
    database function and falls back to read-modify-write.
    """

    def __init__(self, supabase: Client):
        self.supabase = supabase

    @staticmethod
    def _first(response) -> Optional[Dict[str, Any]]:
        rows = response.data or []
        return rows[0] if rows else None

    # Leads

    async def list_active_sources(self, account_id: str) -> List[LeadSource]:
        response = self.supabase.table("lead_sources").select(
            "id, account_id, name, is_active"
        ).eq("account_id", account_id).eq("is_active", True).execute()
        return [LeadSource(**row) for row in response.data or []]

    async def list_leads(self, account_id: str, source_ids: List[str]) -> List[Lead]:
        if not source_ids:
            return []
        response = self.supabase.table("leads").select("*").eq(
            "account_id", account_id
        ).in_("source_id", source_ids).execute()
        return [Lead.from_dict(row) for row in response.data or []]

    async def get_lead(self, lead_id: str) -> Optional[Lead]:
        response = self.supabase.table("leads").select("*").eq("id", lead_id).limit(1).execute()
        row = self._first(response)
        return Lead.from_dict(row) if row else None

    async def update_lead(self, lead_id: str, fields: Dict[str, Any]) -> None:
        row = {k: _to_column(v) for k, v in fields.items()}
        self.supabase.table("leads").update(row).eq("id", lead_id).execute()

    async def update_leads_with_status(
        self,
        account_id: str,
        current_status: LeadStatus,
        fields: Dict[str, Any]
    ) -> int:
        row = {k: _to_column(v) for k, v in fields.items()}
        response = self.supabase.table("leads").update(row).eq(
            "account_id", account_id
        ).eq("status", current_status.value).execute()
        return len(response.data or [])

    # Dialer state

    async def get_dialer_state(self, account_id: str) -> Optional[AccountDialerState]:
        response = self.supabase.table("dialer_states").select("*").eq(
            "account_id", account_id
        ).limit(1).execute()
        row = self._first(response)
        return _state_from_row(row) if row else None

    async def save_dialer_state(self, state: AccountDialerState) -> None:
        row = _state_to_row(dict(state))
        row["updated_at"] = datetime.utcnow().isoformat()
        self.supabase.table("dialer_states").upsert(row, on_conflict="account_id").execute()

    async def update_dialer_state(self, account_id: str, fields: Dict[str, Any]) -> None:
        row = _state_to_row(fields)
        row["updated_at"] = datetime.utcnow().isoformat()
        response = self.supabase.table("dialer_states").update(row).eq(
            "account_id", account_id
        ).execute()
        if not response.data:
            # First write for this account
            row["account_id"] = account_id
            self.supabase.table("dialer_states").insert(row).execute()

    async def stop_dialer_state_if_dirty(self, account_id: str) -> bool:
        row = _state_to_row({
            "status": DialerStatus.STOPPED,
            "current_call_id": None,
            "current_lead_id": None,
            "queue_length": 0,
            "override": OverrideBatch(),
        })
        row["updated_at"] = datetime.utcnow().isoformat()
        response = self.supabase.table("dialer_states").update(row).eq(
            "account_id", account_id
        ).or_(DIRTY_STATE_FILTER).execute()
        return bool(response.data)

    async def list_auto_start_states(self) -> List[AccountDialerState]:
        response = self.supabase.table("dialer_states").select("*").eq(
            "auto_start_enabled", True
        ).execute()
        return [_state_from_row(row) for row in response.data or []]

    # Balance

    async def get_balance(self, account_id: str) -> Optional[Balance]:
        response = self.supabase.table("balances").select("*").eq(
            "account_id", account_id
        ).limit(1).execute()
        row = self._first(response)
        return Balance(**row) if row else None

    async def create_balance_if_absent(self, balance: Balance) -> bool:
        row = balance.to_dict()
        row.pop("updated_at", None)
        response = self.supabase.table("balances").upsert(
            row, on_conflict="account_id", ignore_duplicates=True
        ).execute()
        return bool(response.data)

    async def update_balance(self, account_id: str, fields: Dict[str, Any]) -> None:
        row = {k: _to_column(v) for k, v in fields.items()}
        row["updated_at"] = datetime.utcnow().isoformat()
        self.supabase.table("balances").update(row).eq("account_id", account_id).execute()

    async def add_balance_transaction(self, transaction: BalanceTransaction) -> None:
        self.supabase.table("balance_transactions").insert(transaction.to_dict()).execute()

    # Calls

    async def get_caller_profile(self, account_id: str) -> Optional[CallerProfile]:
        response = self.supabase.table("caller_profiles").select(
            "account_id, agent_id, from_number"
        ).eq("account_id", account_id).limit(1).execute()
        row = self._first(response)
        return CallerProfile(**row) if row else None

    async def create_call_record(self, record: CallRecord) -> None:
        self.supabase.table("calls").insert(record.to_dict()).execute()

    async def get_call_record(self, call_id: str) -> Optional[CallRecord]:
        response = self.supabase.table("calls").select("*").eq("call_id", call_id).limit(1).execute()
        row = self._first(response)
        return CallRecord(**row) if row else None

    async def update_call_record(self, call_id: str, fields: Dict[str, Any]) -> None:
        row = {k: _to_column(v) for k, v in fields.items()}
        self.supabase.table("calls").update(row).eq("call_id", call_id).execute()

    # Appointments & revenue ledger

    async def get_appointment(self, account_id: str, appointment_id: str) -> Optional[Appointment]:
        response = self.supabase.table("appointments").select("*").eq(
            "id", appointment_id
        ).eq("account_id", account_id).limit(1).execute()
        row = self._first(response)
        return Appointment(**row) if row else None

    async def update_appointment(self, appointment_id: str, fields: Dict[str, Any]) -> None:
        row = {k: _to_column(v) for k, v in fields.items()}
        self.supabase.table("appointments").update(row).eq("id", appointment_id).execute()

    async def adjust_revenue(self, account_id: str, day: str, delta: float) -> float:
        try:
            response = self.supabase.rpc("adjust_revenue_ledger", {
                "p_account_id": account_id,
                "p_day": day,
                "p_delta": delta,
            }).execute()
            if response.data is not None:
                return float(response.data)
        except Exception as e:
            logger.warning(f"adjust_revenue_ledger unavailable, using read-modify-write: {e}")

        existing = await self.get_revenue(account_id, day)
        if existing is None:
            new_value = round(delta, 2)
            self.supabase.table("revenue_ledger").insert({
                "account_id": account_id,
                "day": day,
                "revenue": new_value,
            }).execute()
        else:
            new_value = round(existing + delta, 2)
            self.supabase.table("revenue_ledger").update({
                "revenue": new_value
            }).eq("account_id", account_id).eq("day", day).execute()
        return new_value

    async def get_revenue(self, account_id: str, day: str) -> Optional[float]:
        response = self.supabase.table("revenue_ledger").select("revenue").eq(
            "account_id", account_id
        ).eq("day", day).limit(1).execute()
        row = self._first(response)
        if row is None:
            return None
        return float(row.get("revenue") or 0.0)
