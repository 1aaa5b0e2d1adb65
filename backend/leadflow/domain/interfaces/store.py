"""
Dialer Store Interface
Abstract persistence boundary for leads, dialer state, balances and revenue
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from leadflow.domain.models.lead import Lead, LeadSource, LeadStatus
from leadflow.domain.models.dialer_state import AccountDialerState
from leadflow.domain.models.balance import Balance, BalanceTransaction
from leadflow.domain.models.call import CallRecord, CallerProfile
from leadflow.domain.models.appointment import Appointment


class DialerStore(ABC):
    """
    Abstract base class for the dialer's persistent store.

    Writes are plain field updates; there is no cross-record transaction.
    Methods documented as conditional only write when their filter matches,
    which is what makes recovery safe to repeat.
    """

    # Leads

    @abstractmethod
    async def list_active_sources(self, account_id: str) -> List[LeadSource]:
        """Active lead sources of the account"""
        pass

    @abstractmethod
    async def list_leads(self, account_id: str, source_ids: List[str]) -> List[Lead]:
        """All leads of the account belonging to the given sources"""
        pass

    @abstractmethod
    async def get_lead(self, lead_id: str) -> Optional[Lead]:
        pass

    @abstractmethod
    async def update_lead(self, lead_id: str, fields: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def update_leads_with_status(
        self,
        account_id: str,
        current_status: LeadStatus,
        fields: Dict[str, Any]
    ) -> int:
        """
        Conditional bulk update of every lead currently in `current_status`.

        Returns:
            Number of leads updated
        """
        pass

    # Dialer state

    @abstractmethod
    async def get_dialer_state(self, account_id: str) -> Optional[AccountDialerState]:
        pass

    @abstractmethod
    async def save_dialer_state(self, state: AccountDialerState) -> None:
        """Insert or replace the account's dialer state"""
        pass

    @abstractmethod
    async def update_dialer_state(self, account_id: str, fields: Dict[str, Any]) -> None:
        """Partial update; nested `override` / `schedule` values are whole objects"""
        pass

    @abstractmethod
    async def stop_dialer_state_if_dirty(self, account_id: str) -> bool:
        """
        Conditional write to the clean stopped state: status stopped, lock,
        queue and override cleared. Only applied when some field differs.

        Returns:
            True if a row was written
        """
        pass

    @abstractmethod
    async def list_auto_start_states(self) -> List[AccountDialerState]:
        """Dialer states of every account with auto-start enabled"""
        pass

    # Balance

    @abstractmethod
    async def get_balance(self, account_id: str) -> Optional[Balance]:
        pass

    @abstractmethod
    async def create_balance_if_absent(self, balance: Balance) -> bool:
        """Returns True when a new balance row was created"""
        pass

    @abstractmethod
    async def update_balance(self, account_id: str, fields: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def add_balance_transaction(self, transaction: BalanceTransaction) -> None:
        pass

    # Calls

    @abstractmethod
    async def get_caller_profile(self, account_id: str) -> Optional[CallerProfile]:
        pass

    @abstractmethod
    async def create_call_record(self, record: CallRecord) -> None:
        pass

    @abstractmethod
    async def get_call_record(self, call_id: str) -> Optional[CallRecord]:
        pass

    @abstractmethod
    async def update_call_record(self, call_id: str, fields: Dict[str, Any]) -> None:
        pass

    # Appointments & revenue ledger

    @abstractmethod
    async def get_appointment(self, account_id: str, appointment_id: str) -> Optional[Appointment]:
        pass

    @abstractmethod
    async def update_appointment(self, appointment_id: str, fields: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def adjust_revenue(self, account_id: str, day: str, delta: float) -> float:
        """
        Add `delta` to the ledger entry for (account, day), creating it on
        first write. The result is not clamped at zero.

        Returns:
            The entry's revenue after the adjustment
        """
        pass

    @abstractmethod
    async def get_revenue(self, account_id: str, day: str) -> Optional[float]:
        """Ledger value for (account, day), None when no entry exists"""
        pass
