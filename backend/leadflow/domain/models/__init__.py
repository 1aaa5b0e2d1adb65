"""Domain models"""

# Lead models
from .lead import (
    LeadStatus,
    LeadSource,
    Lead,
    CALLABLE_STATUSES,
    TERMINAL_STATUSES,
    SAME_DAY_RETRY_STATUSES,
    LEAD_CALL_CAP,
)

# Dialer session models
from .dialer_state import (
    DialerStatus,
    LeadPriorityMode,
    DialerSchedule,
    OverrideBatch,
    AccountDialerState,
)

# Call models
from .call import (
    CallStatus,
    CallOutcome,
    CallOutcomeCallback,
    CallRecord,
    CallerProfile,
    map_outcome,
)

# Billing models
from .balance import (
    TransactionType,
    Balance,
    BalanceTransaction,
    ChargeResult,
    RefillOutcome,
)

# Revenue models
from .appointment import (
    AppointmentStatus,
    Appointment,
    RevenueLedgerEntry,
    annualize,
)

__all__ = [
    # Leads
    "LeadStatus",
    "LeadSource",
    "Lead",
    "CALLABLE_STATUSES",
    "TERMINAL_STATUSES",
    "SAME_DAY_RETRY_STATUSES",
    "LEAD_CALL_CAP",
    # Dialer session
    "DialerStatus",
    "LeadPriorityMode",
    "DialerSchedule",
    "OverrideBatch",
    "AccountDialerState",
    # Calls
    "CallStatus",
    "CallOutcome",
    "CallOutcomeCallback",
    "CallRecord",
    "CallerProfile",
    "map_outcome",
    # Billing
    "TransactionType",
    "Balance",
    "BalanceTransaction",
    "ChargeResult",
    "RefillOutcome",
    # Revenue
    "AppointmentStatus",
    "Appointment",
    "RevenueLedgerEntry",
    "annualize",
]
