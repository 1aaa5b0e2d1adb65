"""
Revenue Reconciliation Engine
Keeps the per-day revenue ledger consistent with appointment outcomes
"""
import logging
from datetime import datetime
from typing import List, Optional

import pytz
from pydantic import BaseModel, Field

from leadflow.core.errors import NotFoundError, ValidationError
from leadflow.domain.interfaces.store import DialerStore
from leadflow.domain.models.appointment import Appointment, AppointmentStatus, annualize
from leadflow.domain.services.day_boundary import DayBoundaryResolver
from leadflow.domain.services.notification_outbox import NotificationOutbox

logger = logging.getLogger(__name__)


class LedgerChange(BaseModel):
    """One applied ledger adjustment"""
    day: str
    delta: float
    revenue_after: float


class ReconciliationResult(BaseModel):
    """Appointment after the operation and the ledger changes it caused"""
    appointment: Appointment
    changes: List[LedgerChange] = Field(default_factory=list)
    noop: bool = False


class RevenueReconciliationService:
    """
    Applies appointment outcome changes to the revenue ledger.

    A sale books its annualized value against the account-local day it was
    sold on. Corrections subtract the previously booked value from that
    original day, never from today. The ledger is not clamped, and there is
    no transaction spanning the ledger and the appointment update.
    """

    def __init__(
        self,
        store: DialerStore,
        resolver: DayBoundaryResolver,
        outbox: NotificationOutbox
    ):
        self.store = store
        self.resolver = resolver
        self.outbox = outbox

    async def mark_sold(
        self,
        account_id: str,
        appointment_id: str,
        monthly_payment: float,
        now: Optional[datetime] = None
    ) -> ReconciliationResult:
        """
        Record a sale at `monthly_payment`.

        Re-selling at the same amount changes nothing. Re-selling at a
        different amount moves the booked value: the old annualized amount
        leaves its original day and the new one lands on today.
        """
        if monthly_payment is None or monthly_payment <= 0:
            raise ValidationError("monthly_payment must be > 0", reason="invalid_amount")

        appointment = await self._get(account_id, appointment_id)

        if appointment.is_sold and appointment.recurring_payment_amount == monthly_payment:
            logger.info(f"Appointment {appointment_id} already sold at {monthly_payment:.2f}, skipping")
            return ReconciliationResult(appointment=appointment, noop=True)

        today = await self._account_day(account_id, now)
        changes: List[LedgerChange] = []

        if appointment.is_sold and appointment.annualized_amount:
            change = await self._subtract_booked(appointment)
            if change:
                changes.append(change)

        changes.append(await self._apply(account_id, today, annualize(monthly_payment)))

        fields = {
            "status": AppointmentStatus.SOLD,
            "is_sold": True,
            "recurring_payment_amount": monthly_payment,
            "sold_at": now or datetime.now(pytz.UTC),
            "sold_day": today,
        }
        await self.store.update_appointment(appointment_id, fields)
        updated = appointment.model_copy(update=fields)

        logger.info(
            f"Appointment {appointment_id} sold at {monthly_payment:.2f}/mo "
            f"({updated.annualized_amount:.2f}/yr on {today})"
        )
        await self._notify("appointment.sold", updated, changes)
        return ReconciliationResult(appointment=updated, changes=changes)

    async def mark_completed(self, account_id: str, appointment_id: str) -> ReconciliationResult:
        return await self._unsell(account_id, appointment_id, AppointmentStatus.COMPLETED, "appointment.completed")

    async def mark_no_show(self, account_id: str, appointment_id: str) -> ReconciliationResult:
        return await self._unsell(account_id, appointment_id, AppointmentStatus.NO_SHOW, "appointment.no_show")

    async def cancel_sale(self, account_id: str, appointment_id: str) -> ReconciliationResult:
        """Revoke a sale; the appointment itself stays completed."""
        return await self._unsell(account_id, appointment_id, AppointmentStatus.COMPLETED, "appointment.sale_cancelled")

    async def reschedule(
        self,
        account_id: str,
        appointment_id: str,
        scheduled_at: datetime
    ) -> ReconciliationResult:
        """Move the appointment. The ledger is not touched."""
        appointment = await self._get(account_id, appointment_id)
        fields = {"status": AppointmentStatus.RESCHEDULED, "scheduled_at": scheduled_at}
        await self.store.update_appointment(appointment_id, fields)
        updated = appointment.model_copy(update=fields)
        await self._notify("appointment.rescheduled", updated, [])
        return ReconciliationResult(appointment=updated)

    async def _unsell(
        self,
        account_id: str,
        appointment_id: str,
        status: AppointmentStatus,
        event: str
    ) -> ReconciliationResult:
        appointment = await self._get(account_id, appointment_id)
        changes: List[LedgerChange] = []

        if appointment.is_sold and appointment.annualized_amount:
            change = await self._subtract_booked(appointment)
            if change:
                changes.append(change)

        fields = {
            "status": status,
            "is_sold": False,
            "recurring_payment_amount": None,
            "sold_at": None,
            "sold_day": None,
        }
        await self.store.update_appointment(appointment_id, fields)
        updated = appointment.model_copy(update=fields)

        logger.info(f"Appointment {appointment_id} -> {status.value}")
        await self._notify(event, updated, changes)
        return ReconciliationResult(appointment=updated, changes=changes)

    async def _get(self, account_id: str, appointment_id: str) -> Appointment:
        appointment = await self.store.get_appointment(account_id, appointment_id)
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found", reason="appointment_not_found")
        return appointment

    async def _account_day(self, account_id: str, now: Optional[datetime]) -> str:
        state = await self.store.get_dialer_state(account_id)
        timezone = state.schedule.timezone if state else None
        return self.resolver.local_day(timezone, now)

    async def _booked_day(self, appointment: Appointment) -> str:
        if appointment.sold_day:
            return appointment.sold_day
        # Older rows only carry sold_at
        state = await self.store.get_dialer_state(appointment.account_id)
        timezone = state.schedule.timezone if state else None
        return self.resolver.local_day(timezone, appointment.sold_at)

    async def _subtract_booked(self, appointment: Appointment) -> Optional[LedgerChange]:
        day = await self._booked_day(appointment)
        existing = await self.store.get_revenue(appointment.account_id, day)
        if existing is None:
            logger.warning(
                f"No ledger entry for account {appointment.account_id} on {day}; "
                f"skipping removal of {appointment.annualized_amount:.2f}"
            )
            return None
        return await self._apply(appointment.account_id, day, -appointment.annualized_amount)

    async def _apply(self, account_id: str, day: str, delta: float) -> LedgerChange:
        revenue_after = await self.store.adjust_revenue(account_id, day, delta)

        read_back = await self.store.get_revenue(account_id, day)
        if read_back is None or abs(read_back - revenue_after) > 0.005:
            logger.warning(
                f"Ledger read-back mismatch for account {account_id} on {day}: "
                f"wrote {revenue_after}, read {read_back}"
            )

        return LedgerChange(day=day, delta=delta, revenue_after=revenue_after)

    async def _notify(self, event: str, appointment: Appointment, changes: List[LedgerChange]) -> None:
        await self.outbox.publish(event, {
            "account_id": appointment.account_id,
            "appointment_id": appointment.id,
            "lead_id": appointment.lead_id,
            "status": appointment.status.value,
            "ledger_changes": [c.model_dump() for c in changes],
        })
