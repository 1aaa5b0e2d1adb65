"""
Unit Tests for Revenue Reconciliation
"""
import pytest
import pytz
from datetime import datetime

from leadflow.core.errors import NotFoundError, ValidationError
from leadflow.domain.models.appointment import Appointment, AppointmentStatus, annualize
from leadflow.domain.models.dialer_state import AccountDialerState, DialerSchedule
from leadflow.domain.services.revenue_reconciliation import RevenueReconciliationService

from conftest import ACCOUNT_ID, NOW, TODAY

SOLD_DAY = "2026-01-10"


@pytest.fixture
def revenue(store, resolver, outbox):
    return RevenueReconciliationService(store, resolver, outbox)


@pytest.fixture
def sold(store):
    """Appointment sold at $100/mo on SOLD_DAY with its ledger entry."""
    store.add_appointment(Appointment(
        id="appt-1",
        account_id=ACCOUNT_ID,
        lead_id="l1",
        status=AppointmentStatus.SOLD,
        is_sold=True,
        recurring_payment_amount=100.0,
        sold_day=SOLD_DAY,
    ))
    store.revenue[(ACCOUNT_ID, SOLD_DAY)] = 1200.0
    return store


class TestAnnualize:

    def test_monthly_times_twelve(self):
        assert annualize(100) == 1200.0
        assert annualize(33.33) == 399.96


class TestMarkSold:
    """Tests for recording and correcting sales"""

    @pytest.mark.asyncio
    async def test_first_sale_books_today(self, store, revenue):
        """Test a first sale adds the annualized amount to today"""
        store.add_appointment(Appointment(id="appt-1", account_id=ACCOUNT_ID))

        result = await revenue.mark_sold(ACCOUNT_ID, "appt-1", 100.0, NOW)

        assert store.revenue[(ACCOUNT_ID, TODAY)] == 1200.0
        assert result.appointment.is_sold is True
        assert store.appointments["appt-1"].sold_day == TODAY
        assert store.appointments["appt-1"].status == AppointmentStatus.SOLD

    @pytest.mark.asyncio
    async def test_same_amount_is_noop(self, sold, revenue):
        """Test re-selling at the same amount leaves the ledger alone"""
        result = await revenue.mark_sold(ACCOUNT_ID, "appt-1", 100.0, NOW)

        assert result.noop is True
        assert sold.revenue == {(ACCOUNT_ID, SOLD_DAY): 1200.0}

    @pytest.mark.asyncio
    async def test_new_amount_moves_revenue_from_original_day(self, sold, revenue):
        """Test a correction subtracts from the original day and books today"""
        result = await revenue.mark_sold(ACCOUNT_ID, "appt-1", 150.0, NOW)

        assert sold.revenue[(ACCOUNT_ID, SOLD_DAY)] == 0.0
        assert sold.revenue[(ACCOUNT_ID, TODAY)] == 1800.0
        assert [(c.day, c.delta) for c in result.changes] == [(SOLD_DAY, -1200.0), (TODAY, 1800.0)]

    @pytest.mark.asyncio
    async def test_missing_original_entry_skips_removal(self, sold, revenue):
        """Test a missing original ledger row is skipped, not created negative"""
        del sold.revenue[(ACCOUNT_ID, SOLD_DAY)]

        result = await revenue.mark_sold(ACCOUNT_ID, "appt-1", 150.0, NOW)

        assert (ACCOUNT_ID, SOLD_DAY) not in sold.revenue
        assert sold.revenue[(ACCOUNT_ID, TODAY)] == 1800.0
        assert len(result.changes) == 1

    @pytest.mark.asyncio
    async def test_account_timezone_picks_ledger_day(self, store, revenue):
        """Test the sale day follows the account's own timezone"""
        await store.save_dialer_state(AccountDialerState(
            account_id=ACCOUNT_ID,
            schedule=DialerSchedule(timezone="Asia/Tokyo"),
        ))
        store.add_appointment(Appointment(id="appt-1", account_id=ACCOUNT_ID))

        await revenue.mark_sold(ACCOUNT_ID, "appt-1", 50.0, NOW)

        assert store.revenue[(ACCOUNT_ID, "2026-01-14")] == 600.0

    @pytest.mark.asyncio
    async def test_non_positive_amount_rejected(self, sold, revenue):
        """Test zero or negative payments raise ValidationError"""
        with pytest.raises(ValidationError):
            await revenue.mark_sold(ACCOUNT_ID, "appt-1", 0, NOW)

    @pytest.mark.asyncio
    async def test_unknown_appointment(self, revenue):
        """Test an unknown appointment raises NotFoundError"""
        with pytest.raises(NotFoundError):
            await revenue.mark_sold(ACCOUNT_ID, "missing", 100.0, NOW)

    @pytest.mark.asyncio
    async def test_other_account_appointment_not_found(self, sold, revenue):
        """Test appointments are scoped by account"""
        with pytest.raises(NotFoundError):
            await revenue.mark_sold("acct-2", "appt-1", 150.0, NOW)


class TestUnsell:
    """Tests for completed, no-show and cancelled sales"""

    @pytest.mark.asyncio
    async def test_completed_removes_revenue(self, sold, revenue):
        """Test marking a sold appointment completed removes its revenue"""
        result = await revenue.mark_completed(ACCOUNT_ID, "appt-1")

        assert sold.revenue[(ACCOUNT_ID, SOLD_DAY)] == 0.0
        assert result.appointment.status == AppointmentStatus.COMPLETED
        assert sold.appointments["appt-1"].is_sold is False
        assert sold.appointments["appt-1"].recurring_payment_amount is None

    @pytest.mark.asyncio
    async def test_no_show_removes_revenue(self, sold, revenue):
        """Test a no-show removes revenue from the original day"""
        await revenue.mark_no_show(ACCOUNT_ID, "appt-1")

        assert sold.revenue[(ACCOUNT_ID, SOLD_DAY)] == 0.0
        assert sold.appointments["appt-1"].status == AppointmentStatus.NO_SHOW

    @pytest.mark.asyncio
    async def test_cancel_sale_leaves_completed(self, sold, revenue):
        """Test cancelling a sale keeps the appointment completed"""
        await revenue.cancel_sale(ACCOUNT_ID, "appt-1")

        assert sold.appointments["appt-1"].status == AppointmentStatus.COMPLETED
        assert sold.revenue[(ACCOUNT_ID, SOLD_DAY)] == 0.0

    @pytest.mark.asyncio
    async def test_unsold_appointment_leaves_ledger(self, store, revenue):
        """Test unselling an appointment that was never sold changes no revenue"""
        store.add_appointment(Appointment(id="appt-2", account_id=ACCOUNT_ID))

        result = await revenue.mark_no_show(ACCOUNT_ID, "appt-2")

        assert result.changes == []
        assert store.revenue == {}

    @pytest.mark.asyncio
    async def test_legacy_row_uses_sold_at_day(self, store, revenue):
        """Test rows without sold_day subtract from the local day of sold_at"""
        store.add_appointment(Appointment(
            id="appt-3",
            account_id=ACCOUNT_ID,
            is_sold=True,
            recurring_payment_amount=10.0,
            sold_at=datetime(2026, 1, 10, 3, 0, tzinfo=pytz.UTC),
        ))
        store.revenue[(ACCOUNT_ID, "2026-01-09")] = 120.0

        await revenue.mark_completed(ACCOUNT_ID, "appt-3")

        assert store.revenue[(ACCOUNT_ID, "2026-01-09")] == 0.0


class TestReschedule:

    @pytest.mark.asyncio
    async def test_reschedule_does_not_touch_ledger(self, sold, revenue):
        """Test rescheduling moves the appointment but not the revenue"""
        new_time = datetime(2026, 1, 20, 16, 0, tzinfo=pytz.UTC)

        result = await revenue.reschedule(ACCOUNT_ID, "appt-1", new_time)

        assert result.appointment.status == AppointmentStatus.RESCHEDULED
        assert sold.appointments["appt-1"].scheduled_at == new_time
        assert sold.revenue == {(ACCOUNT_ID, SOLD_DAY): 1200.0}
