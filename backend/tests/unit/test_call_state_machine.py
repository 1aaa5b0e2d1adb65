"""
Unit Tests for the Call-Attempt State Machine

Tests session start/stop, dispatch and outcome handling against the
in-memory store.
"""
import pytest
import pytest_asyncio

from leadflow.core.errors import (
    NotFoundError,
    SessionConflictError,
    UpstreamProviderError,
    ValidationError,
)
from leadflow.domain.models.call import CallOutcomeCallback, CallRecord, CallStatus
from leadflow.domain.models.dialer_state import DialerStatus, OverrideBatch
from leadflow.domain.models.lead import LeadStatus

from conftest import ACCOUNT_ID, NOW, TODAY, YESTERDAY


class TestStart:
    """Tests for CallStateMachine.start"""

    @pytest.mark.asyncio
    async def test_start_runs_session(self, store, state_machine, make_lead):
        """Test a funded account with callable leads starts running"""
        store.add_lead(make_lead("l1"))
        store.add_lead(make_lead("l2"))

        result = await state_machine.start(ACCOUNT_ID, limit=10, now=NOW)

        assert result.started is True
        assert result.callable_leads == 2
        state = await store.get_dialer_state(ACCOUNT_ID)
        assert state.status == DialerStatus.RUNNING
        assert state.target_lead_count == 10
        assert state.calls_made_today == 0
        assert state.spend_reset_date == TODAY

    @pytest.mark.asyncio
    async def test_start_while_running_conflicts(self, store, state_machine, running_state):
        """Test starting a running session raises a 409 conflict"""
        await store.save_dialer_state(running_state())

        with pytest.raises(SessionConflictError) as exc:
            await state_machine.start(ACCOUNT_ID, now=NOW)

        assert exc.value.status_code == 409

    @pytest.mark.asyncio
    async def test_invalid_limit_rejected(self, store, state_machine):
        """Test a limit below 1 raises before any state is written"""
        with pytest.raises(ValidationError):
            await state_machine.start(ACCOUNT_ID, limit=0, now=NOW)

        assert store.states == {}

    @pytest.mark.asyncio
    async def test_start_without_leads_reports_reason(self, store, state_machine):
        """Test an empty callable set records no-leads with its reason"""
        result = await state_machine.start(ACCOUNT_ID, now=NOW)

        assert result.started is False
        assert result.status == DialerStatus.NO_LEADS
        assert result.reason == "no_leads"
        state = await store.get_dialer_state(ACCOUNT_ID)
        assert state.status == DialerStatus.NO_LEADS

    @pytest.mark.asyncio
    async def test_start_over_budget_refused(self, store, state_machine, running_state, make_lead):
        """Test a start past the daily budget records paused-budget"""
        store.add_lead(make_lead("l1"))
        await store.save_dialer_state(running_state(status=DialerStatus.STOPPED, today_spend=15.0))

        result = await state_machine.start(ACCOUNT_ID, now=NOW)

        assert result.started is False
        assert result.status == DialerStatus.PAUSED_BUDGET
        state = await store.get_dialer_state(ACCOUNT_ID)
        assert state.status == DialerStatus.PAUSED_BUDGET

    @pytest.mark.asyncio
    async def test_start_resets_stale_spend(self, store, state_machine, running_state, make_lead):
        """Test starting on a new day zeroes yesterday's spend"""
        store.add_lead(make_lead("l1"))
        await store.save_dialer_state(running_state(
            status=DialerStatus.STOPPED, today_spend=9.0, spend_reset_date=YESTERDAY
        ))

        await state_machine.start(ACCOUNT_ID, now=NOW)

        state = await store.get_dialer_state(ACCOUNT_ID)
        assert state.today_spend == 0.0
        assert state.spend_reset_date == TODAY


class TestStop:
    """Tests for stop and emergency stop"""

    @pytest.mark.asyncio
    async def test_stop_keeps_in_flight_lock(self, store, state_machine, running_state):
        """Test a normal stop leaves the in-flight call alone"""
        await store.save_dialer_state(running_state(current_call_id="call-9", current_lead_id="l1"))

        state = await state_machine.stop(ACCOUNT_ID)

        assert state.status == DialerStatus.STOPPED
        assert state.current_call_id == "call-9"

    @pytest.mark.asyncio
    async def test_emergency_stop_releases_lock(self, store, state_machine, running_state):
        """Test an emergency stop clears the advisory lock and override"""
        await store.save_dialer_state(running_state(
            current_call_id="call-9",
            current_lead_id="l1",
            override=OverrideBatch(active=True, leads_remaining=2),
        ))

        state = await state_machine.stop(ACCOUNT_ID, emergency=True)

        assert state.current_call_id is None
        assert state.current_lead_id is None
        assert state.override.active is False
        assert state.last_call_status == "emergency_stop"


class TestOverride:
    """Tests for budget override batches"""

    @pytest.mark.asyncio
    async def test_override_out_of_range(self, state_machine):
        """Test override sizes outside 1..100 are rejected"""
        with pytest.raises(ValidationError):
            await state_machine.activate_override(ACCOUNT_ID, 0)
        with pytest.raises(ValidationError):
            await state_machine.activate_override(ACCOUNT_ID, 101)

    @pytest.mark.asyncio
    async def test_override_resumes_budget_pause(self, store, state_machine, running_state):
        """Test an override resumes a session paused on budget"""
        await store.save_dialer_state(running_state(status=DialerStatus.PAUSED_BUDGET))

        state = await state_machine.activate_override(ACCOUNT_ID, 5, now=NOW)

        assert state.status == DialerStatus.RUNNING
        assert state.override.in_effect is True
        assert state.override.leads_remaining == 5


class TestDispatch:
    """Tests for CallStateMachine.dispatch_next"""

    @pytest.mark.asyncio
    async def test_dispatch_places_call_and_takes_lock(
        self, store, state_machine, call_provider, running_state, make_lead
    ):
        """Test a dispatch marks the lead in progress and records the call"""
        store.add_lead(make_lead("l1", phone="+15557654321"))
        await store.save_dialer_state(running_state())

        result = await state_machine.dispatch_next(ACCOUNT_ID, NOW)

        assert result.dispatched is True
        assert result.call_id == "call-1"
        call_provider.place_call.assert_awaited_once()
        assert call_provider.place_call.await_args.kwargs["to_number"] == "+15557654321"

        lead = store.leads["l1"]
        assert lead.status == LeadStatus.CALLING_IN_PROGRESS
        assert lead.call_attempts_today == 1
        assert lead.last_attempt_date == TODAY
        assert lead.total_calls_made == 0

        state = await store.get_dialer_state(ACCOUNT_ID)
        assert state.current_call_id == "call-1"
        assert state.current_lead_id == "l1"
        assert state.calls_made_today == 1
        assert store.call_records["call-1"].status == CallStatus.INITIATED

    @pytest.mark.asyncio
    async def test_dispatch_requires_running(self, store, state_machine, running_state, call_provider):
        """Test a stopped session never dials"""
        await store.save_dialer_state(running_state(status=DialerStatus.STOPPED))

        result = await state_machine.dispatch_next(ACCOUNT_ID, NOW)

        assert result.dispatched is False
        assert result.reason == "not_running"
        call_provider.place_call.assert_not_called()

    @pytest.mark.asyncio
    async def test_dispatch_blocked_by_lock(self, store, state_machine, running_state, call_provider, make_lead):
        """Test only one call is in flight per account"""
        store.add_lead(make_lead("l1"))
        await store.save_dialer_state(running_state(current_call_id="call-0", current_lead_id="l0"))

        result = await state_machine.dispatch_next(ACCOUNT_ID, NOW)

        assert result.reason == "call_in_progress"
        call_provider.place_call.assert_not_called()

    @pytest.mark.asyncio
    async def test_target_reached_stops_session(self, store, state_machine, running_state, make_lead):
        """Test the session stops once the target count is dialed"""
        store.add_lead(make_lead("l1"))
        await store.save_dialer_state(running_state(calls_made_today=5, target_lead_count=5))

        result = await state_machine.dispatch_next(ACCOUNT_ID, NOW)

        assert result.reason == "target_reached"
        state = await store.get_dialer_state(ACCOUNT_ID)
        assert state.status == DialerStatus.STOPPED

    @pytest.mark.asyncio
    async def test_stale_call_counter_resets(self, store, state_machine, running_state, make_lead):
        """Test yesterday's call count does not block today's dispatch"""
        store.add_lead(make_lead("l1"))
        await store.save_dialer_state(running_state(
            calls_made_today=5, target_lead_count=5, today_spend=4.0, spend_reset_date=YESTERDAY
        ))

        result = await state_machine.dispatch_next(ACCOUNT_ID, NOW)

        assert result.dispatched is True
        state = await store.get_dialer_state(ACCOUNT_ID)
        assert state.calls_made_today == 1
        assert state.today_spend == 0.0
        assert state.spend_reset_date == TODAY

    @pytest.mark.asyncio
    async def test_override_batch_decrements(self, store, state_machine, running_state, make_lead):
        """Test an override admits past budget and is consumed per dispatch"""
        store.add_lead(make_lead("l1"))
        await store.save_dialer_state(running_state(
            today_spend=15.0,
            override=OverrideBatch(active=True, leads_remaining=1),
        ))

        result = await state_machine.dispatch_next(ACCOUNT_ID, NOW)

        assert result.dispatched is True
        assert result.override_remaining == 0
        state = await store.get_dialer_state(ACCOUNT_ID)
        assert state.override.active is False

    @pytest.mark.asyncio
    async def test_budget_pause_on_dispatch(self, store, state_machine, running_state, call_provider, make_lead):
        """Test a dispatch past budget pauses the session"""
        store.add_lead(make_lead("l1"))
        await store.save_dialer_state(running_state(today_spend=15.0))

        result = await state_machine.dispatch_next(ACCOUNT_ID, NOW)

        assert result.dispatched is False
        assert result.status == DialerStatus.PAUSED_BUDGET
        call_provider.place_call.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_leads_moves_to_no_leads(self, store, state_machine, running_state):
        """Test an exhausted callable set ends the session as no-leads"""
        await store.save_dialer_state(running_state())

        result = await state_machine.dispatch_next(ACCOUNT_ID, NOW)

        assert result.status == DialerStatus.NO_LEADS
        state = await store.get_dialer_state(ACCOUNT_ID)
        assert state.status == DialerStatus.NO_LEADS

    @pytest.mark.asyncio
    async def test_provider_failure_moves_lead_to_review(
        self, store, state_machine, running_state, call_provider, make_lead
    ):
        """Test a provider failure surfaces and leaves no stuck lock"""
        call_provider.place_call.side_effect = UpstreamProviderError("timeout", provider="retell")
        store.add_lead(make_lead("l1"))
        await store.save_dialer_state(running_state())

        with pytest.raises(UpstreamProviderError):
            await state_machine.dispatch_next(ACCOUNT_ID, NOW)

        lead = store.leads["l1"]
        assert lead.status == LeadStatus.NEEDS_REVIEW
        assert lead.call_attempts_today == 1
        state = await store.get_dialer_state(ACCOUNT_ID)
        assert state.current_call_id is None
        assert state.current_lead_id is None
        assert state.calls_made_today == 0

    @pytest.mark.asyncio
    async def test_missing_caller_profile(self, store, state_machine, running_state, make_lead):
        """Test dispatch without a caller profile raises and leaves the lead untouched"""
        store.caller_profiles.clear()
        store.add_lead(make_lead("l1"))
        await store.save_dialer_state(running_state())

        with pytest.raises(ValidationError) as exc:
            await state_machine.dispatch_next(ACCOUNT_ID, NOW)

        assert exc.value.reason == "no_caller_profile"
        assert store.leads["l1"].status == LeadStatus.NEW


class TestRecordOutcome:
    """Tests for provider outcome callbacks"""

    @pytest_asyncio.fixture
    async def dispatched(self, store, state_machine, running_state, make_lead):
        store.add_lead(make_lead("l1"))
        await store.save_dialer_state(running_state())
        await state_machine.dispatch_next(ACCOUNT_ID, NOW)
        return store

    @pytest.mark.asyncio
    async def test_connected_call_is_billed_and_unlocks(self, dispatched, state_machine):
        """Test a connected outcome updates the lead, charges and releases the lock"""
        callback = CallOutcomeCallback(call_id="call-1", lead_id="l1", outcome="answered", duration_seconds=120)

        result = await state_machine.record_outcome(callback, NOW)

        assert result.lead_status == LeadStatus.UNCLASSIFIED
        assert result.cost == pytest.approx(0.60)
        assert result.lock_released is True

        lead = dispatched.leads["l1"]
        assert lead.status == LeadStatus.UNCLASSIFIED
        assert lead.total_calls_made == 1
        assert dispatched.balances[ACCOUNT_ID].balance == pytest.approx(49.40)

        record = dispatched.call_records["call-1"]
        assert record.status == CallStatus.COMPLETED
        assert record.ended_at is not None

        state = await dispatched.get_dialer_state(ACCOUNT_ID)
        assert state.current_call_id is None
        assert state.current_lead_id is None
        assert state.today_spend == pytest.approx(0.60)

    @pytest.mark.asyncio
    async def test_duplicate_callback_ignored(self, dispatched, state_machine):
        """Test a repeated callback neither double counts nor double charges"""
        callback = CallOutcomeCallback(call_id="call-1", lead_id="l1", outcome="booked", duration_seconds=60)

        await state_machine.record_outcome(callback, NOW)
        second = await state_machine.record_outcome(callback, NOW)

        assert second.duplicate is True
        assert dispatched.leads["l1"].total_calls_made == 1
        assert dispatched.balances[ACCOUNT_ID].balance == pytest.approx(49.70)
        assert len(dispatched.transactions) == 1

    @pytest.mark.asyncio
    async def test_unconnected_call_not_billed(self, dispatched, state_machine):
        """Test no-answer outcomes do not accrue cost"""
        callback = CallOutcomeCallback(call_id="call-1", lead_id="l1", outcome="no_answer", duration_seconds=30)

        result = await state_machine.record_outcome(callback, NOW)

        assert result.cost == 0.0
        assert dispatched.leads["l1"].status == LeadStatus.NO_ANSWER
        assert dispatched.balances[ACCOUNT_ID].balance == 50.0
        assert dispatched.transactions == []

    @pytest.mark.asyncio
    async def test_unknown_lead_raises(self, state_machine):
        """Test a callback for an unknown lead raises NotFoundError"""
        callback = CallOutcomeCallback(call_id="call-x", lead_id="missing", outcome="booked")

        with pytest.raises(NotFoundError):
            await state_machine.record_outcome(callback, NOW)

    @pytest.mark.asyncio
    async def test_other_call_keeps_lock(self, store, state_machine, running_state, make_lead):
        """Test a late callback does not release another call's lock"""
        store.add_lead(make_lead("l1", status=LeadStatus.CALLING_IN_PROGRESS))
        await store.save_dialer_state(running_state(current_call_id="call-2", current_lead_id="l2"))

        result = await state_machine.record_outcome(
            CallOutcomeCallback(call_id="call-1", lead_id="l1", outcome="voicemail"), NOW
        )

        assert result.lock_released is False
        state = await store.get_dialer_state(ACCOUNT_ID)
        assert state.current_call_id == "call-2"
        assert "call-1" in store.call_records

    @pytest.mark.asyncio
    async def test_running_session_gets_continue_event(self, dispatched, state_machine, outbox, relay):
        """Test releasing the lock of a running session queues a continue event"""
        await outbox.drain()
        relay.send.reset_mock()

        await state_machine.record_outcome(
            CallOutcomeCallback(call_id="call-1", lead_id="l1", outcome="busy"), NOW
        )
        await outbox.drain()

        events = [call.args[0] for call in relay.send.await_args_list]
        assert events == ["call.completed", "dialer.continue"]


class TestMarkOutcome:
    """Tests for operator outcome corrections"""

    @pytest.mark.asyncio
    async def test_correct_outcome(self, store, state_machine, make_lead):
        """Test a correction updates both the call record and the lead"""
        store.add_lead(make_lead("l1", status=LeadStatus.UNCLASSIFIED))
        await store.create_call_record(CallRecord(
            call_id="call-1", account_id=ACCOUNT_ID, lead_id="l1", created_at=NOW
        ))

        lead = await state_machine.mark_outcome("call-1", LeadStatus.APPOINTMENT_BOOKED)

        assert lead.status == LeadStatus.APPOINTMENT_BOOKED
        assert store.leads["l1"].status == LeadStatus.APPOINTMENT_BOOKED
        assert store.call_records["call-1"].outcome == "appointment_booked"

    @pytest.mark.asyncio
    async def test_in_progress_not_settable(self, state_machine):
        """Test calling_in_progress cannot be set by hand"""
        with pytest.raises(ValidationError):
            await state_machine.mark_outcome("call-1", LeadStatus.CALLING_IN_PROGRESS)

    @pytest.mark.asyncio
    async def test_unknown_call(self, state_machine):
        """Test an unknown call without a lead id raises NotFoundError"""
        with pytest.raises(NotFoundError):
            await state_machine.mark_outcome("nope", LeadStatus.NOT_INTERESTED)
