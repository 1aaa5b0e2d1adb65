"""
Budget & Balance Admission Controller
Decides whether an account may place another call
"""
import logging
from datetime import datetime
from typing import Optional

import pytz
from pydantic import BaseModel

from leadflow.core.errors import PartialFailure, ValidationError
from leadflow.domain.interfaces.payment_provider import PaymentProvider
from leadflow.domain.interfaces.store import DialerStore
from leadflow.domain.models.balance import (
    Balance,
    BalanceTransaction,
    RefillOutcome,
    TransactionType,
)
from leadflow.domain.models.dialer_state import AccountDialerState, DialerStatus
from leadflow.domain.models.policy import DialerPolicy
from leadflow.domain.services.day_boundary import DayBoundaryResolver

logger = logging.getLogger(__name__)


class AdmissionResult(BaseModel):
    """Outcome of the admission gates"""
    allowed: bool
    new_session_status: Optional[DialerStatus] = None
    reason: Optional[str] = None
    balance: float = 0.0
    today_spend: float = 0.0
    budget_equivalent: float = 0.0
    override_applied: bool = False
    refill: Optional[RefillOutcome] = None


class AdmissionController:
    """
    Budget and balance gates for outbound calls.

    Gate order: auto-refill check, balance gate, budget gate. An active
    override batch bypasses the budget gate only. Balance and spend updates
    are read-modify-write without locking.
    """

    def __init__(
        self,
        store: DialerStore,
        payment_provider: PaymentProvider,
        resolver: DayBoundaryResolver,
        policy: Optional[DialerPolicy] = None
    ):
        self.store = store
        self.payment_provider = payment_provider
        self.resolver = resolver
        self.policy = policy or DialerPolicy()

    def default_balance(self, account_id: str) -> Balance:
        return Balance(
            account_id=account_id,
            balance=self.policy.default_balance,
            auto_refill_enabled=self.policy.default_auto_refill_enabled,
            auto_refill_amount=self.policy.default_auto_refill_amount,
            auto_refill_threshold=self.policy.default_auto_refill_threshold,
        )

    def default_state(self, account_id: str) -> AccountDialerState:
        return AccountDialerState(
            account_id=account_id,
            daily_call_limit=self.policy.default_daily_call_limit,
            cost_per_minute=self.policy.default_cost_per_minute,
            target_lead_count=self.policy.default_target_lead_count,
            lead_priority_mode=self.policy.default_priority_mode,
        )

    async def get_or_create_balance(self, account_id: str) -> Balance:
        balance = await self.store.get_balance(account_id)
        if balance is None:
            balance = self.default_balance(account_id)
            await self.store.create_balance_if_absent(balance)
            logger.info(f"Created default balance for account {account_id}")
        return balance

    async def check_admission(
        self,
        account_id: str,
        now: Optional[datetime] = None
    ) -> AdmissionResult:
        """
        Evaluate the balance and budget gates for one more call.

        A denial flips a running session to the matching paused status.
        """
        today = self.resolver.canonical_day(now)

        balance = await self.get_or_create_balance(account_id)
        refill = await self.maybe_refill(balance)
        if refill.success and refill.new_balance is not None:
            balance.balance = refill.new_balance

        state = await self.store.get_dialer_state(account_id) or self.default_state(account_id)
        spend = state.effective_spend(today)
        budget = state.budget_equivalent(self.policy.minutes_per_call)

        result = AdmissionResult(
            allowed=True,
            balance=balance.balance,
            today_spend=spend,
            budget_equivalent=budget,
            refill=refill if refill.attempted else None,
        )

        if balance.balance <= 0:
            result.allowed = False
            result.new_session_status = DialerStatus.PAUSED_BALANCE
            result.reason = DialerStatus.PAUSED_BALANCE.value
        elif spend >= budget:
            if state.override.in_effect:
                result.override_applied = True
            else:
                result.allowed = False
                result.new_session_status = DialerStatus.PAUSED_BUDGET
                result.reason = DialerStatus.PAUSED_BUDGET.value

        if not result.allowed:
            logger.info(
                f"Admission denied for account {account_id}: {result.reason} "
                f"(balance={balance.balance:.2f}, spend={spend:.2f}/{budget:.2f})"
            )
            if state.status == DialerStatus.RUNNING:
                await self.store.update_dialer_state(account_id, {
                    "status": result.new_session_status,
                    "last_call_status": result.reason,
                })

        return result

    async def maybe_refill(self, balance: Balance) -> RefillOutcome:
        """
        Run at most one auto-refill charge for this detection.

        On failure the balance is left unchanged and the failure is returned
        to the caller; there is no retry.
        """
        if not balance.needs_refill():
            return RefillOutcome()

        amount = balance.auto_refill_amount
        logger.info(
            f"Auto-refill triggered for account {balance.account_id}: "
            f"balance {balance.balance:.2f} < threshold {balance.auto_refill_threshold:.2f}"
        )

        charge = await self.payment_provider.charge(
            balance.account_id,
            amount,
            f"Auto-refill: ${amount:.2f} call balance"
        )
        if not charge.success:
            logger.warning(f"Auto-refill failed for account {balance.account_id}: {charge.error}")
            return RefillOutcome(attempted=True, success=False, amount=amount, error=charge.error)

        new_balance = round(balance.balance + amount, 4)
        await self.store.update_balance(balance.account_id, {"balance": new_balance})

        logged = await self._log_transaction(BalanceTransaction(
            account_id=balance.account_id,
            amount=amount,
            transaction_type=TransactionType.AUTO_REFILL,
            description=f"Auto-refill: ${amount:.2f}",
            balance_after=new_balance,
            charge_id=charge.charge_id,
            created_at=datetime.now(pytz.UTC),
        ))

        logger.info(f"Auto-refill succeeded for account {balance.account_id}: +{amount:.2f} -> {new_balance:.2f}")
        return RefillOutcome(
            attempted=True,
            success=True,
            amount=amount,
            charge_id=charge.charge_id,
            new_balance=new_balance,
            transaction_logged=logged,
        )

    async def accrue_call_cost(
        self,
        account_id: str,
        duration_seconds: float,
        now: Optional[datetime] = None,
        call_id: Optional[str] = None
    ) -> float:
        """
        Charge a completed call: add to today's spend, deduct from the
        balance, log a call_charge transaction and re-run the refill check.

        Returns:
            The call cost in dollars
        """
        if duration_seconds < 0:
            raise ValidationError("duration_seconds must be >= 0")

        today = self.resolver.canonical_day(now)
        state = await self.store.get_dialer_state(account_id) or self.default_state(account_id)
        cost = round(duration_seconds / 60.0 * state.cost_per_minute, 4)

        if state.spend_reset_date == today:
            await self.store.update_dialer_state(account_id, {
                "today_spend": round(state.today_spend + cost, 4),
            })
        else:
            # First charge of a new canonical day resets both daily counters
            await self.store.update_dialer_state(account_id, {
                "today_spend": cost,
                "calls_made_today": 0,
                "spend_reset_date": today,
            })

        balance = await self.get_or_create_balance(account_id)
        balance.balance = round(balance.balance - cost, 4)
        await self.store.update_balance(account_id, {"balance": balance.balance})

        await self._log_transaction(BalanceTransaction(
            account_id=account_id,
            amount=-cost,
            transaction_type=TransactionType.CALL_CHARGE,
            description=f"Call {call_id} ({duration_seconds:.0f}s)" if call_id else "Call charge",
            balance_after=balance.balance,
            created_at=datetime.now(pytz.UTC),
        ))

        logger.info(f"Charged {cost:.4f} to account {account_id}, balance {balance.balance:.2f}")

        await self.maybe_refill(balance)
        return cost

    async def configure_auto_refill(
        self,
        account_id: str,
        enabled: bool,
        amount: Optional[float] = None,
        threshold: Optional[float] = None
    ) -> Balance:
        """Update auto-refill settings; the amount must be one of the allowed tiers."""
        if amount is not None and amount not in self.policy.auto_refill_amounts:
            raise ValidationError(
                f"auto_refill_amount must be one of {self.policy.auto_refill_amounts}",
                reason="invalid_refill_amount"
            )
        if threshold is not None and threshold < 0:
            raise ValidationError("auto_refill_threshold must be >= 0")

        balance = await self.get_or_create_balance(account_id)
        fields = {"auto_refill_enabled": enabled}
        if amount is not None:
            fields["auto_refill_amount"] = amount
        if threshold is not None:
            fields["auto_refill_threshold"] = threshold

        await self.store.update_balance(account_id, fields)
        return balance.model_copy(update=fields)

    async def _log_transaction(self, transaction: BalanceTransaction) -> bool:
        try:
            await self.store.add_balance_transaction(transaction)
            return True
        except Exception as e:
            failure = PartialFailure(f"Transaction log write failed: {e}", operation="add_balance_transaction")
            logger.error(f"{failure.reason}: {failure.message} (account {transaction.account_id})", exc_info=True)
            return False
