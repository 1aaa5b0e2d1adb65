"""
Stripe Payment Gateway
Off-session charges against an account's default payment method
"""
import logging
import uuid
from typing import Optional

import stripe
from supabase import Client

from leadflow.domain.interfaces.payment_provider import PaymentProvider
from leadflow.domain.models.balance import ChargeResult

logger = logging.getLogger(__name__)


class StripePaymentProvider(PaymentProvider):
    """
    Charges the Stripe customer linked to an account.

    Runs in mock mode (every charge succeeds with a synthetic id) when no
    secret key is configured, so development setups can exercise auto-refill.
    """

    def __init__(
        self,
        supabase: Optional[Client],
        api_key: Optional[str],
        currency: str = "usd"
    ):
        self.supabase = supabase
        self.currency = currency
        self.mock_mode = not api_key
        if not self.mock_mode:
            stripe.api_key = api_key
        logger.info(f"StripePaymentProvider initialized (mock_mode={self.mock_mode})")

    async def charge(self, account_id: str, amount: float, description: str) -> ChargeResult:
        if self.mock_mode:
            charge_id = f"mock_pi_{uuid.uuid4().hex[:16]}"
            logger.info(f"[MOCK] Charged {amount:.2f} to account {account_id}: {charge_id}")
            return ChargeResult(success=True, charge_id=charge_id)

        customer_id = self._get_customer_id(account_id)
        if not customer_id:
            return ChargeResult(success=False, error="no_payment_customer")

        try:
            customer = stripe.Customer.retrieve(customer_id)
            payment_method = (customer.get("invoice_settings") or {}).get("default_payment_method")
            if not payment_method:
                return ChargeResult(success=False, error="no_default_payment_method")

            intent = stripe.PaymentIntent.create(
                amount=int(round(amount * 100)),
                currency=self.currency,
                customer=customer_id,
                payment_method=payment_method,
                off_session=True,
                confirm=True,
                description=description,
                metadata={
                    "account_id": account_id,
                    "type": "auto_refill",
                    "amount": f"{amount:.2f}",
                },
            )
        except stripe.CardError as e:
            logger.warning(f"Card declined for account {account_id}: {e.user_message}")
            return ChargeResult(success=False, error=e.code or "card_declined")
        except stripe.StripeError as e:
            logger.error(f"Stripe charge failed for account {account_id}: {e}", exc_info=True)
            return ChargeResult(success=False, error=str(e))

        if intent.status != "succeeded":
            return ChargeResult(success=False, charge_id=intent.id, error=f"payment_{intent.status}")

        return ChargeResult(success=True, charge_id=intent.id)

    def _get_customer_id(self, account_id: str) -> Optional[str]:
        if self.supabase is None:
            return None
        response = self.supabase.table("accounts").select(
            "stripe_customer_id"
        ).eq("id", account_id).limit(1).execute()
        rows = response.data or []
        return rows[0].get("stripe_customer_id") if rows else None
