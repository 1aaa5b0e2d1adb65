"""
Payment Provider Interface
"""
from abc import ABC, abstractmethod

from leadflow.domain.models.balance import ChargeResult


class PaymentProvider(ABC):
    """Charges an account's stored payment instrument"""

    @abstractmethod
    async def charge(self, account_id: str, amount: float, description: str) -> ChargeResult:
        """
        Charge `amount` (in dollars) synchronously.

        Failures are reported in the result, not raised.
        """
        pass
