"""
Call Provider Interface
Abstract base class for outbound voice-call providers
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class CallProvider(ABC):
    """Abstract base class for call providers"""

    @abstractmethod
    async def place_call(
        self,
        agent_id: str,
        to_number: str,
        from_number: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Initiate an outbound call.

        The outcome arrives later as an asynchronous callback.

        Returns:
            call_id: Provider call identifier

        Raises:
            UpstreamProviderError: The provider rejected or failed the request
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release resources"""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name"""
        pass
