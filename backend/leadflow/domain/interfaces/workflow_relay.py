"""
Workflow Relay Interface
Outbound notifications to the external automation system
"""
from abc import ABC, abstractmethod
from typing import Any, Dict


class WorkflowRelay(ABC):
    """Delivers event notifications to the external workflow system"""

    @abstractmethod
    async def send(self, event: str, payload: Dict[str, Any]) -> None:
        """
        Deliver one notification.

        Raises on delivery failure; callers decide whether to retry.
        """
        pass
