"""
HTTP Workflow Relay
Posts event notifications to the external workflow system
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from leadflow.domain.interfaces.workflow_relay import WorkflowRelay

logger = logging.getLogger(__name__)


class HttpWorkflowRelay(WorkflowRelay):
    """Delivers notifications as JSON POSTs to a single webhook URL."""

    def __init__(self, url: Optional[str], timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    async def send(self, event: str, payload: Dict[str, Any]) -> None:
        if not self.url:
            logger.debug(f"Workflow relay not configured, dropping '{event}'")
            return

        body = {
            "event": event,
            "payload": payload,
            "sent_at": datetime.utcnow().isoformat(),
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.url, json=body)
            response.raise_for_status()

        logger.info(f"Relayed '{event}' ({response.status_code})")
