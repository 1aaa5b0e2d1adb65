"""
Retell Call Origination
Places outbound calls through the Retell REST API
"""
import logging
from typing import Any, Dict, Optional

import httpx

from leadflow.core.errors import UpstreamProviderError
from leadflow.domain.interfaces.call_provider import CallProvider

logger = logging.getLogger(__name__)


class RetellCallProvider(CallProvider):
    """
    Retell Voice API client for outbound call origination.

    The call is created synchronously and its outcome is reported later to
    the call-provider webhook.
    """

    CREATE_CALL_PATH = "/v2/create-phone-call"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.retellai.com",
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client

    @property
    def name(self) -> str:
        return "retell"

    async def place_call(
        self,
        agent_id: str,
        to_number: str,
        from_number: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        if not self._api_key:
            raise UpstreamProviderError("Retell API key not configured", provider=self.name)

        payload = {
            "agent_id": agent_id,
            "to_number": self._normalize_number(to_number),
            "from_number": from_number,
            "metadata": metadata or {},
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        logger.info(f"Initiating call: {from_number} -> {payload['to_number']}")

        try:
            if self._client is not None:
                response = await self._client.post(
                    f"{self._base_url}{self.CREATE_CALL_PATH}",
                    json=payload,
                    headers=headers,
                    timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(
                        f"{self._base_url}{self.CREATE_CALL_PATH}",
                        json=payload,
                        headers=headers
                    )
        except httpx.HTTPError as e:
            logger.error(f"Retell request failed: {e}", exc_info=True)
            raise UpstreamProviderError(f"Call provider unreachable: {e}", provider=self.name)

        if response.status_code not in (200, 201):
            logger.error(f"Retell rejected call: {response.status_code} {response.text}")
            raise UpstreamProviderError(
                f"Call provider returned {response.status_code}",
                provider=self.name,
                reason="call_rejected"
            )

        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"Retell returned a non-JSON body: {response.text[:200]}")
            raise UpstreamProviderError(
                f"Call provider returned an unreadable response: {e}",
                provider=self.name,
                reason="invalid_response"
            )

        call_id = body.get("call_id") if isinstance(body, dict) else None
        if not call_id:
            raise UpstreamProviderError("Call provider returned no call_id", provider=self.name)

        logger.info(f"Call initiated: {call_id}")
        return call_id

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _normalize_number(self, number: str) -> str:
        """Normalize to E.164 (US numbers without country code get +1)."""
        digits = "".join(c for c in number if c.isdigit())
        if number.strip().startswith("+"):
            return f"+{digits}"
        if len(digits) == 10:
            return f"+1{digits}"
        return f"+{digits}"
