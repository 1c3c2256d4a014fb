"""
HttpAgentInvoker: calls agents exposed over plain HTTP.

POSTs {"message", "correlationId"} as JSON to the endpoint and reads the
reply's `response` (or `text` / `output`) and `cost` fields.
"""

import json
import logging
from typing import Optional

import httpx

from ..errors import InvocationError
from ..protocols import InvocationResult, Message

logger = logging.getLogger(__name__)


class HttpAgentInvoker:
    def __init__(self, auth_token: Optional[str] = None, timeout: float = 120.0,
                 client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json"}
        if auth_token:
            self.headers["Authorization"] = f"Bearer {auth_token}"
        self._client = client

    async def invoke(self, endpoint_ref: str, message: Message,
                     correlation_id: Optional[str] = None) -> InvocationResult:
        payload = {"message": message}
        if correlation_id:
            payload["correlationId"] = correlation_id

        try:
            logger.info("Calling agent endpoint: %s", endpoint_ref)
            if self._client is not None:
                response = await self._client.post(endpoint_ref, json=payload, headers=self.headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(endpoint_ref, json=payload, headers=self.headers)
        except httpx.RequestError as e:
            logger.error("Network error calling agent '%s': %r", endpoint_ref, e)
            raise InvocationError(f"Network error calling {endpoint_ref}: {e}") from e

        if response.status_code != 200:
            logger.error("Agent endpoint error %s: %s", response.status_code, response.text)
            raise InvocationError(f"Agent at {endpoint_ref} returned status {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            return InvocationResult(response=response.text)
        return _parse_reply(data)


def _parse_reply(data) -> InvocationResult:
    if not isinstance(data, dict):
        return InvocationResult(response=json.dumps(data))
    response = data.get("response")
    if response is None:
        response = data.get("text")
    if response is None:
        output = data.get("output")
        if isinstance(output, dict):
            response = output.get("response") or output.get("text") or json.dumps(output)
        else:
            response = output
    if response is None:
        response = json.dumps(data)
    return InvocationResult(response=str(response), cost=str(data.get("cost") or "0"))
