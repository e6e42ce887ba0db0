"""HTTP calls to agent-declared endpoints."""

from typing import Any, Protocol

import httpx

from ..errors import CallbackUnavailable
from ..logging_config import get_logger

logger = get_logger(__name__)


class IAgentCallbacks(Protocol):
    async def call(self, url: str, payload: dict) -> Any:
        ...


class AgentCallbackClient:
    """POSTs task payloads to agents and returns their response body."""

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 10.0):
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def call(self, url: str, payload: dict) -> Any:
        try:
            response = await self._client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise CallbackUnavailable(f"Error calling agent endpoint {url}: {e}", url=url) from e
        try:
            body = response.json()
        except ValueError:
            body = {"text": response.text}
        logger.info("Agent endpoint %s answered %s", url, response.status_code)
        return body

    async def close(self) -> None:
        await self._client.aclose()
