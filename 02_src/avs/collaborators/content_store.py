"""Content-addressed storage for large payloads (IPFS via Pinata)."""

import copy
import hashlib
import re
from typing import Any, Protocol

import httpx

from ..errors import StorageUnavailable
from ..logging_config import get_logger
from ..signature import canonical_message

logger = get_logger(__name__)

# CIDv0, base32 CIDv1 and the in-memory sha256 refs.
CONTENT_REF = re.compile(r"^(?:Qm[1-9A-HJ-NP-Za-km-z]{44}|b[a-z2-7]{58,}|sha256-[0-9a-f]{64})$")


def is_content_ref(value: Any) -> bool:
    return isinstance(value, str) and CONTENT_REF.match(value) is not None


class IContentStore(Protocol):
    """Stores JSON payloads and returns a content reference."""

    async def store(self, payload: Any) -> str:
        ...

    async def fetch(self, ref: str) -> Any:
        ...


class PinataContentStore:
    """Pins JSON through the Pinata API and reads it back from a gateway."""

    def __init__(
        self,
        gateway_url: str,
        api_url: str,
        api_key: str | None = None,
        api_secret: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        self._gateway_url = gateway_url
        self._api_url = api_url
        self._api_key = api_key
        self._api_secret = api_secret
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _gateway(self, ref: str) -> str:
        if self._gateway_url.endswith("/"):
            return f"{self._gateway_url}{ref}"
        return f"{self._gateway_url}/{ref}"

    async def store(self, payload: Any) -> str:
        """Pin a JSON payload; returns its IPFS hash."""
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["pinata_api_key"] = self._api_key
            headers["pinata_secret_api_key"] = self._api_secret or ""
        try:
            response = await self._client.post(self._api_url, json=payload, headers=headers)
            response.raise_for_status()
            ref = response.json()["IpfsHash"]
        except (httpx.HTTPError, KeyError, ValueError) as e:
            raise StorageUnavailable(f"Error storing on IPFS: {e}") from e
        logger.debug("Stored payload on IPFS as %s", ref)
        return ref

    async def fetch(self, ref: str) -> Any:
        """Fetch a JSON payload by IPFS hash."""
        try:
            response = await self._client.get(self._gateway(ref))
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise StorageUnavailable(f"Error fetching {ref} from IPFS: {e}", ref=ref) from e

    async def close(self) -> None:
        await self._client.aclose()


class InMemoryContentStore:
    """Process-local content store with sha256 content references.

    Used when no IPFS endpoint is configured.
    """

    def __init__(self) -> None:
        self._items: dict[str, Any] = {}
        self.available = True

    async def store(self, payload: Any) -> str:
        if not self.available:
            raise StorageUnavailable("content store offline")
        ref = "sha256-" + hashlib.sha256(canonical_message(payload)).hexdigest()
        self._items[ref] = copy.deepcopy(payload)
        return ref

    async def fetch(self, ref: str) -> Any:
        if not self.available:
            raise StorageUnavailable("content store offline", ref=ref)
        if ref not in self._items:
            raise StorageUnavailable(f"content {ref} not found", ref=ref)
        return copy.deepcopy(self._items[ref])
