"""Reference price oracle."""

from decimal import Decimal, InvalidOperation
from typing import Protocol

import httpx

from ..errors import OracleUnavailable
from ..models.common import to_decimal


class IPriceOracle(Protocol):
    """Returns a reference price for a symbol."""

    async def get_price(self, symbol: str) -> Decimal:
        ...


class HttpPriceOracle:
    """Ticker endpoint answering ``GET ?symbol=ETHUSDT`` with ``{"price": "..."}``."""

    def __init__(
        self,
        url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        self._url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def get_price(self, symbol: str) -> Decimal:
        try:
            response = await self._client.get(self._url, params={"symbol": symbol})
            response.raise_for_status()
            price = to_decimal(response.json()["price"])
        except (httpx.HTTPError, KeyError, ValueError, InvalidOperation) as e:
            raise OracleUnavailable(f"No price for {symbol}: {e}", symbol=symbol) from e
        if not price.is_finite() or price <= 0:
            raise OracleUnavailable(f"Oracle returned unusable price {price} for {symbol}", symbol=symbol)
        return price

    async def close(self) -> None:
        await self._client.aclose()
