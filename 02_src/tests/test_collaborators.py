"""Tests for HTTP collaborators."""

import json
from decimal import Decimal

import httpx
import pytest

from avs.collaborators import AgentCallbackClient, HttpPriceOracle, PinataContentStore
from avs.errors import CallbackUnavailable, OracleUnavailable, StorageUnavailable


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestHttpPriceOracle:
    async def test_price(self):
        def handler(request):
            assert request.url.params["symbol"] == "ETHUSDT"
            return httpx.Response(200, json={"symbol": "ETHUSDT", "price": "1834.12000000"})

        oracle = HttpPriceOracle("https://oracle/ticker", client=_client(handler))
        assert await oracle.get_price("ETHUSDT") == Decimal("1834.12")

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500),
            httpx.Response(200, json={"nope": 1}),
            httpx.Response(200, json={"price": "abc"}),
            httpx.Response(200, json={"price": "0"}),
        ],
    )
    async def test_failures_are_unavailable(self, response):
        oracle = HttpPriceOracle("https://oracle/ticker", client=_client(lambda request: response))
        with pytest.raises(OracleUnavailable):
            await oracle.get_price("ETHUSDT")


class TestPinataContentStore:
    async def test_store_and_fetch(self):
        pinned = {}

        def handler(request):
            if request.method == "POST":
                assert request.headers["pinata_api_key"] == "key"
                pinned["Qm1"] = json.loads(request.content)
                return httpx.Response(200, json={"IpfsHash": "Qm1"})
            assert request.url.path == "/ipfs/Qm1"
            return httpx.Response(200, json=pinned["Qm1"])

        store = PinataContentStore(
            "https://gateway/ipfs", "https://api/pin", "key", "secret", client=_client(handler)
        )
        ref = await store.store({"taskId": "1"})

        assert ref == "Qm1"
        assert await store.fetch(ref) == {"taskId": "1"}

    async def test_fetch_failure(self):
        store = PinataContentStore(
            "https://gateway/ipfs/", "https://api/pin", client=_client(lambda r: httpx.Response(404))
        )
        with pytest.raises(StorageUnavailable):
            await store.fetch("Qm404")

    async def test_store_without_hash(self):
        store = PinataContentStore(
            "https://gateway/ipfs", "https://api/pin", client=_client(lambda r: httpx.Response(200, json={}))
        )
        with pytest.raises(StorageUnavailable):
            await store.store({"a": 1})


class TestInMemoryContentStore:
    async def test_content_addressed(self, content_store):
        first = await content_store.store({"b": 1, "a": 2})
        second = await content_store.store({"a": 2, "b": 1})
        assert first == second

    async def test_fetch_returns_copy(self, content_store):
        ref = await content_store.store({"a": [1]})
        fetched = await content_store.fetch(ref)
        fetched["a"].append(2)
        assert await content_store.fetch(ref) == {"a": [1]}


class TestAgentCallbackClient:
    async def test_posts_payload(self):
        def handler(request):
            assert json.loads(request.content) == {"taskId": "1"}
            return httpx.Response(200, json={"accepted": True})

        callbacks = AgentCallbackClient(client=_client(handler))
        assert await callbacks.call("http://agent/run", {"taskId": "1"}) == {"accepted": True}

    async def test_text_body(self):
        callbacks = AgentCallbackClient(client=_client(lambda r: httpx.Response(200, text="ok")))
        assert await callbacks.call("http://agent/run", {}) == {"text": "ok"}

    async def test_error_status(self):
        callbacks = AgentCallbackClient(client=_client(lambda r: httpx.Response(502)))
        with pytest.raises(CallbackUnavailable):
            await callbacks.call("http://agent/run", {})
