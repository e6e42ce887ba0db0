"""Pytest configuration and fixtures."""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path

import pytest
import pytest_asyncio
from eth_account import Account

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from avs.errors import CallbackUnavailable, LedgerUnavailable, OracleUnavailable  # noqa: E402
from avs.ledger import LedgerAgent, LedgerTask, TxReceipt  # noqa: E402
from avs.signature import Signer, result_message  # noqa: E402


class FakeOracle:
    """Price oracle with settable prices."""

    def __init__(self, price: str = "1000"):
        self.prices: dict[str, Decimal] = {}
        self.default = Decimal(price)
        self.available = True
        self.calls: list[str] = []

    async def get_price(self, symbol: str) -> Decimal:
        self.calls.append(symbol)
        if not self.available:
            raise OracleUnavailable(f"No price for {symbol}: offline", symbol=symbol)
        return self.prices.get(symbol, self.default)


class FakeLedger:
    """In-memory ledger recording writes."""

    def __init__(self):
        self.agents: dict[str, LedgerAgent] = {}
        self.tasks: dict[int, LedgerTask] = {}
        self.events: list = []
        self.head = 10
        self.completed: list[tuple[int, str]] = []
        self.assigned: list[int] = []
        self.registrations: list[tuple[str, str, int]] = []
        self.fail_with: Exception | None = None
        self.delay = 0.0
        self._tx = 0

    async def _receipt(self) -> TxReceipt:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        self._tx += 1
        self.head += 1
        return TxReceipt(tx_hash=f"0x{self._tx:064x}", block_number=self.head)

    async def block_number(self) -> int:
        return self.head

    async def get_agent(self, address: str) -> LedgerAgent | None:
        return self.agents.get(address.lower())

    async def get_task(self, ledger_id: int) -> LedgerTask | None:
        return self.tasks.get(int(ledger_id))

    async def assign_task(self, ledger_id: int) -> TxReceipt:
        receipt = await self._receipt()
        self.assigned.append(ledger_id)
        return receipt

    async def complete_task(self, ledger_id: int, signature: str) -> TxReceipt:
        receipt = await self._receipt()
        self.completed.append((ledger_id, signature))
        return receipt

    async def register_agent_for_other_user(
        self, user: str, agent: str, allowance: int
    ) -> TxReceipt:
        receipt = await self._receipt()
        self.registrations.append((user, agent, allowance))
        return receipt

    async def fetch_events(self, from_block: int):
        if self.fail_with is not None and isinstance(self.fail_with, LedgerUnavailable):
            raise self.fail_with
        events = [event for event in self.events if event.block_number >= from_block]
        return events, max(from_block, self.head + 1)


class FakeCallbacks:
    """Agent endpoint double recording payloads."""

    def __init__(self):
        self.calls: list[tuple[str, dict]] = []
        self.fail = False
        self.response = {"accepted": True}

    async def call(self, url: str, payload: dict):
        self.calls.append((url, payload))
        if self.fail:
            raise CallbackUnavailable(f"Error calling agent endpoint {url}: refused", url=url)
        return self.response


@pytest_asyncio.fixture
async def storage():
    """Create in-memory storage for testing."""
    from avs.storage import Storage

    st = Storage(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def event_bus(storage):
    """Create EventBus with storage."""
    from avs.event_bus import EventBus

    return EventBus(storage)


@pytest.fixture
def tracker(storage, event_bus):
    """Create Tracker with storage and event bus."""
    from avs.tracker import Tracker

    return Tracker(event_bus=event_bus, storage=storage)


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def callbacks():
    return FakeCallbacks()


@pytest.fixture
def content_store():
    from avs.collaborators import InMemoryContentStore

    return InMemoryContentStore()


@pytest.fixture
def verifier():
    from avs.signature import SignatureVerifier

    return SignatureVerifier()


@pytest.fixture
def agent_signer():
    """Signer holding a fresh agent key."""
    return Signer(Account.create().key)


@pytest.fixture
def validator_signer():
    """Signer holding a fresh validator key."""
    return Signer(Account.create().key)


@pytest.fixture
def registry(storage, tracker):
    from avs.tasks import TaskRegistry

    return TaskRegistry(storage, tracker)


@pytest.fixture
def directory(storage, tracker):
    from avs.agents import AgentDirectory

    return AgentDirectory(storage, tracker)


@pytest.fixture
def policy(oracle):
    from avs.validation import ValidationPolicy

    return ValidationPolicy(oracle)


@pytest.fixture
def validation_service(registry, directory, verifier, policy, content_store):
    from avs.validation import ValidationService

    return ValidationService(registry, directory, verifier, policy, content_store)


@pytest.fixture
def pipeline(registry, validator_signer, verifier, content_store, ledger, validation_service):
    from avs.attestation import AttestationPipeline

    return AttestationPipeline(
        registry,
        validator_signer,
        verifier,
        content_store,
        ledger=ledger,
        ledger_timeout=1.0,
        validation=validation_service,
    )


@pytest.fixture
def dispatcher(registry, directory, callbacks, ledger):
    from avs.agents import ReputationMatcher
    from avs.tasks.dispatch import TaskDispatcher

    return TaskDispatcher(
        registry, directory, ReputationMatcher(), callbacks, ledger=ledger, ledger_timeout=1.0
    )


@pytest_asyncio.fixture
async def agent(directory, agent_signer):
    """An active agent taking price and report tasks."""
    return await directory.register(
        agent_signer.address,
        {"name": "price-bot", "skillList": ["price", "report"]},
    )


@pytest.fixture
def complete_task(registry, agent_signer):
    """Record a result for a task, signed by the agent key unless told otherwise."""

    async def _complete(task_id: str, result, signer: Signer | None = None):
        signer = signer or agent_signer
        signature = signer.sign(result_message(task_id, result))
        return await registry.record_result(task_id, signature, result=result)

    return _complete


@pytest_asyncio.fixture
async def assigned_task(registry, agent):
    """A price task assigned to the agent."""
    task = await registry.create(
        "0xcreator", "price", {"symbol": "ETHUSDT"}, payment=5, ledger_id=7
    )
    return await registry.assign(task.id, agent.address)
