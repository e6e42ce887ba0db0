"""Application bootstrap and lifecycle management."""

from typing import Protocol

from eth_account import Account

from .agents import AgentDirectory, IAgentMatcher, ReputationMatcher
from .attestation import AttestationPipeline
from .collaborators import (
    AgentCallbackClient,
    HttpPriceOracle,
    IAgentCallbacks,
    IContentStore,
    InMemoryContentStore,
    IPriceOracle,
    PinataContentStore,
)
from .config import Settings
from .event_bus import EventBus
from .ledger import ILedger, LedgerEventAdapter, LedgerEventListener, Web3Ledger
from .logging_config import get_logger
from .signature import SignatureVerifier, Signer
from .storage import IStorage, Storage
from .tasks import TaskRegistry
from .tasks.dispatch import TaskDispatcher
from .tracker import Tracker
from .validation import ValidationPolicy, ValidationService

logger = get_logger(__name__)


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...

    async def reset(self) -> None:
        """Reset data between test runs."""
        ...


class Application:
    """Main application bootstrap.

    Collaborators not passed in are built from settings: Pinata when an IPFS
    gateway is configured (in-memory otherwise), the HTTP oracle, and a
    Web3 ledger plus event listener when RPC and contract address are set.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        db_path: str | None = None,
        *,
        ledger: ILedger | None = None,
        content_store: IContentStore | None = None,
        oracle: IPriceOracle | None = None,
        callbacks: IAgentCallbacks | None = None,
        matcher: IAgentMatcher | None = None,
        signer: Signer | None = None,
        listen: bool | None = None,
    ):
        self._settings = settings or Settings.from_env()
        self._db_path = db_path if db_path is not None else self._settings.database_url
        self._ledger = ledger
        self._content_store = content_store
        self._oracle = oracle
        self._callbacks = callbacks
        self._matcher = matcher
        self._signer = signer
        self._listen = listen

        # Components (will be initialized in start())
        self._storage: IStorage | None = None
        self._event_bus: EventBus | None = None
        self._tracker: Tracker | None = None
        self._directory: AgentDirectory | None = None
        self._registry: TaskRegistry | None = None
        self._validation: ValidationService | None = None
        self._attestation: AttestationPipeline | None = None
        self._dispatcher: TaskDispatcher | None = None
        self._adapter: LedgerEventAdapter | None = None
        self._listener: LedgerEventListener | None = None
        self._owned: list = []

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")
        settings = self._settings

        # 1. Storage (no dependencies)
        self._storage = Storage(self._db_path)
        await self._storage.init()
        logger.info("Storage initialized")

        # 2. EventBus + Tracker
        self._event_bus = EventBus(self._storage)
        self._tracker = Tracker(self._event_bus, self._storage)
        await self._tracker.start()

        # 3. External collaborators
        self._build_collaborators()

        # 4. Owners of agent and task records
        self._directory = AgentDirectory(self._storage, self._tracker)
        self._registry = TaskRegistry(self._storage, self._tracker)

        # 5. Validation and attestation
        verifier = SignatureVerifier()
        self._validation = ValidationService(
            self._registry,
            self._directory,
            verifier,
            ValidationPolicy(self._oracle),
            self._content_store,
        )
        self._attestation = AttestationPipeline(
            self._registry,
            self._signer,
            verifier,
            self._content_store,
            ledger=self._ledger,
            ledger_timeout=settings.ledger_timeout,
            validation=self._validation,
        )
        self._dispatcher = TaskDispatcher(
            self._registry,
            self._directory,
            self._matcher,
            self._callbacks,
            ledger=self._ledger,
            ledger_timeout=settings.ledger_timeout,
        )
        logger.info("Pipeline services initialized (validator %s)", self._signer.address)

        # 6. Ledger events
        self._adapter = LedgerEventAdapter(
            self._event_bus,
            self._registry,
            self._directory,
            self._content_store,
            ledger=self._ledger,
        )
        await self._adapter.start()
        listen = self._listen if self._listen is not None else settings.ledger_configured
        if self._ledger is not None and listen:
            self._listener = LedgerEventListener(
                self._ledger, self._event_bus, settings.ledger_poll_interval
            )
            await self._listener.start()
        logger.info("All components initialized successfully")

    def _build_collaborators(self) -> None:
        settings = self._settings
        if self._signer is None:
            if settings.validator_private_key:
                self._signer = Signer(settings.validator_private_key)
            else:
                self._signer = Signer(Account.create().key)
                logger.warning(
                    "No validator key configured, using ephemeral %s", self._signer.address
                )

        if self._content_store is None:
            if settings.ipfs_host:
                self._content_store = self._own(
                    PinataContentStore(
                        settings.ipfs_host,
                        settings.ipfs_api_host,
                        settings.ipfs_api_key,
                        settings.ipfs_api_secret,
                        timeout=settings.http_timeout,
                    )
                )
            else:
                logger.warning("No IPFS gateway configured, using in-memory content store")
                self._content_store = InMemoryContentStore()

        if self._oracle is None:
            self._oracle = self._own(
                HttpPriceOracle(settings.oracle_url, timeout=settings.http_timeout)
            )
        if self._callbacks is None:
            self._callbacks = self._own(AgentCallbackClient(timeout=settings.http_timeout))
        if self._matcher is None:
            self._matcher = ReputationMatcher()

        if self._ledger is None and settings.ledger_configured:
            self._ledger = Web3Ledger(
                settings.rpc_url,
                settings.contract_address,
                settings.validator_private_key,
                receipt_timeout=settings.ledger_timeout,
            )
            logger.info("Ledger client connected to %s", settings.rpc_url)

    def _own(self, client):
        self._owned.append(client)
        return client

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if self._listener:
            await self._listener.stop()
            self._listener = None
        if self._adapter:
            await self._adapter.stop()
        if self._tracker:
            await self._tracker.stop()
        for client in reversed(self._owned):
            await client.close()
        self._owned.clear()
        if self._storage:
            await self._storage.close()
            logger.info("Storage closed")

    async def reset(self) -> None:
        """Reset data between test runs."""
        if self._listener:
            await self._listener.stop()
        if self._storage:
            await self._storage.clear()
            logger.info("Storage cleared")
        if self._listener:
            await self._listener.start()

    def _require(self, component):
        if component is None:
            raise RuntimeError("Application not started")
        return component

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def storage(self) -> IStorage:
        """Get storage instance."""
        return self._require(self._storage)

    @property
    def event_bus(self) -> EventBus:
        return self._require(self._event_bus)

    @property
    def tracker(self) -> Tracker:
        return self._require(self._tracker)

    @property
    def directory(self) -> AgentDirectory:
        return self._require(self._directory)

    @property
    def registry(self) -> TaskRegistry:
        return self._require(self._registry)

    @property
    def validation(self) -> ValidationService:
        return self._require(self._validation)

    @property
    def attestation(self) -> AttestationPipeline:
        return self._require(self._attestation)

    @property
    def dispatcher(self) -> TaskDispatcher:
        return self._require(self._dispatcher)

    @property
    def ledger(self) -> ILedger | None:
        return self._ledger

    @property
    def listener(self) -> LedgerEventListener | None:
        return self._listener
