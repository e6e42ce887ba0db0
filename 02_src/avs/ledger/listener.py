"""Polls the ledger for new events and publishes them on the bus."""

import asyncio

from ..errors import CollaboratorUnavailable
from ..event_bus import EventBus
from ..logging_config import get_logger
from .client import ILedger

logger = get_logger(__name__)


class LedgerEventListener:
    """Background poller. Starts at the current head unless told otherwise."""

    def __init__(
        self,
        ledger: ILedger,
        event_bus: EventBus,
        poll_interval: float = 5.0,
        start_block: int | None = None,
    ):
        self._ledger = ledger
        self._event_bus = event_bus
        self._poll_interval = poll_interval
        self._next_block = start_block
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def next_block(self) -> int | None:
        return self._next_block

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info("Ledger listener started")

    async def stop(self) -> None:
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Ledger listener stopped")

    async def poll_once(self) -> int:
        """Fetch and publish one batch. Returns the number of events."""
        if self._next_block is None:
            self._next_block = await self._ledger.block_number()

        events, next_block = await self._ledger.fetch_events(self._next_block)
        for event in events:
            await self._event_bus.emit(
                event.topic,
                {**event.payload, "blockNumber": event.block_number},
                source="ledger",
            )
        self._next_block = next_block
        if events:
            logger.info("Published %d ledger events", len(events))
        return len(events)

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except CollaboratorUnavailable as e:
                logger.warning("Ledger poll failed: %s", e.message)
            except Exception:
                logger.exception("Unexpected error while polling the ledger")
            await asyncio.sleep(self._poll_interval)
