"""
Dispatch worker: drains pending payload records to their destinations.

The worker consumes WorkerMessages one at a time from an asyncio.Queue:

- CONFIGURE: build the repository, sender and connectivity monitor (first
  message only), then drain every destination.
- SUBMIT: persist the record, then drain its destination.
- SHUTDOWN (or None): drain every destination once more, then stop.

Draining a destination sends its records oldest first and stops at the first
record that cannot be delivered, so later records wait for a future pass.
A failed send while online forces connectivity offline for a cooldown, and a
record older than the retention window is dropped when its send fails.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from reportrelay.connectivity import Connectivity, ConnectivityMonitor
from reportrelay.errors import StorageError
from reportrelay.repository import PayloadRepository, create_repository
from reportrelay.sender import HttpSender, Sender
from reportrelay.types import (
    Config,
    Destination,
    MessageKind,
    PayloadRecord,
    WorkerMessage,
    utc_now,
)

logger = logging.getLogger(__name__)

# Delay before each message; sidesteps lock contention in the storage layer.
MESSAGE_DELAY = 0.025
OFFLINE_COOLDOWN = 30.0
RETENTION = timedelta(days=1)
RETRY_INTERVAL = 30.0

RepositoryFactory = Callable[[Config], PayloadRepository]
SenderFactory = Callable[[], Sender]
ConnectivityFactory = Callable[[Config], Connectivity]


def _default_connectivity(config: Config) -> Connectivity:
    return ConnectivityMonitor.for_endpoint(config.endpoint)


# pylint: disable=too-many-instance-attributes
class DispatchWorker:
    """
    Single-threaded supervisor for payload delivery.

    Collaborators are built from the injected factories when the first
    CONFIGURE message arrives; until then submitted records are sent directly
    without persistence.
    """

    def __init__(
        self,
        *,
        repository_factory: RepositoryFactory = create_repository,
        sender_factory: SenderFactory = HttpSender,
        connectivity_factory: ConnectivityFactory = _default_connectivity,
        message_delay: float = MESSAGE_DELAY,
        offline_cooldown: float = OFFLINE_COOLDOWN,
        retention: timedelta = RETENTION,
        retry_interval: Optional[float] = RETRY_INTERVAL,
        now_fn: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repository_factory = repository_factory
        self._sender_factory = sender_factory
        self._connectivity_factory = connectivity_factory
        self.message_delay = message_delay
        self.offline_cooldown = offline_cooldown
        self.retention = retention
        self.retry_interval = retry_interval
        self._now = now_fn
        self._repository: Optional[PayloadRepository] = None
        self._sender: Optional[Sender] = None
        self._connectivity: Optional[Connectivity] = None

    @property
    def configured(self) -> bool:
        """True once a CONFIGURE message has wired the collaborators."""
        return self._repository is not None

    async def run(self, inbox: "asyncio.Queue[Optional[WorkerMessage]]") -> None:
        """Process messages from inbox until a shutdown message is handled."""
        try:
            while True:
                try:
                    message = await asyncio.wait_for(
                        inbox.get(), timeout=self._idle_timeout()
                    )
                except asyncio.TimeoutError:
                    logger.debug("dispatch worker idle, retrying pending records")
                    await self.drain_all()
                    continue
                if not await self.process(message):
                    break
        finally:
            await self.close()
        logger.info("dispatch worker stopped")

    def _idle_timeout(self) -> Optional[float]:
        if self.configured and self.retry_interval:
            return self.retry_interval
        return None

    async def process(self, message: Optional[WorkerMessage]) -> bool:
        """Handle one message. Returns False when the worker should stop."""
        if self.message_delay > 0:
            await asyncio.sleep(self.message_delay)

        if message is None or message.kind == MessageKind.SHUTDOWN:
            logger.debug("dispatch worker got shutdown")
            await self.drain_all()
            return False

        logger.debug("dispatch worker got %s", message.kind)
        if message.kind == MessageKind.CONFIGURE:
            await self._configure(message.config)
            await self.drain_all()
        elif message.kind == MessageKind.SUBMIT:
            await self._process_record(message.record)
        else:
            logger.error(
                "dispatch worker ignoring unknown message kind %r", message.kind
            )
        return True

    async def _configure(self, config: Config) -> None:
        if self.configured:
            logger.debug("dispatch worker already configured, ignoring config")
            return
        sender = None
        try:
            repository = self._repository_factory(config)
            sender = self._sender_factory()
            connectivity = self._connectivity_factory(config)
            await connectivity.start()
        except Exception:  # pylint: disable=broad-exception-caught
            logger.exception(
                "could not configure dispatch worker for %s", config.endpoint
            )
            if sender is not None:
                await sender.aclose()
            return
        self._repository = repository
        self._sender = sender
        self._connectivity = connectivity
        logger.info(
            "dispatch worker configured for %s (persist=%s)",
            config.endpoint,
            config.persist_payloads,
        )

    async def _process_record(self, record: PayloadRecord) -> None:
        if self._repository is None:
            logger.error(
                "payload repository was never configured; sending record directly"
            )
            sender = self._sender_factory()
            try:
                await self._send(sender, record)
            finally:
                await sender.aclose()
            return

        try:
            await self._repository.add(record)
        except StorageError:
            logger.exception(
                "could not persist record for %s", record.destination.endpoint
            )
            return
        await self._drain_destination(record.destination)

    async def _send(self, sender: Sender, record: PayloadRecord) -> bool:
        try:
            return await sender.send(record.payload_json, record.destination)
        except Exception:  # pylint: disable=broad-exception-caught
            logger.exception("sender raised for %s", record.destination.endpoint)
            return False

    async def _drain_destination(self, destination: Destination) -> None:
        """Send destination's records in order until one cannot be delivered."""
        try:
            records = await self._repository.list_for_destination(destination)
        except StorageError:
            logger.exception("could not list records for %s", destination.endpoint)
            return
        for record in records:
            if not await self._process_pending_record(record):
                break

    async def _process_pending_record(self, record: PayloadRecord) -> bool:
        """Apply the send policy to one record. Returns False to halt the drain."""
        if not self._connectivity.is_online():
            return False

        if await self._send(self._sender, record):
            try:
                await self._repository.remove(record)
            except StorageError:
                logger.exception("could not remove delivered record %s", record.id)
                return False
            return True

        if self._connectivity.is_online():
            self._connectivity.override_as_off_for(self.offline_cooldown)
        if record.timestamp < self._now() - self.retention:
            logger.warning(
                "dropping record %s for %s: undelivered since %s",
                record.id,
                record.destination.endpoint,
                record.timestamp.isoformat(),
            )
            try:
                await self._repository.remove(record)
            except StorageError:
                logger.exception("could not drop expired record %s", record.id)
        return False

    async def drain_all(self) -> None:
        """Drain every destination, then purge destinations left empty."""
        if self._repository is None:
            logger.error("payload repository was never configured; nothing to drain")
            return
        try:
            destinations = await self._repository.list_destinations()
        except StorageError:
            logger.exception("could not list destinations")
            return
        for destination in destinations:
            await self._drain_destination(destination)
        try:
            await self._repository.purge_unused_destinations()
        except StorageError:
            logger.exception("could not purge unused destinations")

    async def close(self) -> None:
        """Release the sender, connectivity monitor and repository."""
        if self._sender is not None:
            await self._sender.aclose()
            self._sender = None
        if self._connectivity is not None:
            await self._connectivity.close()
            self._connectivity = None
        if self._repository is not None:
            await self._repository.close()
            self._repository = None
