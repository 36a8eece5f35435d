"""
Payload repository: durable queue of pending payload records.

Records are grouped by Destination. The repository also keeps an index of
destinations; entries whose records have all been removed stay in the index
until purge_unused_destinations() runs.
"""

import dataclasses
import itertools
import logging
from typing import Dict, List, Protocol, Set

from reportrelay.types import Config, Destination, PayloadRecord

logger = logging.getLogger(__name__)


class PayloadRepository(Protocol):
    """Protocol for payload record storage. Failures raise StorageError."""

    async def add(self, record: PayloadRecord) -> PayloadRecord:
        """Store record; return a copy carrying the assigned id."""

    async def remove(self, record: PayloadRecord) -> None:
        """Delete the stored record with record.id (no-op if already gone)."""

    async def list_for_destination(
        self, destination: Destination
    ) -> List[PayloadRecord]:
        """Return all pending records for destination, oldest first."""

    async def list_destinations(self) -> Set[Destination]:
        """Return the distinct destinations that have pending records."""

    async def purge_unused_destinations(self) -> None:
        """Drop destinations with zero pending records from the index."""

    async def close(self) -> None:
        """Release storage resources."""


class InMemoryPayloadRepository:
    """
    Repository kept in process memory. Used when persistence is disabled;
    records do not survive a restart.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        # id -> record, in insertion order
        self._records: Dict[int, PayloadRecord] = {}
        self._destinations: Set[Destination] = set()

    async def add(self, record: PayloadRecord) -> PayloadRecord:
        stored = dataclasses.replace(record, id=next(self._ids))
        self._records[stored.id] = stored
        self._destinations.add(stored.destination)
        return stored

    async def remove(self, record: PayloadRecord) -> None:
        if record.id is None:
            raise ValueError("cannot remove a record that was never stored")
        self._records.pop(record.id, None)

    async def list_for_destination(
        self, destination: Destination
    ) -> List[PayloadRecord]:
        records = [r for r in self._records.values() if r.destination == destination]
        return sorted(records, key=lambda r: (r.timestamp, r.id))

    async def list_destinations(self) -> Set[Destination]:
        return {r.destination for r in self._records.values()}

    async def purge_unused_destinations(self) -> None:
        used = await self.list_destinations()
        unused = self._destinations - used
        self._destinations &= used
        if unused:
            logger.debug("in-memory repository: purged %d destinations", len(unused))

    async def close(self) -> None:
        pass


def create_repository(config: Config) -> PayloadRepository:
    """
    Default repository factory: PostgreSQL when persistence is requested and a
    database_url is configured, in-memory otherwise.
    """
    if config.persist_payloads:
        if config.database_url:
            # Imported lazily so asyncpg is only loaded when persistence is on.
            from reportrelay.backends.postgres import (  # pylint: disable=import-outside-toplevel
                PostgresPayloadRepository,
            )

            return PostgresPayloadRepository(config.database_url)
        logger.warning(
            "persist_payloads is set but no database_url given; "
            "pending payloads are kept in memory"
        )
    return InMemoryPayloadRepository()
