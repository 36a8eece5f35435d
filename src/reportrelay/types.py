"""
Types for the report relay.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Optional


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Destination:
    """
    Delivery target: (endpoint, access_token).

    Records are grouped by the full pair, so two tokens posting to the same
    endpoint are two destinations.
    """

    endpoint: str
    access_token: str


@dataclass(frozen=True)
class PayloadRecord:
    """
    One pending delivery attempt. id is assigned by the repository.

    timestamp is stored in UTC; a naive datetime is taken to be UTC already.
    """

    payload_json: str
    destination: Destination
    timestamp: datetime = field(default_factory=utc_now)
    id: Optional[int] = None

    def __post_init__(self) -> None:
        if self.timestamp.tzinfo is None:
            utc = self.timestamp.replace(tzinfo=timezone.utc)
        else:
            utc = self.timestamp.astimezone(timezone.utc)
        object.__setattr__(self, "timestamp", utc)


@dataclass
class Config:
    """
    Bootstrap parameters sent to the dispatch worker.

    persist_payloads selects a durable repository; database_url is the
    PostgreSQL DSN it stores records in.
    """

    endpoint: str
    access_token: str
    persist_payloads: bool = True
    database_url: Optional[str] = None

    @property
    def destination(self) -> Destination:
        """Destination for the configured endpoint and token."""
        return Destination(endpoint=self.endpoint, access_token=self.access_token)


class MessageKind(StrEnum):
    """
    Kind of message consumed by the dispatch worker:
    - SHUTDOWN: final drain, then stop.
    - CONFIGURE: bootstrap services (first one only), then drain everything.
    - SUBMIT: persist a record and drain its destination.
    """

    SHUTDOWN = "shutdown"
    CONFIGURE = "configure"
    SUBMIT = "submit"


@dataclass(frozen=True)
class WorkerMessage:
    """Message for the dispatch worker. Exactly one of config/record matches kind."""

    kind: MessageKind
    config: Optional[Config] = None
    record: Optional[PayloadRecord] = None

    def __post_init__(self) -> None:
        if self.kind == MessageKind.CONFIGURE and self.config is None:
            raise ValueError("configure message requires a config")
        if self.kind == MessageKind.SUBMIT and self.record is None:
            raise ValueError("submit message requires a record")

    @classmethod
    def shutdown(cls) -> "WorkerMessage":
        return cls(kind=MessageKind.SHUTDOWN)

    @classmethod
    def configure(cls, config: Config) -> "WorkerMessage":
        return cls(kind=MessageKind.CONFIGURE, config=config)

    @classmethod
    def submit(cls, record: PayloadRecord) -> "WorkerMessage":
        return cls(kind=MessageKind.SUBMIT, record=record)
