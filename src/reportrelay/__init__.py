"""
reportrelay - offline-resilient delivery of error reports
"""

__version__ = "0.1.0"

from reportrelay.infrastructure import Infrastructure
from reportrelay.worker import DispatchWorker
from reportrelay.errors import StartupFailure, StorageError
from reportrelay.types import (
    Config,
    Destination,
    MessageKind,
    PayloadRecord,
    WorkerMessage,
)

__all__ = [
    "Config",
    "Destination",
    "DispatchWorker",
    "Infrastructure",
    "MessageKind",
    "PayloadRecord",
    "StartupFailure",
    "StorageError",
    "WorkerMessage",
    "__version__",
]
