"""
Errors raised by the report relay.

Delivery failures are not exceptions: senders return False and the worker
absorbs them into its retry policy.
"""


class StorageError(Exception):
    """A payload repository operation failed."""


class StartupFailure(RuntimeError):
    """The dispatch worker thread could not be started."""
