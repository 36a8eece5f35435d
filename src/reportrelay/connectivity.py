"""
Connectivity signal for the dispatch worker.

ConnectivityMonitor keeps an online/offline flag fed by a periodic TCP probe of
the endpoint host, plus a forced-offline override: after a failed send the
worker calls override_as_off_for(seconds) and is_online() reports False until
the override expires, whatever the probe says.
"""

import asyncio
import logging
import time
from typing import Callable, Optional, Protocol
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

_DEFAULT_PORTS = {"http": 80, "https": 443}


class Connectivity(Protocol):
    """Protocol for the connectivity signal consumed by the dispatch worker."""

    def is_online(self) -> bool:
        """True if deliveries may be attempted now."""

    def override_as_off_for(self, seconds: float) -> None:
        """Force is_online() to False for the next `seconds`."""

    async def start(self) -> None:
        """Begin watching the underlying signal."""

    async def close(self) -> None:
        """Stop watching the underlying signal."""


class ConnectivityMonitor:
    """
    Connectivity signal backed by a TCP reachability probe.

    Starts optimistic (online). With host=None no probe runs and the
    underlying state only changes through set_online().
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: int = 443,
        *,
        probe_interval: float = 10.0,
        probe_timeout: float = 3.0,
        now_fn: Callable[[], float] = time.monotonic,
    ) -> None:
        self.host = host
        self.port = port
        self.probe_interval = probe_interval
        self.probe_timeout = probe_timeout
        self._now = now_fn
        self._online = True
        self._override_until: Optional[float] = None
        self._probe_task: Optional[asyncio.Task] = None

    @classmethod
    def for_endpoint(cls, endpoint: str, **kwargs) -> "ConnectivityMonitor":
        """Monitor that probes the host and port of an endpoint URL."""
        parts = urlsplit(endpoint)
        port = parts.port or _DEFAULT_PORTS.get(parts.scheme, 443)
        return cls(parts.hostname, port, **kwargs)

    def is_online(self) -> bool:
        if self._override_until is not None:
            if self._now() < self._override_until:
                return False
            self._override_until = None
            logger.info("connectivity override expired")
        return self._online

    def override_as_off_for(self, seconds: float) -> None:
        self._override_until = self._now() + seconds
        logger.info("connectivity forced offline for %.1fs", seconds)

    def set_online(self, online: bool) -> None:
        """Record the underlying signal; logs transitions."""
        if online != self._online:
            logger.info("connectivity %s", "online" if online else "offline")
        self._online = online

    async def probe(self) -> bool:
        """Open and close one TCP connection to host:port."""
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.probe_timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug("probe %s:%s failed: %s", self.host, self.port, e)
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    async def _probe_loop(self) -> None:
        while True:
            self.set_online(await self.probe())
            await asyncio.sleep(self.probe_interval)

    async def start(self) -> None:
        if self.host is None or self._probe_task is not None:
            return
        self._probe_task = asyncio.create_task(self._probe_loop())
        logger.debug("connectivity probe started for %s:%s", self.host, self.port)

    async def close(self) -> None:
        if self._probe_task:
            self._probe_task.cancel()
            try:
                await self._probe_task
            except asyncio.CancelledError:
                pass
            self._probe_task = None
