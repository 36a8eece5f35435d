"""
Infrastructure: runs the dispatch worker in its own thread and event loop.

Usage:
    infra = await Infrastructure.start(Config(endpoint=url, access_token=token))
    infra.submit(PayloadRecord(payload_json, destination))
    await infra.dispose()

submit() is thread-safe and never waits for delivery. The worker thread owns
its loop; the only object crossing the boundary is the inbox queue, which is
fed through loop.call_soon_threadsafe.
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Callable, Optional

from reportrelay.errors import StartupFailure
from reportrelay.types import Config, PayloadRecord, WorkerMessage
from reportrelay.worker import DispatchWorker

logger = logging.getLogger(__name__)

WorkerFactory = Callable[[], DispatchWorker]


async def _worker_main(
    worker: DispatchWorker, ready: concurrent.futures.Future
) -> None:
    """Entry point on the worker thread: hand back the inbox, then run."""
    inbox: asyncio.Queue = asyncio.Queue()
    ready.set_result((asyncio.get_running_loop(), inbox, asyncio.current_task()))
    await worker.run(inbox)


def _thread_main(worker: DispatchWorker, ready: concurrent.futures.Future) -> None:
    try:
        asyncio.run(_worker_main(worker, ready))
    except asyncio.CancelledError:
        logger.warning("dispatch worker was cancelled")
    except Exception as e:  # pylint: disable=broad-exception-caught
        if not ready.done():
            ready.set_exception(e)
        logger.exception("dispatch worker crashed")


class Infrastructure:
    """
    Caller-side handle of the dispatch worker.

    Use start() to create one; submit() records; dispose() to stop the worker
    after a final drain.
    """

    def __init__(
        self,
        thread: threading.Thread,
        loop: asyncio.AbstractEventLoop,
        inbox: asyncio.Queue,
        task: asyncio.Task,
        *,
        shutdown_timeout: float = 5.0,
    ) -> None:
        self._thread = thread
        self._loop = loop
        self._inbox = inbox
        self._task = task
        self.shutdown_timeout = shutdown_timeout
        self._disposed = False

    @classmethod
    async def start(
        cls,
        config: Config,
        *,
        worker_factory: WorkerFactory = DispatchWorker,
        shutdown_timeout: float = 5.0,
        startup_timeout: float = 5.0,
    ) -> "Infrastructure":
        """Start the worker thread, wait for its inbox, and send it config."""
        ready: concurrent.futures.Future = concurrent.futures.Future()
        worker = worker_factory()
        thread = threading.Thread(
            target=_thread_main,
            args=(worker, ready),
            name="reportrelay-dispatch",
            daemon=True,
        )
        try:
            thread.start()
        except RuntimeError as e:
            raise StartupFailure(f"could not start dispatch worker thread: {e}") from e
        try:
            loop, inbox, task = await asyncio.wait_for(
                asyncio.wrap_future(ready), timeout=startup_timeout
            )
        except Exception as e:
            raise StartupFailure(f"dispatch worker handshake failed: {e}") from e

        infra = cls(thread, loop, inbox, task, shutdown_timeout=shutdown_timeout)
        if not infra._send(WorkerMessage.configure(config)):
            logger.error("dispatch worker exited before it was configured")
        logger.info("dispatch worker started (thread=%s)", thread.name)
        return infra

    def _send(self, message: Optional[WorkerMessage]) -> bool:
        """Queue message on the worker loop. False if that loop is closed."""
        try:
            self._loop.call_soon_threadsafe(self._inbox.put_nowait, message)
        except RuntimeError:
            return False
        return True

    def submit(self, record: PayloadRecord) -> None:
        """
        Queue record for delivery. Returns immediately. If the worker thread
        has exited, the record is logged and dropped.
        """
        if self._disposed:
            raise RuntimeError("Infrastructure disposed")
        if not self._send(WorkerMessage.submit(record)):
            logger.error(
                "dispatch worker is not running; dropping record for %s",
                record.destination.endpoint,
            )

    def is_running(self) -> bool:
        """True while the worker thread is alive."""
        return self._thread.is_alive()

    async def dispose(self) -> None:
        """
        Ask the worker to drain and stop; cancel it if it has not stopped
        within shutdown_timeout. Calling again is a no-op.
        """
        if self._disposed:
            return
        self._disposed = True
        self._send(None)
        await asyncio.to_thread(self._thread.join, self.shutdown_timeout)
        if not self._thread.is_alive():
            logger.info("dispatch worker disposed")
            return

        logger.warning(
            "dispatch worker did not stop within %.1fs, cancelling",
            self.shutdown_timeout,
        )
        try:
            self._loop.call_soon_threadsafe(self._task.cancel)
        except RuntimeError:
            pass
        await asyncio.to_thread(self._thread.join, self.shutdown_timeout)
