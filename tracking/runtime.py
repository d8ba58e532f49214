# fieldwatch_project_root/tracking/runtime.py
# Runs the live tracker's event loop beside Streamlit's script thread.

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Awaitable, Callable, Optional, Tuple, TypeVar

from .models import TrackingType
from .selector import LiveTrackingSnapshot, SmartLiveTracker

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackgroundLoop:
    """A dedicated asyncio loop on a daemon thread; all calls are marshalled onto it."""
    def __init__(self, name: str = "fieldwatch-live-loop"):
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._serve, name=name, daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive() and not self._loop.is_closed()

    def run(self, coro: Awaitable[T], timeout: Optional[float] = None) -> T:
        """Runs a coroutine on the loop; a call that overruns `timeout` is cancelled and raises `TimeoutError`."""
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result(timeout)
        except concurrent.futures.TimeoutError as e:
            future.cancel()
            raise TimeoutError(f"Background call did not finish within {timeout}s") from e

    def call(self, fn: Callable[..., T], *args: Any, timeout: Optional[float] = None) -> T:
        async def _invoke() -> T:
            return fn(*args)
        return self.run(_invoke(), timeout)

    async def _cancel_pending(self) -> None:
        current = asyncio.current_task()
        pending = [task for task in asyncio.all_tasks() if task is not current]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        await self._loop.shutdown_asyncgens()

    def stop(self, timeout: float = 5.0) -> None:
        """Cancels and drains every task still on the loop, then stops and closes it."""
        if not self.is_running:
            return
        try:
            self.run(self._cancel_pending(), timeout)
        except TimeoutError:
            logger.warning("(BackgroundLoop) Pending tasks did not finish before shutdown.")
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout)
        if self._thread.is_alive():
            logger.error("(BackgroundLoop) Loop thread did not stop; leaving the loop open.")
            return
        self._loop.close()


class LiveTrackingSession:
    """
    Thread-safe facade over a `SmartLiveTracker` for the Streamlit page.

    Every tracker transition runs on the background loop; the page only
    ever receives immutable snapshots.
    """
    def __init__(self, tracker_factory: Callable[[], SmartLiveTracker] = SmartLiveTracker, loop: Optional[BackgroundLoop] = None):
        self._loop = loop or BackgroundLoop()
        self._tracker: SmartLiveTracker = self._loop.call(tracker_factory)
        self._closed = False

    def update_filters(self, campaign_id: Optional[str], zone_id: Optional[str], team_id: Optional[str], enabled: bool = True) -> Tuple[TrackingType, Optional[str]]:
        return self._loop.call(self._tracker.update_filters, campaign_id, zone_id, team_id, enabled)

    def snapshot(self) -> LiveTrackingSnapshot:
        return self._loop.call(self._tracker.snapshot)

    def reconnect(self) -> None:
        self._loop.call(self._tracker.reconnect)

    def clear_trails(self) -> None:
        self._loop.call(self._tracker.clear_trails)

    def run(self, coro: Awaitable[T], timeout: Optional[float] = None) -> T:
        """Runs a coroutine (e.g. a reference-data fetch) on the session loop."""
        return self._loop.run(coro, timeout)

    def close(self) -> None:
        """Closes the socket (awaiting its close handshake) and shuts the loop down; idempotent."""
        if self._closed:
            return
        self._closed = True
        try:
            self._loop.run(self._tracker.aclose(), timeout=5.0)
        finally:
            self._loop.stop()
        logger.info("(LiveTrackingSession) Closed live tracking session.")
