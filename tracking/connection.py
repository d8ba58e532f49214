# fieldwatch_project_root/tracking/connection.py
# LIVE TRACKING - STREAM CONNECTION LIFECYCLE & RECONNECT POLICY

"""
Owns the single live websocket subscription of one tracking consumer.

Every socket event (open, message, error, close) and every reconnect timer
is an atomic state transition on the asyncio event loop. Each connection
attempt gets a generation number; callbacks from a socket that has since
been replaced or torn down carry a stale generation and are ignored.
"""

import asyncio
import json
import logging
import time
from dataclasses import replace
from typing import Any, AsyncContextManager, Callable, List, Optional, Union
from urllib.parse import quote

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, WebSocketException

from config import settings
from config.settings import TrackingConfig
from .auth import TokenProvider, read_auth_token
from .models import (LOCATION_UPDATE_TYPE, ConnectionState, ConnectionStatus,
                     LocationUpdate, TrackingType)

logger = logging.getLogger(__name__)

ERROR_NO_TOKEN = "No authentication token"
ERROR_CONNECTION = "Connection error occurred"
ERROR_MAX_ATTEMPTS = "Max reconnection attempts reached"

ConnectFactory = Callable[[str], AsyncContextManager[Any]]
Scheduler = Callable[[float, Callable[[], None]], Any]
StatusObserver = Callable[[ConnectionStatus], None]


# --- Pure Helpers ---
def compute_backoff_delay_ms(attempt: int, base_ms: int = 1000, max_ms: int = 30000) -> int:
    """Exponential backoff: min(base * 2^attempt, max)."""
    return int(min(base_ms * (2 ** attempt), max_ms))


def build_stream_url(
    tracking_type: Union[TrackingType, str],
    scope_id: Optional[str],
    token: str,
    ws_base: Optional[str] = None
) -> str:
    tracking_type = TrackingType(tracking_type)
    url = f"{(ws_base or settings.WS_BASE_URL).rstrip('/')}{settings.LIVE_ENDPOINTS[tracking_type.value]}"
    if scope_id:
        url += f"/{quote(str(scope_id), safe='')}"
    return f"{url}?token={quote(token, safe='')}"


def _redact(url: str) -> str:
    return url.split("?token=", 1)[0] + "?token=***"


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


def _default_connect_factory(url: str) -> AsyncContextManager[Any]:
    cfg = settings.TRACKING
    return websockets.connect(
        url, max_size=cfg.max_message_size, compression=None,
        ping_interval=cfg.ping_interval_s, ping_timeout=cfg.ping_timeout_s
    )


def _loop_scheduler(delay_s: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    return asyncio.get_running_loop().call_later(delay_s, callback)


class ConnectionManager:
    """
    Maintains at most one live stream subscription for a (tracking type,
    scope id) pair, with exponential-backoff reconnects.

    Transport failures never raise to the caller; they surface through
    `status` and the observers registered with `subscribe`.

    Usage:
        async with ConnectionManager(on_update=aggregator.ingest) as conn:
            conn.configure(TrackingType.ZONE, zone_id)
            ...
    """
    def __init__(
        self,
        on_update: Callable[[LocationUpdate], None],
        token_provider: TokenProvider = read_auth_token,
        connect_factory: Optional[ConnectFactory] = None,
        clock: Optional[Callable[[], float]] = None,
        scheduler: Optional[Scheduler] = None,
        ws_base: Optional[str] = None,
        config: Optional[TrackingConfig] = None,
    ):
        self._on_update = on_update
        self._token_provider = token_provider
        self._connect_factory = connect_factory or _default_connect_factory
        self._clock = clock or _monotonic_ms
        self._scheduler = scheduler or _loop_scheduler
        self._ws_base = ws_base
        self.config = config or settings.TRACKING

        self._tracking_type: Optional[TrackingType] = None
        self._scope_id: Optional[str] = None
        self._enabled = False
        self._alive = True

        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[Any] = None
        self._attempts = 0
        self._connection_start_ms = 0.0

        self._status = ConnectionStatus()
        self._observers: List[StatusObserver] = []

    # --- Public API ---
    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def has_pending_reconnect(self) -> bool:
        return self._reconnect_handle is not None

    def subscribe(self, observer: StatusObserver) -> Callable[[], None]:
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)
        return _unsubscribe

    def configure(self, tracking_type: Union[TrackingType, str], scope_id: Optional[str] = None, enabled: bool = True) -> None:
        """Points the subscription at a scope; a changed scope is a full resubscription."""
        if not self._alive:
            return
        tracking_type = TrackingType(tracking_type)
        scope_id = scope_id or None
        scope_changed = (tracking_type, scope_id) != (self._tracking_type, self._scope_id)
        was_enabled = self._enabled
        self._tracking_type, self._scope_id, self._enabled = tracking_type, scope_id, enabled

        if not enabled:
            if was_enabled:
                logger.info(f"(ConnectionManager) Tracking disabled; closing {tracking_type.value} stream.")
            self._stop()
            self._publish(state=ConnectionState.IDLE)
            return

        if scope_changed or not was_enabled:
            self._attempts = 0
            self.connect()

    def connect(self) -> None:
        """Closes any current socket and opens a new one to the configured scope."""
        if not self._alive or not self._enabled or self._tracking_type is None:
            return

        self._stop()
        self._connection_start_ms = 0.0

        token = self._token_provider()
        if not token:
            logger.warning("(ConnectionManager) No auth token found, skipping connection.")
            self._publish(state=ConnectionState.DISCONNECTED, error=ERROR_NO_TOKEN)
            return

        url = build_stream_url(self._tracking_type, self._scope_id, token, self._ws_base)
        logger.info(f"(ConnectionManager) Connecting to {self._tracking_type.value} tracking: {_redact(url)}")
        generation = self._generation
        self._publish(state=ConnectionState.CONNECTING)
        self._task = asyncio.get_running_loop().create_task(self._run_session(url, generation))

    def reconnect(self) -> None:
        """Manual reconnect: restores the full retry budget and connects now."""
        self._attempts = 0
        self._connection_start_ms = 0.0
        self._publish(error=None)
        self.connect()

    def teardown(self) -> None:
        """Cancels any pending reconnect and closes the socket; no state changes follow."""
        if not self._alive:
            return
        self._stop()
        self._publish(state=ConnectionState.IDLE)
        self._alive = False
        self._observers.clear()
        logger.debug("(ConnectionManager) Torn down.")

    async def join(self) -> None:
        """Waits until the current socket session (if any) has finished."""
        task = self._task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def __aenter__(self) -> 'ConnectionManager':
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Tears down and waits for the socket's close handshake to finish."""
        task = self._task
        self.teardown()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    # --- Session Driver ---
    async def _run_session(self, url: str, generation: int) -> None:
        close_code: Optional[int] = None
        close_reason = ""
        try:
            async with self._connect_factory(url) as ws:
                self._handle_open(generation)
                async for raw in ws:
                    self._handle_message(generation, raw)
                close_code = getattr(ws, "close_code", None)
                close_reason = getattr(ws, "close_reason", None) or ""
        except asyncio.CancelledError:
            # Requested close: the consumer replaced or tore down this socket.
            raise
        except ConnectionClosed as e:
            received = getattr(e, "rcvd", None)
            close_code = received.code if received is not None else 1006
            close_reason = received.reason if received is not None else ""
            self._handle_error(generation, e)
        except (WebSocketException, OSError, asyncio.TimeoutError) as e:
            close_code = 1006
            self._handle_error(generation, e)
        self._handle_close(generation, close_code, close_reason)

    # --- State Transitions ---
    def _is_current(self, generation: int) -> bool:
        return self._alive and generation == self._generation

    def _handle_open(self, generation: int) -> None:
        if not self._is_current(generation):
            return
        logger.info(f"(ConnectionManager) Connected to {self._tracking_type.value} tracking.")
        self._connection_start_ms = self._clock()
        self._publish(state=ConnectionState.CONNECTED, error=None)

    def _handle_message(self, generation: int, raw: Union[str, bytes]) -> None:
        if not self._is_current(generation):
            return
        try:
            payload = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
            logger.error(f"(ConnectionManager) Failed to parse message: {e}")
            return

        if not isinstance(payload, dict) or payload.get("type") != LOCATION_UPDATE_TYPE:
            return
        try:
            update = LocationUpdate.model_validate(payload)
        except ValidationError as e:
            logger.error(f"(ConnectionManager) Dropping malformed location update: {e.error_count()} validation error(s).")
            return

        try:
            self._on_update(update)
        except Exception as e:
            logger.error(f"(ConnectionManager) Location update handler failed: {e}", exc_info=True)

    def _handle_error(self, generation: int, exc: BaseException) -> None:
        if not self._is_current(generation):
            return
        logger.warning(f"(ConnectionManager) Connection error on {self._tracking_type.value} endpoint: {exc}")
        self._publish(error=ERROR_CONNECTION)

    def _handle_close(self, generation: int, code: Optional[int], reason: str) -> None:
        if not self._is_current(generation):
            return
        self._task = None
        reason = reason or ("Normal closure" if code == 1000 else f"Code: {code}")
        logger.info(f"(ConnectionManager) Connection closed: {reason}")

        duration_ms = self._clock() - self._connection_start_ms if self._connection_start_ms > 0 else 0.0
        if duration_ms > self.config.stability_threshold_ms:
            self._attempts = 0

        if self._attempts < self.config.max_reconnect_attempts and self._enabled:
            delay_ms = compute_backoff_delay_ms(self._attempts, self.config.backoff_base_ms, self.config.backoff_max_ms)
            logger.info(f"(ConnectionManager) Reconnecting in {delay_ms / 1000:g}s (attempt {self._attempts + 1}/{self.config.max_reconnect_attempts})...")
            self._publish(state=ConnectionState.RECONNECT_SCHEDULED)
            self._reconnect_handle = self._scheduler(delay_ms / 1000.0, self._on_reconnect_timer)
        elif self._attempts >= self.config.max_reconnect_attempts:
            logger.warning("(ConnectionManager) Max reconnection attempts reached, giving up.")
            self._publish(state=ConnectionState.FAILED, error=ERROR_MAX_ATTEMPTS)
        else:
            self._publish(state=ConnectionState.DISCONNECTED)

    def _on_reconnect_timer(self) -> None:
        self._reconnect_handle = None
        if not self._alive:
            return
        self._attempts += 1
        self.connect()

    def _stop(self) -> None:
        """Cancels the reconnect timer and the socket task, invalidating their callbacks."""
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
        self._generation += 1
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    def _publish(self, **changes: Any) -> None:
        if not self._alive:
            return
        self._status = replace(
            self._status, reconnect_attempts=self._attempts,
            tracking_type=self._tracking_type, scope_id=self._scope_id, **changes
        )
        for observer in list(self._observers):
            try:
                observer(self._status)
            except Exception as e:
                logger.error(f"(ConnectionManager) Status observer failed: {e}", exc_info=True)
