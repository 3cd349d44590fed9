"""Connectivity monitoring: platform online/offline signals plus health probes."""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

import httpx

from admin_notifications.config import settings
from admin_notifications.models.enums import ConnectionStatus

logger = logging.getLogger(__name__)

StatusListener = Callable[[ConnectionStatus], None]

ONLINE_EVENT = "online"
OFFLINE_EVENT = "offline"


class ConnectivitySignals:
    """In-process emitter for the host platform's "online"/"offline" events.

    The host wires its own network notifications to ``go_online`` and
    ``go_offline``; monitors attach with ``add_listener``.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Callable[[], None]]] = {
            ONLINE_EVENT: [],
            OFFLINE_EVENT: [],
        }

    def add_listener(self, event: str, callback: Callable[[], None]) -> None:
        self._listeners[event].append(callback)

    def remove_listener(self, event: str, callback: Callable[[], None]) -> None:
        if callback in self._listeners[event]:
            self._listeners[event].remove(callback)

    def listener_count(self, event: str) -> int:
        return len(self._listeners[event])

    def emit(self, event: str) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback()
            except Exception:
                logger.exception("Error in connectivity %s listener", event)

    def go_online(self) -> None:
        self.emit(ONLINE_EVENT)

    def go_offline(self) -> None:
        self.emit(OFFLINE_EVENT)


class ConnectionMonitor:
    """Tracks reachability of the backend as online / offline / checking.

    A platform "offline" signal is trusted immediately. A platform "online"
    signal only moves to ``checking`` until a HEAD probe of the health
    endpoint confirms it. While online, the endpoint is re-probed every
    ``check_interval`` seconds to catch silent degradation.
    """

    def __init__(
        self,
        endpoint: str = settings.HEALTH_ENDPOINT,
        *,
        base_url: str = settings.API_BASE_URL,
        check_interval: float = settings.CONNECTION_CHECK_INTERVAL_SECONDS,
        timeout: float = settings.CONNECTION_CHECK_TIMEOUT_SECONDS,
        signals: ConnectivitySignals | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if endpoint.startswith(("http://", "https://")):
            self.health_url = endpoint
        else:
            self.health_url = base_url.rstrip("/") + "/" + endpoint.lstrip("/")
        self.check_interval = check_interval
        self.timeout = timeout
        self.signals = signals
        self._transport = transport
        self._status = ConnectionStatus.CHECKING
        self._listeners: list[StatusListener] = []
        self._periodic_task: asyncio.Task | None = None
        self._probe_tasks: set[asyncio.Task] = set()
        # Bumped on every platform offline signal; probes started earlier are stale.
        self._generation = 0
        self._started = False

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    def get_status(self) -> ConnectionStatus:
        return self._status

    # --- Lifecycle ---

    def start(self) -> None:
        """Attach to platform signals and start probing. Needs a running loop."""
        if self._started:
            return
        self._started = True
        if self.signals is not None:
            self.signals.add_listener(ONLINE_EVENT, self.handle_online)
            self.signals.add_listener(OFFLINE_EVENT, self.handle_offline)
        self._spawn(self.check_connection())
        if self.check_interval and self.check_interval > 0:
            self._periodic_task = asyncio.get_running_loop().create_task(
                self._periodic_check()
            )

    def dispose(self) -> None:
        """Stop probing, detach from platform signals and drop subscribers."""
        if self._periodic_task is not None:
            self._periodic_task.cancel()
            self._periodic_task = None
        for task in list(self._probe_tasks):
            task.cancel()
        self._probe_tasks.clear()
        if self.signals is not None:
            self.signals.remove_listener(ONLINE_EVENT, self.handle_online)
            self.signals.remove_listener(OFFLINE_EVENT, self.handle_offline)
        self._listeners.clear()
        self._started = False

    # --- Platform signals ---

    def handle_online(self) -> None:
        self._update_status(ConnectionStatus.CHECKING)
        self._spawn(self.check_connection())

    def handle_offline(self) -> None:
        self._generation += 1
        self._update_status(ConnectionStatus.OFFLINE)

    # --- Probing ---

    async def check_connection(self) -> ConnectionStatus:
        """Probe the health endpoint; any 2xx response means online."""
        generation = self._generation
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.head(self.health_url)
            reachable = resp.is_success
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("Health probe to %s failed: %s", self.health_url, exc)
            reachable = False

        if generation != self._generation:
            # An offline signal arrived while the probe was in flight.
            return self._status
        self._update_status(ConnectionStatus.ONLINE if reachable else ConnectionStatus.OFFLINE)
        return self._status

    async def force_check(self) -> ConnectionStatus:
        self._update_status(ConnectionStatus.CHECKING)
        return await self.check_connection()

    async def _periodic_check(self) -> None:
        while True:
            await asyncio.sleep(self.check_interval)
            if self._status == ConnectionStatus.ONLINE:
                await self.check_connection()

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop; skipping connection probe")
            return
        task = loop.create_task(coro)
        self._probe_tasks.add(task)
        task.add_done_callback(self._probe_tasks.discard)

    # --- Subscribers ---

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register ``listener``; it is called with the current status right away."""
        self._listeners.append(listener)
        self._call_listener(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _update_status(self, new_status: ConnectionStatus) -> None:
        if self._status == new_status:
            return
        logger.info("Connection status: %s -> %s", self._status.value, new_status.value)
        self._status = new_status
        for listener in list(self._listeners):
            self._call_listener(listener)

    def _call_listener(self, listener: StatusListener) -> None:
        try:
            listener(self._status)
        except Exception:
            logger.exception("Error in connection status listener")
