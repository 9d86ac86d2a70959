"""
Connectivity Checks

The sync reconciler asks a ConnectivityChecker before touching the remote
store; being offline is a deferred retry, not a failure. The
ConnectivityMonitor watches for the offline -> online transition and fires
a callback so pending records are pushed as soon as the network is back.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

import structlog

from finance_tracker.config import SyncSettings, get_settings


logger = structlog.get_logger(__name__)

RestoreCallback = Callable[[], Awaitable[None]]


class ConnectivityChecker(ABC):
    """Answers "can we reach the remote store right now?"."""

    @abstractmethod
    async def is_connected(self) -> bool:
        """Never raises: any probe failure means offline."""
        pass


class TcpConnectivityChecker(ConnectivityChecker):
    """Opens a TCP connection to the configured probe host."""

    def __init__(self, settings: Optional[SyncSettings] = None):
        self._settings = settings or get_settings().sync

    async def is_connected(self) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(
                    self._settings.probe_host,
                    self._settings.probe_port,
                ),
                timeout=self._settings.probe_timeout_seconds,
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug("connectivity_probe_failed", error=str(e))
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True


class StaticConnectivityChecker(ConnectivityChecker):
    """Reports a fixed, switchable state. Used in tests and offline runs."""

    def __init__(self, online: bool = True):
        self.online = online

    async def is_connected(self) -> bool:
        return self.online


class ConnectivityMonitor:
    """
    Polls a checker and calls `on_restore` when connectivity comes back.

    Platforms with native network notifications can skip polling and feed
    transitions in through `notify()`.
    """

    def __init__(
        self,
        checker: ConnectivityChecker,
        on_restore: RestoreCallback,
        poll_interval: Optional[float] = None,
    ):
        self._checker = checker
        self._on_restore = on_restore
        self._poll_interval = (
            poll_interval
            if poll_interval is not None
            else get_settings().sync.poll_interval_seconds
        )
        self._connected: Optional[bool] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def connected(self) -> Optional[bool]:
        """Last observed state; None before the first observation."""
        return self._connected

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def notify(self, connected: bool) -> None:
        """Record an observed state, firing the callback on offline -> online."""
        was_connected = self._connected
        self._connected = connected
        if connected and was_connected is False:
            logger.info("connectivity_restored")
            await self._on_restore()
        elif not connected and was_connected:
            logger.info("connectivity_lost")

    async def check_now(self) -> bool:
        connected = await self._checker.is_connected()
        await self.notify(connected)
        return connected

    async def _poll(self) -> None:
        while True:
            await self.check_now()
            await asyncio.sleep(self._poll_interval)

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._poll())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
