"""Tests for connectivity checks and the restore monitor."""

import asyncio

from finance_tracker.config import SyncSettings
from finance_tracker.services.connectivity import (
    ConnectivityMonitor,
    StaticConnectivityChecker,
    TcpConnectivityChecker,
)


class RestoreCounter:
    def __init__(self):
        self.calls = 0

    async def __call__(self):
        self.calls += 1


class TestConnectivityMonitor:
    async def test_fires_on_offline_to_online(self):
        restored = RestoreCounter()
        monitor = ConnectivityMonitor(StaticConnectivityChecker(), restored, poll_interval=1)

        await monitor.notify(False)
        await monitor.notify(True)
        await monitor.notify(True)

        assert restored.calls == 1
        assert monitor.connected is True

    async def test_first_observation_does_not_fire(self):
        restored = RestoreCounter()
        monitor = ConnectivityMonitor(StaticConnectivityChecker(), restored, poll_interval=1)

        await monitor.check_now()

        assert restored.calls == 0
        assert monitor.connected is True

    async def test_polling_detects_restore(self):
        checker = StaticConnectivityChecker(online=False)
        restored = RestoreCounter()
        monitor = ConnectivityMonitor(checker, restored, poll_interval=0.01)

        monitor.start()
        await asyncio.sleep(0.03)
        checker.online = True
        for _ in range(100):
            if restored.calls:
                break
            await asyncio.sleep(0.01)
        await monitor.stop()

        assert restored.calls == 1
        assert not monitor.running


class TestTcpConnectivityChecker:
    async def test_unreachable_host_is_offline(self):
        checker = TcpConnectivityChecker(SyncSettings(
            probe_host="127.0.0.1", probe_port=9, probe_timeout_seconds=0.5,
        ))
        assert await checker.is_connected() is False

    async def test_reachable_host_is_online(self):
        server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            checker = TcpConnectivityChecker(SyncSettings(
                probe_host="127.0.0.1", probe_port=port, probe_timeout_seconds=1,
            ))
            assert await checker.is_connected() is True
        finally:
            server.close()
            await server.wait_closed()
