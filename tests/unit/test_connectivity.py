"""Unit tests for the connectivity state machine"""

from unittest.mock import AsyncMock

import pytest

from ledger_sync.infrastructure.sync.connectivity import ConnectivityMonitor, ConnectivityState


def test_initial_state_follows_host_report():
    assert ConnectivityMonitor().is_online
    assert ConnectivityMonitor(host_reports_online=True).is_online
    assert not ConnectivityMonitor(host_reports_online=False).is_online


async def test_only_transitions_reach_the_listener():
    monitor = ConnectivityMonitor(host_reports_online=False)
    listener = AsyncMock()
    monitor.subscribe(listener)

    await monitor.set_online(False)
    await monitor.set_online(True)
    await monitor.set_online(True)
    await monitor.set_online(False)

    assert [call.args[0] for call in listener.await_args_list] == [
        ConnectivityState.ONLINE,
        ConnectivityState.OFFLINE,
    ]


def test_single_subscriber():
    monitor = ConnectivityMonitor()
    unsubscribe = monitor.subscribe(AsyncMock())

    with pytest.raises(RuntimeError):
        monitor.subscribe(AsyncMock())

    unsubscribe()
    monitor.subscribe(AsyncMock())


async def test_probe_uses_health_check():
    monitor = ConnectivityMonitor()
    transport = AsyncMock()
    transport.ping.return_value = False

    assert await monitor.probe(transport) == ConnectivityState.OFFLINE

    transport.ping.return_value = True
    assert await monitor.probe(transport) == ConnectivityState.ONLINE
