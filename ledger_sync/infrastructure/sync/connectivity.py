"""Connectivity state machine: ONLINE / OFFLINE with a single subscription point"""

import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from ledger_sync.infrastructure.clients.transport import ApiTransport

logger = logging.getLogger(__name__)


class ConnectivityState(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


Listener = Callable[[ConnectivityState], Awaitable[None]]


class ConnectivityMonitor:
    """
    Two-state connectivity machine fed by host events or health probes.

    Starts OFFLINE when the host reports no connectivity at startup, ONLINE
    otherwise. Only transitions are forwarded to the subscriber; repeated
    reports of the current state are ignored.
    """

    def __init__(self, host_reports_online: Optional[bool] = None):
        self.state = ConnectivityState.OFFLINE if host_reports_online is False else ConnectivityState.ONLINE
        self._listener: Optional[Listener] = None

    @property
    def is_online(self) -> bool:
        return self.state == ConnectivityState.ONLINE

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register the one listener (the sync coordinator); returns an unsubscribe callable"""
        if self._listener is not None:
            raise RuntimeError("ConnectivityMonitor already has a subscriber")
        self._listener = listener

        def unsubscribe() -> None:
            self._listener = None

        return unsubscribe

    async def set_online(self, online: bool) -> None:
        """Host connectivity event"""
        new_state = ConnectivityState.ONLINE if online else ConnectivityState.OFFLINE
        if new_state == self.state:
            return

        logger.info("Connectivity changed", extra={"from_state": self.state.value, "to_state": new_state.value})
        self.state = new_state
        if self._listener is not None:
            await self._listener(new_state)

    async def probe(self, transport: ApiTransport) -> ConnectivityState:
        """Derive connectivity from the ledger API health endpoint"""
        await self.set_online(await transport.ping())
        return self.state
