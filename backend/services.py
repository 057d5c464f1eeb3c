"""Construction and lifetime of the signaling components."""

import logging
import time

from api.websocket import ConnectionManager
from otp.registry import OtpRegistry
from peers.directory import PeerDirectory
from signaling.dispatcher import EventDispatcher
from signaling.lifecycle import ConnectionLifecycleManager
from signaling.relay import SignalingRelay

logger = logging.getLogger(__name__)


class Services:
    """All process state, built once at startup and handed to every handler."""

    def __init__(self, registry: OtpRegistry | None = None) -> None:
        self.registry = registry if registry is not None else OtpRegistry()
        self.directory = PeerDirectory()
        self.connections = ConnectionManager()
        self.relay = SignalingRelay(self.directory, self.registry, self.connections)
        self.lifecycle = ConnectionLifecycleManager(
            self.directory, self.registry, self.relay, self.connections
        )
        self.dispatcher = EventDispatcher(
            self.registry, self.directory, self.relay, self.lifecycle
        )
        self.registry.on_removed(self.relay.forget_code)
        self._started_at = time.monotonic()

    @property
    def uptime(self) -> float:
        return time.monotonic() - self._started_at

    async def start(self) -> None:
        self._started_at = time.monotonic()
        await self.registry.start()

    async def stop(self) -> None:
        await self.registry.stop()
        self.connections.close_all()
