"""
Connection lifecycle: registers peers when their realtime channel opens
and cascades cleanup when it closes.
"""

import logging
from enum import Enum

from otp.registry import OtpRegistry
from peers.directory import PeerDirectory
from peers.models import Peer
from signaling.models import Event
from signaling.relay import SignalingRelay

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class ConnectionLifecycleManager:
    """Sole creator and destroyer of Peer Directory entries."""

    def __init__(
        self,
        directory: PeerDirectory,
        registry: OtpRegistry,
        relay: SignalingRelay,
        outbox,
    ) -> None:
        self._directory = directory
        self._registry = registry
        self._relay = relay
        self._outbox = outbox  # needs deliver() and broadcast()

    def state(self, connection_ref: str) -> ConnectionState:
        if connection_ref in self._directory:
            return ConnectionState.CONNECTED
        return ConnectionState.DISCONNECTED

    def connect(self, connection_ref: str) -> Peer:
        peer = self._directory.register(connection_ref)
        logger.info(f"Peer connected: {connection_ref} (total: {len(self._directory)})")
        return peer

    def attach_owner(
        self, connection_ref: str, code: str, provisional_ref: str
    ) -> bool:
        """
        Rebind an HTTP-announced code to the live connection that presents it.

        The caller must present the provisional owner id handed out by the
        announce endpoint. Re-attaching a code the connection already owns
        succeeds.
        """
        if code in self._registry.codes_owned_by(connection_ref):
            return True
        return self._registry.rebind_owner(
            code, connection_ref, expected_owner_ref=provisional_ref
        )

    def disconnect(self, connection_ref: str) -> list[str]:
        """
        Connected -> Disconnected. Runs without yielding to the event loop,
        so no other handler sees a half-cleaned state. Returns the codes that
        stopped resolving. Calling it again for the same reference is a no-op.
        """
        if self.state(connection_ref) is ConnectionState.DISCONNECTED:
            return []

        peer = self._directory.get(connection_ref)
        self._directory.remove(connection_ref)
        self._relay.drop_peer(connection_ref)
        expired = self._registry.expire_owner(connection_ref)

        logger.info(
            f"Peer disconnected: {connection_ref} "
            f"(released {len(expired)} OTP(s), total: {len(self._directory)})"
        )
        if peer.is_authenticated:
            self.broadcast_peers()
        return expired

    def broadcast_peers(self) -> None:
        peers = [p.public_view() for p in self._directory.authenticated()]
        self._outbox.broadcast(Event.PEERS_UPDATED, {"peers": peers})
