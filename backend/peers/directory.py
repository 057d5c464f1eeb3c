"""Directory of currently connected peers, keyed by connection reference."""

import logging
import time
import uuid
from typing import Callable, Iterator

from peers.models import Peer
from signaling.errors import NotFound

logger = logging.getLogger(__name__)


class PeerDirectory:
    """Stores and looks up peers. Entries are created and destroyed by the lifecycle manager."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._peers: dict[str, Peer] = {}
        self._clock = clock

    def __len__(self) -> int:
        return len(self._peers)

    def __contains__(self, connection_ref: str) -> bool:
        return connection_ref in self._peers

    def register(self, connection_ref: str) -> Peer:
        """Create an entry. Registering a known reference overwrites it."""
        if connection_ref in self._peers:
            logger.warning(f"Connection {connection_ref} registered twice, overwriting")
        peer = Peer(connection_ref=connection_ref, connected_at=self._clock())
        self._peers[connection_ref] = peer
        return peer

    def get(self, connection_ref: str) -> Peer:
        peer = self._peers.get(connection_ref)
        if peer is None:
            raise NotFound(f"Unknown connection {connection_ref}")
        return peer

    def remove(self, connection_ref: str) -> bool:
        return self._peers.pop(connection_ref, None) is not None

    def authenticated(self) -> list[Peer]:
        return list(self.list(lambda p: p.is_authenticated))

    # --- Extended identity ---

    def assign_identity(self, connection_ref: str, username: str) -> Peer:
        """Give a connected peer a generated peer id and a display name."""
        peer = self.get(connection_ref).model_copy(
            update={"peer_id": str(uuid.uuid4()), "username": username}
        )
        self._peers[connection_ref] = peer
        logger.info(f"Peer registered: {username} ({peer.peer_id})")
        return peer

    def mark_authenticated(self, connection_ref: str) -> Peer:
        peer = self.get(connection_ref).model_copy(update={"is_authenticated": True})
        self._peers[connection_ref] = peer
        return peer

    def find_by_peer_id(self, peer_id: str) -> Peer:
        for peer in self.list(lambda p: p.peer_id == peer_id):
            return peer
        raise NotFound(f"Unknown peer {peer_id}")

    # Defined last: the name shadows the builtin inside the class body.
    def list(self, predicate: Callable[[Peer], bool] | None = None) -> Iterator[Peer]:
        """Lazily yield peers matching `predicate` (all peers when omitted)."""
        for peer in list(self._peers.values()):
            if predicate is None or predicate(peer):
                yield peer
