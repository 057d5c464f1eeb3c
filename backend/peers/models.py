"""Pydantic models for connected peers."""

from pydantic import BaseModel


class Peer(BaseModel):
    """A live realtime connection."""
    connection_ref: str
    connected_at: float  # Unix timestamp
    peer_id: str | None = None  # assigned on peer:register
    username: str | None = None
    is_authenticated: bool = False

    @property
    def identity(self) -> str | None:
        return self.username

    def public_view(self) -> dict:
        """The shape exposed to discovery queries."""
        return {
            "id": self.peer_id,
            "username": self.username,
            "connectedAt": self.connected_at,
        }
