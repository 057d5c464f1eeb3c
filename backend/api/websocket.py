"""WebSocket transport: connection references and ordered per-connection delivery."""

import asyncio
import json
import logging
import uuid

from fastapi import WebSocket

from config import OUTBOX_SIZE
from signaling.models import Event

logger = logging.getLogger(__name__)


def encode(event: str, data: dict) -> str:
    return json.dumps({"event": event, "data": data})


def decode(message: str) -> tuple[str, dict | None]:
    """Split a `{"event", "data"}` frame. Raises ValueError on anything else."""
    payload = json.loads(message)
    if not isinstance(payload, dict) or not isinstance(payload.get("event"), str):
        raise ValueError("Frame must be an object with a string 'event'")
    return payload["event"], payload.get("data")


class PeerChannel:
    """
    Outbound side of one connection. Messages are queued and written by a
    single task, so they leave in the order they were delivered.
    """

    def __init__(self, connection_ref: str, websocket: WebSocket, maxsize: int = OUTBOX_SIZE) -> None:
        self.connection_ref = connection_ref
        self._websocket = websocket
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        self._task = asyncio.create_task(self._writer())

    def put(self, message: str) -> bool:
        if self._task is None or self._task.done():
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(f"Outbox full for {self.connection_ref}, dropping message")
            return False
        return True

    def close(self) -> None:
        if self._task:
            self._task.cancel()

    async def _writer(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self._websocket.send_text(message)
            except Exception as e:
                logger.debug(f"Send to {self.connection_ref} failed: {e}")
                return


class ConnectionManager:
    """Maps opaque connection references to their WebSocket send capability."""

    def __init__(self) -> None:
        self._channels: dict[str, PeerChannel] = {}

    def __len__(self) -> int:
        return len(self._channels)

    async def connect(self, websocket: WebSocket) -> str:
        """Accept the socket and return its new connection reference."""
        await websocket.accept()
        connection_ref = uuid.uuid4().hex
        channel = PeerChannel(connection_ref, websocket)
        channel.start()
        self._channels[connection_ref] = channel
        self.deliver(connection_ref, Event.CONNECTED, {"connectionRef": connection_ref})
        logger.info(f"WebSocket client connected: {connection_ref}. Total: {len(self._channels)}")
        return connection_ref

    def release(self, connection_ref: str) -> None:
        channel = self._channels.pop(connection_ref, None)
        if channel:
            channel.close()
        logger.info(f"WebSocket client disconnected: {connection_ref}. Total: {len(self._channels)}")

    def deliver(self, connection_ref: str, event: str, data: dict) -> bool:
        """Queue an event for one connection. False if it is not connected."""
        channel = self._channels.get(connection_ref)
        if channel is None:
            return False
        return channel.put(encode(event, data))

    def broadcast(self, event: str, data: dict) -> None:
        """Queue an event for every connected client."""
        message = encode(event, data)
        for channel in list(self._channels.values()):
            channel.put(message)

    def close_all(self) -> None:
        for channel in self._channels.values():
            channel.close()
        self._channels.clear()
