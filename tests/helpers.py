"""Shared fakes for the signaling tests."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeOutbox:
    """Records deliveries instead of writing to sockets."""

    def __init__(self):
        self.sent: list[tuple[str, str, dict]] = []
        self.broadcasts: list[tuple[str, dict]] = []
        self.offline: set[str] = set()

    def deliver(self, connection_ref, event, data):
        if connection_ref in self.offline:
            return False
        self.sent.append((connection_ref, event, data))
        return True

    def broadcast(self, event, data):
        self.broadcasts.append((event, data))

    def to(self, connection_ref):
        return [(event, data) for ref, event, data in self.sent if ref == connection_ref]

    def events(self, connection_ref):
        return [event for event, _ in self.to(connection_ref)]
