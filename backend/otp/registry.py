"""
OTP registry: issues, resolves and expires the six-digit codes that
identify an announced file.

All operations are synchronous dict operations, so on the event loop each
one runs to completion before any other handler observes the registry.
The only background activity is the sweep loop, which removes records
older than the TTL and then sleeps again.
"""

import asyncio
import logging
import secrets
import time
from typing import Callable

from config import (
    OTP_LENGTH,
    OTP_MAX_ATTEMPTS,
    OTP_SINGLE_USE,
    OTP_SWEEP_INTERVAL,
    OTP_TTL,
)
from otp.models import FileDescriptor, OtpRecord
from signaling.errors import NotFound

logger = logging.getLogger(__name__)


def generate_code() -> str:
    """Uniform random numeric code without a leading zero (100000-999999)."""
    low = 10 ** (OTP_LENGTH - 1)
    return str(low + secrets.randbelow(9 * low))


class OtpRegistry:
    """In-memory store of active OTP records keyed by code."""

    def __init__(
        self,
        ttl: float = OTP_TTL,
        sweep_interval: float = OTP_SWEEP_INTERVAL,
        single_use: bool = OTP_SINGLE_USE,
        clock: Callable[[], float] = time.time,
        code_factory: Callable[[], str] = generate_code,
    ) -> None:
        self._records: dict[str, OtpRecord] = {}
        self._ttl = ttl
        self._sweep_interval = sweep_interval
        self._single_use = single_use
        self._clock = clock
        self._code_factory = code_factory
        self._sweep_task: asyncio.Task | None = None
        self._on_removed: list = []  # callbacks: fn(code, reason)

    @property
    def ttl(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, code: str) -> bool:
        return code in self._records

    def on_removed(self, callback) -> None:
        """Register callback: fn(code: str, reason: str), called for every purged record."""
        self._on_removed.append(callback)

    def _notify_removed(self, codes: list[str], reason: str) -> None:
        for code in codes:
            for cb in self._on_removed:
                try:
                    cb(code, reason)
                except Exception as e:
                    logger.error(f"OTP removal callback error: {e}")

    # --- Lifecycle ---

    async def start(self) -> None:
        """Start the periodic expiry sweep."""
        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info(
                f"OTP sweep started (ttl={self._ttl}s, interval={self._sweep_interval}s)"
            )

    async def stop(self) -> None:
        """Cancel the sweep task and wait for it to finish."""
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        logger.info("OTP registry stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                self.sweep(self._clock())
            except Exception as e:
                logger.error(f"OTP sweep failed: {e}", exc_info=True)

    # --- Operations ---

    def _new_code(self) -> str:
        for _ in range(OTP_MAX_ATTEMPTS):
            code = self._code_factory()
            if code not in self._records:
                return code
        raise RuntimeError("Could not generate an unused OTP")

    def announce(
        self, file: FileDescriptor, owner_ref: str, provisional: bool = False
    ) -> str:
        """
        Issue a fresh code for `file` owned by `owner_ref`.

        An earlier announcement of the same file by the same owner is
        replaced, so one owner never holds two live codes for one file.
        A provisional owner (an HTTP announcement) may be rebound once to
        the realtime connection that claims it.
        """
        stale = [
            code for code, record in self._records.items()
            if record.owner_ref == owner_ref and record.file == file
        ]
        for code in stale:
            del self._records[code]

        code = self._new_code()
        self._records[code] = OtpRecord(
            code=code,
            owner_ref=owner_ref,
            file=file,
            announced_at=self._clock(),
            provisional=provisional,
        )
        if stale:
            logger.info(f"Replaced OTP {', '.join(stale)} with {code} for {owner_ref}")
            self._notify_removed(stale, "replaced")
        logger.info(f"OTP {code} issued for '{file.name}' ({file.size} bytes) owned by {owner_ref}")
        return code

    def reannounce(self, code: str, file: FileDescriptor, owner_ref: str) -> bool:
        """
        Overwrite the record at `code` in place, restarting its TTL.

        Only the current owner may do this; returns False otherwise or if
        the code is not active.
        """
        record = self._records.get(code)
        if record is None or record.owner_ref != owner_ref:
            return False
        self._records[code] = OtpRecord(
            code=code,
            owner_ref=owner_ref,
            file=file,
            announced_at=self._clock(),
            provisional=record.provisional,
        )
        logger.info(f"OTP {code} re-announced by {owner_ref}")
        return True

    def rebind_owner(
        self, code: str, new_owner_ref: str, expected_owner_ref: str | None = None
    ) -> bool:
        """
        Point `code` at a new owner reference, keeping file and timestamp.

        No-op when the code is absent, already bound to a live
        connection, or when `expected_owner_ref` is given
        and does not match the current owner.
        """
        record = self._records.get(code)
        if record is None or not record.provisional:
            return False
        if expected_owner_ref is not None and record.owner_ref != expected_owner_ref:
            return False
        previous = record.owner_ref
        self._records[code] = record.model_copy(
            update={"owner_ref": new_owner_ref, "provisional": False}
        )
        logger.info(f"OTP {code} rebound from {previous} to {new_owner_ref}")
        return True

    def peek(self, code: str) -> OtpRecord:
        """
        Return the live record for `code` or raise NotFound, never consuming it.

        Lookups never renew the TTL.
        """
        record = self._records.get(code)
        if record is None:
            raise NotFound()
        # The sweep runs on a timer, so a record can outlive its TTL briefly.
        if self._clock() - record.announced_at > self._ttl:
            del self._records[code]
            self._notify_removed([code], "expired")
            raise NotFound()
        return record

    def resolve(self, code: str) -> OtpRecord:
        """Like `peek`, but in single-use mode a successful resolve removes the record."""
        record = self.peek(code)
        if self._single_use:
            del self._records[code]
            self._notify_removed([code], "consumed")
        return record

    def is_active(self, code: str) -> bool:
        """True when `code` would resolve right now. Never consumes it."""
        record = self._records.get(code)
        return record is not None and self._clock() - record.announced_at <= self._ttl

    def active_count(self) -> int:
        """Records still within their TTL, whether or not the sweep has run."""
        return sum(1 for code in list(self._records) if self.is_active(code))

    def expire_owner(self, owner_ref: str) -> list[str]:
        """Remove every record owned by `owner_ref`. Returns the removed codes."""
        removed = [
            code for code, record in self._records.items()
            if record.owner_ref == owner_ref
        ]
        for code in removed:
            del self._records[code]
        if removed:
            logger.info(f"Removed OTP {', '.join(removed)} owned by {owner_ref}")
            self._notify_removed(removed, "owner_disconnected")
        return removed

    def sweep(self, now: float) -> list[str]:
        """Remove every record announced more than the TTL before `now`."""
        expired = [
            code for code, record in self._records.items()
            if now - record.announced_at > self._ttl
        ]
        for code in expired:
            del self._records[code]
        if expired:
            logger.info(f"Cleaned up {len(expired)} expired OTP(s): {', '.join(expired)}")
            self._notify_removed(expired, "expired")
        return expired

    def codes_owned_by(self, owner_ref: str) -> list[str]:
        return [
            code for code, record in self._records.items()
            if record.owner_ref == owner_ref
        ]
