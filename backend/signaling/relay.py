"""
Signaling relay: forwards WebRTC handshake and transfer-approval messages
between two connections.

Payloads are passed through untouched and tagged with the sender's
reference so the recipient can address its reply. A target that is not
connected is reported to the caller as TargetOffline; nothing is queued
for later delivery or retried.
"""

import logging
from typing import Any, Protocol

from otp.registry import OtpRegistry
from peers.directory import PeerDirectory
from signaling.errors import NotFound, TargetOffline
from signaling.models import (
    AnswerPayload,
    ApprovePayload,
    Event,
    IceCandidatePayload,
    OfferPayload,
    PendingTransfer,
    RejectPayload,
)

logger = logging.getLogger(__name__)

DEFAULT_REJECT_REASON = "Transfer rejected by owner"


class Outbox(Protocol):
    """Send capability for connection references."""

    def deliver(self, connection_ref: str, event: str, data: dict) -> bool:
        ...


class SignalingRelay:
    """Point-in-time message forwarding between peers."""

    def __init__(
        self, directory: PeerDirectory, registry: OtpRegistry, outbox: Outbox
    ) -> None:
        self._directory = directory
        self._registry = registry
        self._outbox = outbox
        self._pending: dict[tuple[str, str], PendingTransfer] = {}

    def pending(self) -> list[PendingTransfer]:
        return list(self._pending.values())

    def _forward(self, sender_ref: str, target_ref: str, event: str, data: dict) -> None:
        if target_ref not in self._directory:
            logger.warning(f"Relay {event} from {sender_ref}: target {target_ref} not connected")
            raise TargetOffline()
        if not self._outbox.deliver(target_ref, event, data):
            logger.warning(f"Relay {event} from {sender_ref}: delivery to {target_ref} failed")
            raise TargetOffline()
        logger.debug(f"Relayed {event}: {sender_ref} -> {target_ref}")

    # --- Transfer negotiation ---

    def request_file(self, requester_ref: str, code: str) -> PendingTransfer:
        """
        Resolve `code` and notify its owner that `requester_ref` wants the file.

        Raises NotFound for an unknown or expired code and TargetOffline when
        the owner's connection is gone (the requester should re-resolve).
        """
        record = self._registry.resolve(code)
        try:
            self._forward(requester_ref, record.owner_ref, Event.FILE_REQUEST_RECEIVED, {
                "otp": code,
                "requesterId": requester_ref,
                "fileName": record.file.name,
                "fileSize": record.file.size,
                "fileType": record.file.mime_type,
            })
        except TargetOffline:
            raise TargetOffline("File owner is offline")

        transfer = PendingTransfer(
            code=code, requester_ref=requester_ref, owner_ref=record.owner_ref
        )
        self._pending[(code, requester_ref)] = transfer
        logger.info(f"File request for OTP {code} forwarded: {requester_ref} -> {record.owner_ref}")
        return transfer

    def approve(self, owner_ref: str, payload: ApprovePayload) -> None:
        """Only the owner a request was forwarded to may approve it."""
        transfer = self._pending.get((payload.otp, payload.requester_id))
        if transfer is None or transfer.owner_ref != owner_ref:
            logger.warning(
                f"Approval from {owner_ref} for OTP {payload.otp} matches no pending request"
            )
            raise NotFound("No pending request to approve")
        self._forward(owner_ref, payload.requester_id, Event.FILE_TRANSFER_APPROVED, {
            "ownerId": owner_ref,
            "otp": payload.otp,
        })
        logger.info(f"Transfer approved by {owner_ref} for OTP {payload.otp}")

    def reject(self, owner_ref: str, payload: RejectPayload) -> None:
        reason = payload.reason or DEFAULT_REJECT_REASON
        self._pending.pop((payload.otp, payload.requester_id), None)
        self._forward(owner_ref, payload.requester_id, Event.FILE_TRANSFER_REJECTED, {
            "ownerId": owner_ref,
            "otp": payload.otp,
            "reason": reason,
        })
        logger.info(f"Transfer rejected by {owner_ref} for OTP {payload.otp}: {reason}")

    # --- WebRTC handshake ---

    def offer(self, sender_ref: str, payload: OfferPayload) -> None:
        self._forward(sender_ref, payload.target_id, Event.WEBRTC_OFFER_RECEIVED, {
            "offer": payload.offer,
            "senderId": sender_ref,
            "otp": payload.otp,
        })

    def answer(self, sender_ref: str, payload: AnswerPayload) -> None:
        self._forward(sender_ref, payload.target_id, Event.WEBRTC_ANSWER_RECEIVED, {
            "answer": payload.answer,
            "senderId": sender_ref,
        })

    def ice_candidate(self, sender_ref: str, payload: IceCandidatePayload) -> None:
        self._forward(sender_ref, payload.target_id, Event.WEBRTC_ICE_CANDIDATE_RECEIVED, {
            "candidate": payload.candidate,
            "senderId": sender_ref,
        })

    # --- Cleanup ---

    def drop_peer(self, connection_ref: str) -> list[PendingTransfer]:
        """
        Forget every negotiation `connection_ref` takes part in and tell the
        other side, best effort.
        """
        dropped = [
            t for t in self._pending.values()
            if connection_ref in (t.requester_ref, t.owner_ref)
        ]
        for transfer in dropped:
            del self._pending[(transfer.code, transfer.requester_ref)]
            other = (
                transfer.owner_ref
                if transfer.requester_ref == connection_ref
                else transfer.requester_ref
            )
            delivered = self._outbox.deliver(other, Event.PEER_DISCONNECTED, {
                "peerId": connection_ref,
                "otp": transfer.code,
            })
            if not delivered:
                logger.debug(f"Could not notify {other} that {connection_ref} left")
        return dropped

    def forget_code(self, code: str, reason: str) -> None:
        """Registry removal hook. A consumed single-use code keeps its negotiation."""
        if reason == "consumed":
            return
        for key in [k for k in self._pending if k[0] == code]:
            del self._pending[key]

    def send(self, connection_ref: str, event: str, data: dict[str, Any]) -> bool:
        """Reply to a connection directly."""
        return self._outbox.deliver(connection_ref, event, data)
