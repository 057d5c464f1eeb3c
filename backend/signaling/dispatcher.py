"""
Realtime event dispatch.

Turns one inbound `{"event", "data"}` message into registry and relay
operations, and reports any failure back to the sending connection as an
event. Nothing here raises to the transport.
"""

import logging
from typing import Callable

from pydantic import BaseModel, ValidationError

from config import DEFAULT_MIME_TYPE
from otp.models import FileDescriptor
from otp.registry import OtpRegistry
from peers.directory import PeerDirectory
from signaling.errors import MalformedRequest, NotFound, SignalingError, TargetOffline
from signaling.lifecycle import ConnectionLifecycleManager
from signaling.models import (
    AnnounceFilePayload,
    AnswerPayload,
    ApprovePayload,
    Event,
    IceCandidatePayload,
    OfferPayload,
    PeerAuthenticatePayload,
    PeerRegisterPayload,
    RegisterOwnerPayload,
    RejectPayload,
    RequestFilePayload,
)
from signaling.relay import SignalingRelay

logger = logging.getLogger(__name__)


def parse(model: type[BaseModel], data) -> BaseModel:
    """Validate an inbound payload, raising MalformedRequest on failure."""
    if not isinstance(data, dict):
        raise MalformedRequest("Event data must be an object")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(
            ".".join(str(part) for part in err["loc"]) for err in e.errors()
        )
        raise MalformedRequest(f"Invalid or missing fields: {fields}")


class EventDispatcher:
    """Routes realtime events from one connection to the signaling components."""

    def __init__(
        self,
        registry: OtpRegistry,
        directory: PeerDirectory,
        relay: SignalingRelay,
        lifecycle: ConnectionLifecycleManager,
    ) -> None:
        self._registry = registry
        self._directory = directory
        self._relay = relay
        self._lifecycle = lifecycle
        self._handlers: dict[str, Callable[[str, dict], None]] = {
            Event.ANNOUNCE_FILE: self._announce_file,
            Event.REGISTER_OWNER: self._register_owner,
            Event.REQUEST_FILE: self._request_file,
            Event.WEBRTC_OFFER: self._relayed(Event.WEBRTC_OFFER, OfferPayload, relay.offer),
            Event.WEBRTC_ANSWER: self._relayed(Event.WEBRTC_ANSWER, AnswerPayload, relay.answer),
            Event.WEBRTC_ICE_CANDIDATE: self._relayed(Event.WEBRTC_ICE_CANDIDATE, IceCandidatePayload, relay.ice_candidate),
            Event.APPROVE_TRANSFER: self._relayed(Event.APPROVE_TRANSFER, ApprovePayload, relay.approve),
            Event.REJECT_TRANSFER: self._relayed(Event.REJECT_TRANSFER, RejectPayload, relay.reject),
            Event.PEER_REGISTER: self._peer_register,
            Event.PEER_AUTHENTICATE: self._peer_authenticate,
            Event.PEER_DISCOVER: self._peer_discover,
        }

    def handle(self, connection_ref: str, event: str, data) -> None:
        handler = self._handlers.get(event)
        if handler is None:
            logger.warning(f"Unknown event '{event}' from {connection_ref}")
            self._relay.send(connection_ref, Event.ERROR, {
                "event": event,
                "message": f"Unknown event: {event}",
            })
            return
        try:
            handler(connection_ref, data if data is not None else {})
        except SignalingError as e:
            logger.warning(f"Rejected '{event}' from {connection_ref}: {e.message}")
            self._relay.send(connection_ref, Event.ERROR, {
                "event": event,
                "message": e.message,
            })

    # --- File announcement ---

    def _announce_file(self, ref: str, data: dict) -> None:
        payload = parse(AnnounceFilePayload, data)
        file = FileDescriptor(
            name=payload.file_name,
            size=payload.file_size,
            mime_type=payload.file_type or DEFAULT_MIME_TYPE,
        )
        code = payload.otp
        if not (code and self._registry.reannounce(code, file, ref)):
            try:
                code = self._registry.announce(file, ref)
            except RuntimeError as e:
                self._relay.send(ref, Event.ERROR, {"event": Event.ANNOUNCE_FILE, "message": str(e)})
                return
        self._relay.send(ref, Event.FILE_ANNOUNCED, {
            "otp": code,
            "fileName": file.name,
            "fileSize": file.size,
            "fileType": file.mime_type,
        })

    def _register_owner(self, ref: str, data: dict) -> None:
        payload = parse(RegisterOwnerPayload, data)
        if self._lifecycle.attach_owner(ref, payload.otp, payload.owner_id):
            self._relay.send(ref, Event.REGISTRATION_SUCCESS, {
                "otp": payload.otp,
                "message": "Registered as file owner",
            })
        else:
            logger.info(f"Owner registration refused for OTP {payload.otp} from {ref}")
            self._relay.send(ref, Event.REGISTRATION_ERROR, {
                "otp": payload.otp,
                "message": "Invalid OTP or owner ID",
            })

    # --- Transfer negotiation ---

    def _request_file(self, ref: str, data: dict) -> None:
        payload = parse(RequestFilePayload, data)
        try:
            self._relay.request_file(ref, payload.otp)
        except SignalingError as e:
            logger.info(f"File request for OTP {payload.otp} from {ref} failed: {e.message}")
            self._relay.send(ref, Event.FILE_REQUEST_FAILED, {
                "otp": payload.otp,
                "error": e.message,
            })

    def _relayed(
        self, event: str, model: type[BaseModel], forward) -> Callable[[str, dict], None]:
        def handler(ref: str, data: dict) -> None:
            payload = parse(model, data)
            try:
                forward(ref, payload)
            except TargetOffline as e:
                target = getattr(payload, "target_id", None) or getattr(payload, "requester_id", None)
                self._relay.send(ref, Event.RELAY_FAILED, {
                    "event": event,
                    "targetId": target,
                    "error": e.message,
                })
        return handler

    # --- Peer registration ---

    def _peer_register(self, ref: str, data: dict) -> None:
        payload = parse(PeerRegisterPayload, data)
        peer = self._directory.assign_identity(ref, payload.username)
        self._relay.send(ref, Event.PEER_REGISTERED, {"peerId": peer.peer_id})

    def _peer_authenticate(self, ref: str, data: dict) -> None:
        payload = parse(PeerAuthenticatePayload, data)
        try:
            peer = self._directory.find_by_peer_id(payload.peer_id)
        except NotFound:
            peer = None
        if peer is None or peer.connection_ref != ref:
            self._relay.send(ref, Event.AUTH_FAILED, {"message": "Invalid peer ID"})
            return
        if not self._registry.is_active(payload.otp):
            self._relay.send(ref, Event.AUTH_FAILED, {"message": "Invalid or expired OTP"})
            return
        self._directory.mark_authenticated(ref)
        logger.info(f"Peer authenticated: {peer.username} ({peer.peer_id})")
        self._relay.send(ref, Event.AUTH_SUCCESS, {"peerId": peer.peer_id})
        self._lifecycle.broadcast_peers()

    def _peer_discover(self, ref: str, data: dict) -> None:
        peers = [p.public_view() for p in self._directory.authenticated()]
        self._relay.send(ref, Event.PEERS_LIST, {"peers": peers})
