"""Pydantic models for realtime signaling events."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Event:
    """Realtime event names, as sent on the wire."""
    # peer -> server
    ANNOUNCE_FILE = "announce-file"
    REGISTER_OWNER = "register-owner"
    REQUEST_FILE = "request-file"
    WEBRTC_OFFER = "webrtc-offer"
    WEBRTC_ANSWER = "webrtc-answer"
    WEBRTC_ICE_CANDIDATE = "webrtc-ice-candidate"
    APPROVE_TRANSFER = "approve-transfer"
    REJECT_TRANSFER = "reject-transfer"
    PEER_REGISTER = "peer:register"
    PEER_AUTHENTICATE = "peer:authenticate"
    PEER_DISCOVER = "peer:discover"

    # server -> peer
    CONNECTED = "connected"
    FILE_ANNOUNCED = "file-announced"
    REGISTRATION_SUCCESS = "registration-success"
    REGISTRATION_ERROR = "registration-error"
    FILE_REQUEST_RECEIVED = "file-request-received"
    FILE_REQUEST_FAILED = "file-request-failed"
    WEBRTC_OFFER_RECEIVED = "webrtc-offer-received"
    WEBRTC_ANSWER_RECEIVED = "webrtc-answer-received"
    WEBRTC_ICE_CANDIDATE_RECEIVED = "webrtc-ice-candidate-received"
    FILE_TRANSFER_APPROVED = "file-transfer-approved"
    FILE_TRANSFER_REJECTED = "file-transfer-rejected"
    RELAY_FAILED = "relay-failed"
    PEER_DISCONNECTED = "peer-disconnected"
    PEER_REGISTERED = "peer:registered"
    AUTH_SUCCESS = "auth:success"
    AUTH_FAILED = "auth:failed"
    PEERS_LIST = "peers:list"
    PEERS_UPDATED = "peers:updated"
    ERROR = "error"


class WireModel(BaseModel):
    """Inbound payloads use camelCase keys on the wire."""
    model_config = ConfigDict(populate_by_name=True)


class AnnounceFilePayload(WireModel):
    file_name: str = Field(alias="fileName", min_length=1)
    file_size: int = Field(alias="fileSize", ge=0)
    file_type: str | None = Field(default=None, alias="fileType")
    otp: str | None = None


class RegisterOwnerPayload(WireModel):
    otp: str
    owner_id: str = Field(alias="ownerId")


class RequestFilePayload(WireModel):
    otp: str


class OfferPayload(WireModel):
    offer: Any
    target_id: str = Field(alias="targetId")
    otp: str | None = None


class AnswerPayload(WireModel):
    answer: Any
    target_id: str = Field(alias="targetId")


class IceCandidatePayload(WireModel):
    candidate: Any
    target_id: str = Field(alias="targetId")


class ApprovePayload(WireModel):
    otp: str
    requester_id: str = Field(alias="requesterId")


class RejectPayload(WireModel):
    otp: str
    requester_id: str = Field(alias="requesterId")
    reason: str | None = None


class PeerRegisterPayload(WireModel):
    username: str = Field(min_length=1)


class PeerAuthenticatePayload(WireModel):
    peer_id: str = Field(alias="peerId")
    otp: str


class PendingTransfer(BaseModel):
    """Correlates one request notification with its approval and handshake."""
    code: str
    requester_ref: str
    owner_ref: str
