"""REST API routes: file announcement, lookup, discovery and health."""

import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import Field

from config import APP_NAME, APP_VERSION, DEFAULT_MIME_TYPE
from otp.models import FileDescriptor
from services import Services
from signaling.errors import NotFound
from signaling.models import WireModel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def get_services(request: Request) -> Services:
    return request.app.state.services


# --- Health ---

@router.get("/health")
async def health(services: Services = Depends(get_services)):
    """Read-only snapshot of process uptime and active announcements."""
    return {
        "status": "ok",
        "service": APP_NAME,
        "version": APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(services.uptime, 3),
        "activeFiles": services.registry.active_count(),
        "connectedPeers": len(services.directory),
    }


# --- Announcement ---

class AnnounceFileBody(WireModel):
    file_name: str = Field(alias="fileName", min_length=1)
    file_size: int = Field(alias="fileSize", ge=0)
    file_type: str | None = Field(default=None, alias="fileType")
    uploader_id: str | None = Field(default=None, alias="uploaderId")


@router.post("/announce-file")
async def announce_file(body: AnnounceFileBody, services: Services = Depends(get_services)):
    """Issue an OTP for a file that stays on the announcing peer's device.

    The returned ownerId is provisional; the peer presents it with
    `register-owner` once its WebSocket is up.
    """
    # Prefixed so a client-chosen id can never equal a connection_ref.
    owner_id = f"http:{body.uploader_id or uuid.uuid4().hex}"
    file = FileDescriptor(
        name=body.file_name,
        size=body.file_size,
        mime_type=body.file_type or DEFAULT_MIME_TYPE,
    )
    try:
        otp = services.registry.announce(file, owner_id, provisional=True)
    except RuntimeError as e:
        logger.error(f"Announcement of '{file.name}' failed: {e}")
        raise HTTPException(status_code=503, detail="No OTP available, try again later")

    return {
        "success": True,
        "otp": otp,
        "ownerId": owner_id,
        "message": "File announced to P2P network! File stays on your device.",
    }


# --- Lookup ---

class RequestFileBody(WireModel):
    otp: str = Field(min_length=1)
    downloader_id: str | None = Field(default=None, alias="downloaderId")


@router.post("/request-file")
@router.post("/request-download")
async def request_file(body: RequestFileBody, services: Services = Depends(get_services)):
    """Look up the file behind an OTP. The owner is contacted over the WebSocket.

    Never consumes the code; a single-use code is spent by the `request-file`
    event that actually reaches the owner.
    """
    try:
        record = services.registry.peek(body.otp)
    except NotFound as e:
        logger.info(f"No file for OTP {body.otp} (requested by {body.downloader_id or 'anonymous'})")
        raise HTTPException(status_code=404, detail=e.message)

    return {
        "success": True,
        "otp": body.otp,
        "fileInfo": {
            "fileName": record.file.name,
            "fileSize": record.file.size,
            "fileType": record.file.mime_type,
        },
        "message": "File found in P2P network. Requesting from owner...",
    }


# --- Discovery ---

@router.get("/peers")
async def list_peers(services: Services = Depends(get_services)):
    """Return authenticated peers only."""
    return {"peers": [p.public_view() for p in services.directory.authenticated()]}
