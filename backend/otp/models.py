"""Pydantic models for OTP-based file announcements."""

from pydantic import BaseModel, Field


class FileDescriptor(BaseModel):
    """What a downloader learns about an announced file. The bytes never leave the owner."""
    name: str = Field(min_length=1)
    size: int = Field(ge=0)
    mime_type: str


class OtpRecord(BaseModel):
    """Binds a code to the announcing peer's connection and the file it serves."""
    code: str
    owner_ref: str  # provisional id until the owner's realtime channel attaches
    file: FileDescriptor
    announced_at: float  # Unix timestamp
    provisional: bool = False  # True until a realtime connection claims the code
