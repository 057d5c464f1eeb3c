"""Application-wide configuration constants."""

import os
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# --- Identity ---
APP_NAME = "P2P File Share"
APP_VERSION = "1.0.0"

# --- Networking ---
API_HOST = os.environ.get("HOST", "0.0.0.0")
API_PORT = int(os.environ.get("PORT", "3000"))
CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("CORS_ORIGINS", "*").split(",")
    if origin.strip()
]

# --- OTP ---
OTP_LENGTH = 6
OTP_TTL = float(os.environ.get("OTP_TTL", "300"))  # seconds, never renewed
OTP_SWEEP_INTERVAL = float(os.environ.get("OTP_SWEEP_INTERVAL", "60"))  # seconds
OTP_MAX_ATTEMPTS = 1000  # generation retries before the code space counts as full
OTP_SINGLE_USE = _env_bool("OTP_SINGLE_USE", False)

# --- Files ---
DEFAULT_MIME_TYPE = "application/octet-stream"

# --- Realtime ---
OUTBOX_SIZE = 256  # queued outbound events per connection

# --- Frontend ---
PUBLIC_DIR = Path(
    os.environ.get("PUBLIC_DIR", str(Path(__file__).parent.parent / "public"))
)
