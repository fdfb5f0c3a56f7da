"""Server configuration — reads settings from environment variables.

All settings have defaults for local development.  Lead delivery is off
until ``INGESTION_URL`` is set.
"""

import os
from dataclasses import dataclass, field

from lead_funnel.constants import DEFAULT_INGESTION_TIMEOUT, DEFAULT_TOKEN_WAIT

# Read at import time so FastAPI Query() defaults can reference it
DEFAULT_CLEANUP_DAYS = int(os.getenv("DEFAULT_CLEANUP_DAYS", "30"))


@dataclass(frozen=True)
class ServerSettings:
    """Immutable server configuration read from environment at startup."""

    # Network
    host: str = "0.0.0.0"
    port: int = 8080

    # CORS — comma-separated origins, or "*" for dev
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    # Funnel YAML directory (None → packaged funnels/)
    funnel_dir: str | None = None

    log_level: str = "INFO"

    # Shared secret for /admin endpoints (None = admin disabled)
    admin_api_key: str | None = None

    # Ingestion endpoint (None = leads are logged, not delivered)
    ingestion_url: str | None = None
    ingestion_api_key: str | None = None
    ingestion_partial_url: str | None = None
    ingestion_timeout: float = DEFAULT_INGESTION_TIMEOUT
    certification_token_wait: float = DEFAULT_TOKEN_WAIT


def load_settings() -> ServerSettings:
    """Build settings from environment variables."""
    raw_origins = os.getenv("SERVER_CORS_ORIGINS", "*")
    origins = [o.strip() for o in raw_origins.split(",") if o.strip()]

    return ServerSettings(
        host=os.getenv("SERVER_HOST", "0.0.0.0"),
        port=int(os.getenv("SERVER_PORT", "8080")),
        cors_origins=origins,
        funnel_dir=os.getenv("FUNNEL_DIR") or None,
        log_level=os.getenv("SERVER_LOG_LEVEL", "INFO").upper(),
        admin_api_key=os.getenv("ADMIN_API_KEY") or None,
        ingestion_url=os.getenv("INGESTION_URL") or None,
        ingestion_api_key=os.getenv("INGESTION_API_KEY") or None,
        ingestion_partial_url=os.getenv("INGESTION_PARTIAL_URL") or None,
        ingestion_timeout=float(
            os.getenv("INGESTION_TIMEOUT_SECONDS", str(DEFAULT_INGESTION_TIMEOUT))
        ),
        certification_token_wait=float(
            os.getenv("CERTIFICATION_TOKEN_WAIT_SECONDS", str(DEFAULT_TOKEN_WAIT))
        ),
    )
