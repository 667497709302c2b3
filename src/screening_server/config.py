"""Server configuration — reads settings from environment variables.

All settings have sensible defaults for local development.  In production
the values are typically overridden via env vars or a ``.env`` file.
"""

import os
from dataclasses import dataclass, field

# --- Pagination defaults ---
# Read at import time so FastAPI Query() defaults can reference them.
DEFAULT_PAGE_LIMIT = int(os.getenv("DEFAULT_PAGE_LIMIT", "20"))
MAX_PAGE_LIMIT = int(os.getenv("MAX_PAGE_LIMIT", "100"))


@dataclass(frozen=True)
class ServerSettings:
    """Immutable server configuration read from environment at startup."""

    # Network
    host: str = "0.0.0.0"
    port: int = 8080

    # CORS: comma-separated origins, or "*" for wide-open dev mode
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    # Catalog directory (None → CatalogStore default, programs/ at the repo root)
    catalog_dir: str | None = None

    # Logging
    log_level: str = "INFO"

    # Trusted proxy secret: when set, every request that carries
    # X-User-ID must also carry a matching X-Proxy-Secret.
    trusted_proxy_secret: str | None = None

    # Fast path: external record authorization page.  The fast path is
    # disabled when no connect URL is configured.
    fast_path_connect_url: str | None = None
    # Key for signing fast-path state tokens (None → random per process)
    fast_path_secret: str | None = None


def load_settings() -> ServerSettings:
    """Build settings from ``SERVER_*`` environment variables."""
    raw_origins = os.getenv("SERVER_CORS_ORIGINS", "*")
    origins = [o.strip() for o in raw_origins.split(",") if o.strip()]

    return ServerSettings(
        host=os.getenv("SERVER_HOST", "0.0.0.0"),
        port=int(os.getenv("SERVER_PORT", "8080")),
        cors_origins=origins,
        catalog_dir=os.getenv("SERVER_CATALOG_DIR") or None,
        log_level=os.getenv("SERVER_LOG_LEVEL", "INFO").upper(),
        trusted_proxy_secret=os.getenv("TRUSTED_PROXY_SECRET") or None,
        fast_path_connect_url=os.getenv("SERVER_FAST_PATH_CONNECT_URL") or None,
        fast_path_secret=os.getenv("SERVER_FAST_PATH_SECRET") or None,
    )
