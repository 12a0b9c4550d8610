"""Application configuration loaded from environment variables."""

import os
from dataclasses import dataclass

DEFAULT_GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
DEFAULT_MANUAL_REVOKE_URL = "https://account.live.com/consent/Manage"


@dataclass(frozen=True)
class AppConfig:
    """Centralized application configuration.

    Bearer tokens arrive with each request, so every field has a default.
    Values can be overridden via environment variables.
    """

    graph_base_url: str = DEFAULT_GRAPH_BASE_URL
    request_timeout: float = 30.0
    max_site_workers: int = 8
    download_chunk_size: int = 65536
    manual_revoke_url: str = DEFAULT_MANUAL_REVOKE_URL


def load_config() -> AppConfig:
    """Construct an AppConfig from environment variables.

    Optional environment variables (with defaults):
        OC_GRAPH_BASE_URL: Graph API root (default: https://graph.microsoft.com/v1.0).
        OC_REQUEST_TIMEOUT: Per-request socket timeout in seconds (default: 30).
        OC_MAX_SITE_WORKERS: Upper bound on concurrent per-site drive lookups (default: 8).
        OC_DOWNLOAD_CHUNK_SIZE: Bytes read per download chunk (default: 65536).
        OC_MANUAL_REVOKE_URL: Page where users revoke the app's access by hand.

    Returns:
        Configured AppConfig instance.
    """
    return AppConfig(
        graph_base_url=os.environ.get("OC_GRAPH_BASE_URL", DEFAULT_GRAPH_BASE_URL).rstrip("/"),
        request_timeout=float(os.environ.get("OC_REQUEST_TIMEOUT", "30")),
        max_site_workers=int(os.environ.get("OC_MAX_SITE_WORKERS", "8")),
        download_chunk_size=int(os.environ.get("OC_DOWNLOAD_CHUNK_SIZE", "65536")),
        manual_revoke_url=os.environ.get("OC_MANUAL_REVOKE_URL", DEFAULT_MANUAL_REVOKE_URL),
    )
