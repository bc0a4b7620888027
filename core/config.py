"""Application settings.

Reads configuration from environment variables. A `.env` file at the
repository root is loaded first if it exists.

Usage:
    from core.config import get_settings

    settings = get_settings()
    settings.dia_base_url("acme", "scf/json")
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[1]

env_path = REPO_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Runtime configuration.

    Attributes:
        db_path: SQLite database file
        db_max_connections: Upper bound on concurrently borrowed connections
        dia_domain: DIA web-service domain, prefixed by the tenant server name
        dia_http_timeout_seconds: Total timeout for a single DIA call
        dia_session_ttl_minutes: Lifetime assumed for a fresh DIA session
        dia_session_refresh_buffer_minutes: Refresh this long before expiry
        dia_list_limit: Row limit for list calls (single page)
        credential_encryption_key: Base64 AES-256 key for secrets at rest
        user_directory_ttl_seconds: Lifetime of cached DIA user directories
        dashboard_url: Link placed in notification emails
        log_level: Root log level name
        log_json: Emit JSON log lines instead of human-readable ones
        temporal_endpoint: Temporal frontend address
        temporal_namespace: Temporal namespace
        temporal_api_key: Temporal Cloud API key (optional for local dev)
        temporal_task_queue: Task queue polled by the worker
        notification_cron: Cron expression for the notification workflow
    """
    db_path: Path = REPO_ROOT / "approvals.db"
    db_max_connections: int = 10
    dia_domain: str = "ws.dia.com.tr"
    dia_http_timeout_seconds: int = 30
    dia_session_ttl_minutes: int = 30
    dia_session_refresh_buffer_minutes: int = 2
    dia_list_limit: int = 500
    credential_encryption_key: Optional[str] = None
    user_directory_ttl_seconds: int = 300
    dashboard_url: str = "http://localhost:5173"
    log_level: str = "INFO"
    log_json: bool = False
    temporal_endpoint: Optional[str] = None
    temporal_namespace: str = "default"
    temporal_api_key: Optional[str] = None
    temporal_task_queue: str = "approvals-default"
    notification_cron: str = "0 * * * *"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        db_path = os.getenv("APP_DB_PATH")
        return cls(
            db_path=Path(db_path) if db_path else REPO_ROOT / "approvals.db",
            db_max_connections=_env_int("DB_MAX_CONNECTIONS", 10),
            dia_domain=os.getenv("DIA_DOMAIN", "ws.dia.com.tr"),
            dia_http_timeout_seconds=_env_int("DIA_HTTP_TIMEOUT_SECONDS", 30),
            dia_session_ttl_minutes=_env_int("DIA_SESSION_TTL_MINUTES", 30),
            dia_session_refresh_buffer_minutes=_env_int("DIA_SESSION_REFRESH_BUFFER_MINUTES", 2),
            dia_list_limit=_env_int("DIA_LIST_LIMIT", 500),
            credential_encryption_key=os.getenv("CREDENTIAL_ENCRYPTION_KEY") or None,
            user_directory_ttl_seconds=_env_int("USER_DIRECTORY_TTL_SECONDS", 300),
            dashboard_url=os.getenv("DASHBOARD_URL", "http://localhost:5173"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_json=_env_bool("LOG_JSON", False),
            temporal_endpoint=os.getenv("TEMPORAL_ENDPOINT") or None,
            temporal_namespace=os.getenv("TEMPORAL_NAMESPACE", "default"),
            temporal_api_key=os.getenv("TEMPORAL_API_KEY") or None,
            temporal_task_queue=os.getenv("TEMPORAL_TASK_QUEUE", "approvals-default"),
            notification_cron=os.getenv("NOTIFICATION_CRON", "0 * * * *"),
        )

    def dia_base_url(self, server_name: str, endpoint: str) -> str:
        """Get the DIA URL for a tenant server and module endpoint.

        Args:
            server_name: Tenant server name (sunucu_adi)
            endpoint: Module endpoint, e.g. "scf/json"
        """
        return f"https://{server_name}.{self.dia_domain}/api/v3/{endpoint}"

    @property
    def log_level_value(self) -> int:
        level = logging.getLevelName(self.log_level.upper())
        return level if isinstance(level, int) else logging.INFO


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def override_settings(settings: Optional[Settings]) -> None:
    """Replace the process-wide settings (tests, scripts)."""
    global _settings
    _settings = settings
