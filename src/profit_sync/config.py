"""Configuration management for the profit-sync application."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file from config directory or project root
_config_env = Path(__file__).parent.parent.parent / "config" / ".env"
if _config_env.exists():
    load_dotenv(_config_env)
else:
    load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration."""

    def __init__(self) -> None:
        """Initialize configuration from environment variables."""
        # Local durable store
        default_db_path = str(Path.home() / ".profit-sync" / "local.db")
        self.database_path = Path(
            os.getenv("PROFIT_SYNC_DATABASE_PATH", default_db_path)
        )

        # Remote document store
        self.remote_url: str = os.getenv("PROFIT_SYNC_REMOTE_URL", "").rstrip("/")
        self.api_token: str = os.getenv("PROFIT_SYNC_API_TOKEN", "")
        self.request_timeout = float(os.getenv("PROFIT_SYNC_REQUEST_TIMEOUT", "10"))
        self.poll_interval = float(os.getenv("PROFIT_SYNC_POLL_INTERVAL", "30"))

        # Identity handed over by the authentication layer
        self.user_id: Optional[str] = os.getenv("PROFIT_SYNC_USER_ID") or None
        self.user_email: Optional[str] = os.getenv("PROFIT_SYNC_USER_EMAIL") or None
        self.email_verified = _env_flag("PROFIT_SYNC_EMAIL_VERIFIED", "true")

        # Sync tuning
        self.max_concurrent_uploads = int(
            os.getenv("PROFIT_SYNC_MAX_CONCURRENT_UPLOADS", "5")
        )

        log_file = os.getenv("PROFIT_SYNC_LOG_FILE")
        self.log_file: Optional[Path] = Path(log_file) if log_file else None

        self._ensure_directories()

    def _ensure_directories(self) -> None:
        """Ensure required directories exist."""
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def has_remote(self) -> bool:
        """Whether a remote document store endpoint is configured."""
        return bool(self.remote_url)


def get_config() -> Config:
    """Get application configuration."""
    return Config()
