"""Environment-driven settings.

``load_dotenv()`` runs in ``main``; this module only reads ``os.environ``.
Several credentials accept legacy variable names as fallbacks.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _env(*names: str, default: Optional[str] = None) -> Optional[str]:
    """First non-empty value among the named variables."""
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Runtime configuration."""

    github_repo: str = "VirloGit/monitormamdani"

    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    buttondown_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    firecrawl_api_key: Optional[str] = None
    virlo_api_key: Optional[str] = None

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Local SQLite history store, used when Supabase is not configured
    history_db_path: str = "data/history.db"

    # Poller tiers (seconds)
    poll_fast_seconds: int = 60
    poll_hourly_seconds: int = 3600
    poll_daily_seconds: int = 86400
    poller_enabled: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            github_repo=_env("GITHUB_REPO", default=cls.github_repo),
            supabase_url=_env("SUPABASE_URL"),
            supabase_key=_env("SUPABASE_KEY"),
            buttondown_api_key=_env("BUTTONDOWN_API_KEY", "BUTTDOWN_API", "BUTTONDOWN_API"),
            anthropic_api_key=_env("ANTHROPIC_API_KEY", "CLAUDE_API"),
            firecrawl_api_key=_env("FIRECRAWL_API_KEY", "FIREBASE_KEY"),
            virlo_api_key=_env("VIRLO_API_KEY", "VIRLO_API"),
            host=_env("HOST", default=cls.host),
            port=int(_env("PORT", default=str(cls.port))),
            log_level=_env("LOG_LEVEL", default=cls.log_level),
            log_file=_env("LOG_FILE"),
            history_db_path=_env("HISTORY_DB_PATH", default=cls.history_db_path),
            poll_fast_seconds=int(_env("POLL_FAST_SECONDS", default=str(cls.poll_fast_seconds))),
            poll_hourly_seconds=int(_env("POLL_HOURLY_SECONDS", default=str(cls.poll_hourly_seconds))),
            poll_daily_seconds=int(_env("POLL_DAILY_SECONDS", default=str(cls.poll_daily_seconds))),
            poller_enabled=_env_bool("POLLER_ENABLED", cls.poller_enabled),
        )

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    def credential_status(self) -> dict[str, str]:
        """SET/MISSING per credential, never the values."""
        credentials = {
            "SUPABASE_URL": self.supabase_url,
            "SUPABASE_KEY": self.supabase_key,
            "BUTTONDOWN_API_KEY": self.buttondown_api_key,
            "ANTHROPIC_API_KEY": self.anthropic_api_key,
            "FIRECRAWL_API_KEY": self.firecrawl_api_key,
            "VIRLO_API_KEY": self.virlo_api_key,
        }
        return {name: "SET" if value else "MISSING" for name, value in credentials.items()}
