# ==============================================================================
# Application Configuration
# ==============================================================================
"""
Configuration management using pydantic-settings.

All configuration is loaded from environment variables, with support for
.env files via python-dotenv.
"""

from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file before any settings are instantiated
load_dotenv()


class ValkeySettings(BaseSettings):
    """Valkey (Redis-compatible) connection settings for the session store."""

    model_config = SettingsConfigDict(env_prefix="VALKEY_")

    host: str = Field(default="localhost", description="Valkey host")
    port: int = Field(default=6379, description="Valkey port")
    password: Optional[str] = Field(default=None, description="Valkey password")
    db: int = Field(default=0, description="Valkey database number")
    ssl: bool = Field(default=False, description="Use SSL/TLS connection")
    key_prefix: str = Field(default="vt", description="Prefix for every key written")
    socket_timeout: float = Field(
        default=2.0, description="Connect/read timeout (seconds) for request-path calls"
    )
    retries: int = Field(
        default=1, description="Client retries on connection errors for request-path calls"
    )
    backoff_cap: float = Field(
        default=0.5, description="Longest wait (seconds) between request-path retries"
    )

    @property
    def url(self) -> str:
        """Build Valkey connection URL."""
        scheme = "rediss" if self.ssl else "redis"
        if self.password:
            return f"{scheme}://:{self.password}@{self.host}:{self.port}/{self.db}"
        return f"{scheme}://{self.host}:{self.port}/{self.db}"


class PostgresSettings(BaseSettings):
    """PostgreSQL connection settings (session archive)."""

    model_config = SettingsConfigDict(env_prefix="PG_")

    host: str = Field(default="localhost", description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    user: str = Field(default="postgres", description="PostgreSQL username")
    password: str = Field(default="postgres", description="PostgreSQL password")
    database: str = Field(default="visitortrack", description="Database name")
    schema_name: str = Field(default="visitortrack", description="Schema name")
    sslmode: str = Field(default="prefer", description="SSL mode")

    @property
    def connection_string(self) -> str:
        """Build PostgreSQL connection string."""
        return (
            f"postgresql://{self.user}:{self.password}@"
            f"{self.host}:{self.port}/{self.database}?sslmode={self.sslmode}"
        )


class ArchiveSettings(BaseSettings):
    """Long-term archive of ended sessions."""

    model_config = SettingsConfigDict(env_prefix="ARCHIVE_")

    enabled: bool = Field(default=False, description="Copy ended sessions to PostgreSQL")
    batch_size: int = Field(default=500, description="Sessions archived per sweep tick")


class TrackingSettings(BaseSettings):
    """Session lifecycle and aggregation tuning."""

    model_config = SettingsConfigDict(env_prefix="TRACKING_")

    idle_timeout_seconds: int = Field(
        default=300, description="Inactivity after which a session is ended"
    )
    debounce_ms: int = Field(
        default=1000, description="Window in which a repeated page view is collapsed"
    )
    sweep_interval_seconds: float = Field(default=30.0, description="Sweeper tick interval")
    top_n: int = Field(default=10, description="Size of the top-N breakdown maps")
    ingest_max_attempts: int = Field(
        default=5, description="Optimistic transaction attempts per ingest event"
    )
    session_retention_days: int = Field(
        default=30, description="How long ended sessions stay in Valkey"
    )
    event_retention_days: int = Field(
        default=90, description="How long page-view and form events stay in the event log"
    )
    timezone: Optional[str] = Field(
        default=None, description="IANA timezone for daily rollups (server local if unset)"
    )
    export_page_size: int = Field(default=500, description="Event log rows fetched per page")


class ApiSettings(BaseSettings):
    """HTTP API settings."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8000, description="Bind port")
    prefix: str = Field(default="/api/visitor-tracking", description="Route prefix")
    run_sweeper: bool = Field(default=True, description="Run the sweeper inside the API process")
    retry_after_seconds: int = Field(
        default=10, description="Retry-After hint returned when the store is unavailable"
    )


class GeoIPSettings(BaseSettings):
    """MaxMind GeoLite2 database used for IP-to-location lookups."""

    model_config = SettingsConfigDict(env_prefix="GEOIP_")

    db_path: Optional[str] = Field(
        default=None, description="Path to a GeoLite2-City.mmdb file (lookups disabled if unset)"
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        extra="ignore",
    )

    # Nested settings
    valkey: ValkeySettings = Field(default_factory=ValkeySettings)
    postgres: PostgresSettings = Field(default_factory=PostgresSettings)
    archive: ArchiveSettings = Field(default_factory=ArchiveSettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    geoip: GeoIPSettings = Field(default_factory=GeoIPSettings)

    # General settings
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for subsequent calls.
    """
    return Settings()
