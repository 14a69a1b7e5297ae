"""Configuration management using pydantic-settings."""

import threading
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Valid log levels
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class InfluxDBSettings(BaseSettings):
    """InfluxDB connection settings for the health data store."""

    model_config = SettingsConfigDict(env_prefix="INFLUXDB_")

    url: str = Field(default="http://influxdb:8086", description="InfluxDB URL")
    token: str = Field(description="InfluxDB API token")
    org: str = Field(default="health", description="InfluxDB organization")
    bucket: str = Field(default="apple_health", description="InfluxDB bucket")
    query_timeout_seconds: float = Field(
        default=10.0, description="Timeout for a single statistics query"
    )

    @field_validator("token")
    @classmethod
    def validate_token(cls, v: str) -> str:
        """Validate token is not empty."""
        if not v or not v.strip():
            raise ValueError("InfluxDB token cannot be empty")
        return v

    @field_validator("query_timeout_seconds")
    @classmethod
    def validate_query_timeout(cls, v: float) -> float:
        """Validate query timeout is positive."""
        if v <= 0:
            raise ValueError(f"Query timeout must be positive, got {v}")
        return v


class DashboardSettings(BaseSettings):
    """Daily aggregation settings."""

    model_config = SettingsConfigDict(env_prefix="DASHBOARD_")

    timezone: str = Field(default="UTC", description="IANA timezone for day buckets")
    history_days: int = Field(default=1, description="Number of day buckets to fetch")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate timezone is a known IANA name."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone '{v}'") from e
        return v

    @field_validator("history_days")
    @classmethod
    def validate_history_days(cls, v: int) -> int:
        """Validate history window is reasonable."""
        if not 1 <= v <= 366:
            raise ValueError(f"History days must be between 1 and 366, got {v}")
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class AppleIDSettings(BaseSettings):
    """Sign in with Apple client settings."""

    model_config = SettingsConfigDict(env_prefix="APPLE_")

    client_id: str = Field(default="", description="Services ID used as OAuth client_id")
    team_id: str = Field(default="", description="Apple developer team ID")
    key_id: str = Field(default="", description="Sign in with Apple key ID")
    private_key: str | None = Field(
        default=None, description="PEM private key used to sign the client secret"
    )
    client_secret: str | None = Field(
        default=None, description="Pre-generated client secret JWT"
    )
    redirect_uri: str = Field(default="", description="Registered redirect URI")
    authorize_url: str = Field(
        default="https://appleid.apple.com/auth/authorize",
        description="Authorization endpoint",
    )
    token_url: str = Field(
        default="https://appleid.apple.com/auth/token", description="Token endpoint"
    )
    timeout_seconds: float = Field(default=10.0, description="Token request timeout")

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError(f"Timeout must be positive, got {v}")
        return v


class IdentitySettings(BaseSettings):
    """Signed-in identity persistence settings."""

    model_config = SettingsConfigDict(env_prefix="IDENTITY_")

    store_path: str = Field(
        default="/data/identity.db", description="SQLite file for identity key/values"
    )


class TracingSettings(BaseSettings):
    """OpenTelemetry tracing settings."""

    model_config = SettingsConfigDict(env_prefix="TRACING_")

    enabled: bool = Field(default=False, description="Enable OTLP trace export")
    service_name: str = Field(default="health-dashboard", description="Service name")
    otlp_endpoint: str | None = Field(
        default=None, description="OTLP traces endpoint; exporter default when unset"
    )


class AppSettings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_prefix="APP_")

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or console")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        normalized = v.upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level '{v}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
            )
        return normalized

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format is valid."""
        normalized = v.lower()
        if normalized not in ("json", "console"):
            raise ValueError(f"Invalid log format '{v}'. Must be 'json' or 'console'")
        return normalized


class Settings(BaseSettings):
    """Combined application settings."""

    influxdb: InfluxDBSettings = Field(default_factory=InfluxDBSettings)
    dashboard: DashboardSettings = Field(default_factory=DashboardSettings)
    apple: AppleIDSettings = Field(default_factory=AppleIDSettings)
    identity: IdentitySettings = Field(default_factory=IdentitySettings)
    tracing: TracingSettings = Field(default_factory=TracingSettings)
    app: AppSettings = Field(default_factory=AppSettings)

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            influxdb=InfluxDBSettings(),
            dashboard=DashboardSettings(),
            apple=AppleIDSettings(),
            identity=IdentitySettings(),
            tracing=TracingSettings(),
            app=AppSettings(),
        )


# Global settings instance with thread-safe initialization
_settings: Settings | None = None
_settings_lock = threading.Lock()


def get_settings() -> Settings:
    """Get or create the global settings instance.

    Thread-safe singleton pattern using double-checked locking.
    """
    global _settings
    if _settings is None:
        with _settings_lock:
            # Double-check after acquiring lock
            if _settings is None:
                _settings = Settings.load()
    return _settings
