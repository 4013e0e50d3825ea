import os
import re
from functools import lru_cache
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file early so env vars are available for YAML interpolation
_env_file = Path(__file__).parent.parent / ".env"
load_dotenv(_env_file)

# Pattern to match $VAR_NAME environment variable references
ENV_VAR_PATTERN = re.compile(r"\$([A-Z_][A-Z0-9_]*)")

MiB = 1024 * 1024


def interpolate_env_vars(value):
    """Recursively replace $VAR_NAME with os.environ values."""
    if isinstance(value, str):

        def replace(match):
            var = match.group(1)
            val = os.environ.get(var)
            if val is None:
                raise ValueError(f"Environment variable ${var} not set")
            return val

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: interpolate_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [interpolate_env_vars(item) for item in value]
    return value


def get_config_path() -> Path:
    """Return the app.yaml path, honouring ARVAULT_CONFIG when set."""
    override = os.environ.get("ARVAULT_CONFIG")
    if override:
        return Path(override)
    return Path.cwd() / "app.yaml"


def load_app_config() -> dict:
    """Load and parse app.yaml with environment variable interpolation."""
    config_path = get_config_path()

    if not config_path.exists():
        raise FileNotFoundError(f"app.yaml not found at {config_path}")

    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}

    return interpolate_env_vars(config)


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str = "sqlite+aiosqlite:///./arvault.db"
    pool_size: int = 5
    pool_overflow: int = 10
    pool_timeout: int = 30
    pool_pre_ping: bool = True
    echo: bool = False
    # Create missing tables on startup (development and tests; use migrations otherwise)
    create_all: bool = False


class S3Config(BaseModel):
    """S3-compatible bucket settings (AWS, R2, MinIO)."""

    bucket: str = ""
    region: str = "auto"
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    prefix: str = ""


class StorageConfig(BaseModel):
    """Object store selection."""

    backend: str = "local"
    local_path: str = "./data/objects"
    s3: S3Config = S3Config()


class AuthConfig(BaseModel):
    """Token lifetimes and share referral matching."""

    access_token_ttl: int = 86400
    asset_token_ttl: int = 300
    asset_token_max_ttl: int = 900
    share_path_prefixes: list[str] = ["/share/", "/s/"]


class UploadConfig(BaseModel):
    """Upload size ceilings and stale-session retention."""

    part_size: int = 10 * MiB
    max_request_body: int = 100 * MiB
    max_part_number: int = 10000
    pending_retention_hours: int = 24
    large_file_threshold: int = 100 * MiB
    max_sizes: dict[str, int] = {
        "model": 500 * MiB,
        "image": 25 * MiB,
        "video": 100 * MiB,
        "pdf": 50 * MiB,
        "document": 50 * MiB,
    }

    def max_size_for(self, category: str) -> int:
        return self.max_sizes.get(category, self.max_sizes.get("document", 50 * MiB))


class RateLimitGroupConfig(BaseModel):
    """Ceiling and window for one route group."""

    requests: int
    window_seconds: float = 60.0


class RateLimitConfig(BaseModel):
    """Per-route-group request throttling.

    ``paths`` maps a path prefix to its group settings; the longest
    matching prefix wins and anything unmatched uses the default group.
    """

    enabled: bool = True
    requests_per_minute: int = 60
    paths: dict[str, RateLimitGroupConfig] = {
        "/api/admin": RateLimitGroupConfig(requests=200),
        "/api/user": RateLimitGroupConfig(requests=100),
        "/asset": RateLimitGroupConfig(requests=120),
    }


class LogfireConfig(BaseModel):
    """Pydantic Logfire observability settings."""

    enabled: bool = False
    service_name: str = "arvault"
    environment: str | None = None
    sample_rate: float = 1.0
    console: bool = False


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    debug: bool = False
    secret_key: str = ""
    # Previous signing secret, accepted during a rotation window
    secret_key_alt: str = ""

    db: DatabaseConfig = DatabaseConfig()
    storage: StorageConfig = StorageConfig()
    auth: AuthConfig = AuthConfig()
    uploads: UploadConfig = UploadConfig()
    rate_limit: RateLimitConfig = RateLimitConfig()
    logfire: LogfireConfig = LogfireConfig()


_SECTIONS = {
    "db": DatabaseConfig,
    "storage": StorageConfig,
    "auth": AuthConfig,
    "uploads": UploadConfig,
    "rate_limit": RateLimitConfig,
    "logfire": LogfireConfig,
}


@lru_cache
def get_settings() -> Settings:
    """Load settings from .env and app.yaml."""
    base_settings = Settings()

    try:
        app_config = load_app_config()
    except FileNotFoundError:
        return base_settings

    updates = {
        name: model(**app_config[name])
        for name, model in _SECTIONS.items()
        if name in app_config
    }

    if updates:
        return base_settings.model_copy(update=updates)

    return base_settings
