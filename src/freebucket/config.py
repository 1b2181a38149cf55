"""Application configuration builder."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

DEFAULT_ORIGINS = ("http://localhost:3000", "https://localhost:3000")
DEFAULT_CONTENT_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp")
USAGE_SOURCES = ("memory", "counter", "analytics")


class ConfigurationError(RuntimeError):
    """Raised when required settings are missing or invalid."""

    def __init__(self, message: str, missing: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.missing = tuple(missing)


@dataclass(slots=True)
class BlobStoreSettings:
    endpoint: str | None
    access_key: str | None
    secret_key: str | None
    bucket: str | None
    public_domain: str | None
    region: str = "auto"
    public_path_prefix: str = "free-bucket"
    timeout_seconds: float = 15.0

    def missing(self) -> list[str]:
        required = {
            "R2_ENDPOINT": self.endpoint,
            "R2_ACCESS_KEY": self.access_key,
            "R2_SECRET_KEY": self.secret_key,
            "R2_BUCKET": self.bucket,
            "R2_CUSTOM_DOMAIN": self.public_domain,
        }
        return [name for name, value in required.items() if not value]


@dataclass(slots=True)
class UploadLimits:
    allowed_content_types: Sequence[str]
    max_file_size_bytes: int
    max_request_size_bytes: int
    max_form_fields: int
    max_field_size_bytes: int
    content_scan_bytes: int
    original_name_max_length: int
    chunk_size_bytes: int
    temp_root: Path
    temp_ttl_seconds: int


@dataclass(slots=True)
class RateLimitSettings:
    window_seconds: float = 15 * 60
    max_attempts: int = 20
    sweep_probability: float = 0.01
    trust_proxy_headers: bool = True


@dataclass(slots=True)
class AnalyticsSettings:
    email: str | None = None
    global_api_key: str | None = None
    account_id: str | None = None
    bucket_name: str | None = None
    endpoint: str = "https://api.cloudflare.com/client/v4/graphql"


@dataclass(slots=True)
class CounterSettings:
    base_url: str | None = None
    api_secret: str | None = None


@dataclass(slots=True)
class UsageSettings:
    source: str = "memory"
    storage_limit_gb: float = 10.0
    class_a_limit: int = 1_000_000
    class_b_limit: int = 10_000_000
    block_threshold_percent: float = 50.0
    warning_threshold_percent: float = 80.0
    fallback_percent: float = 60.0
    timeout_seconds: float = 10.0
    counter: CounterSettings = field(default_factory=CounterSettings)
    analytics: AnalyticsSettings = field(default_factory=AnalyticsSettings)


@dataclass(slots=True)
class AppConfig:
    blob_store: BlobStoreSettings
    upload_limits: UploadLimits
    rate_limit: RateLimitSettings
    usage: UsageSettings
    allowed_origins: Sequence[str]
    environment: str = "production"
    temp_cleanup_interval_seconds: float = 15 * 60

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


def check_required_settings(config: AppConfig) -> None:
    """Fail fast when the blob store cannot be configured."""
    missing = config.blob_store.missing()
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}",
            missing=missing,
        )
    if config.usage.source not in USAGE_SOURCES:
        raise ConfigurationError(
            f"USAGE_SOURCE must be one of {', '.join(USAGE_SOURCES)}, "
            f"got '{config.usage.source}'"
        )


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _split_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [item.strip().rstrip("/") for item in raw.split(",") if item.strip()]


def _allowed_origins() -> tuple[str, ...]:
    origins: list[str] = []
    origins.extend(_split_list(os.getenv("ALLOWED_ORIGINS")))
    origins.extend(_split_list(os.getenv("ALLOWED_ORIGIN")))
    vercel_url = os.getenv("VERCEL_URL")
    if vercel_url:
        origins.append(f"https://{vercel_url.strip().rstrip('/')}")
    origins.extend(DEFAULT_ORIGINS)
    return tuple(dict.fromkeys(origins))


def load_config() -> AppConfig:
    """Load configuration from environment."""
    blob_store = BlobStoreSettings(
        endpoint=os.getenv("R2_ENDPOINT"),
        access_key=os.getenv("R2_ACCESS_KEY"),
        secret_key=os.getenv("R2_SECRET_KEY"),
        bucket=os.getenv("R2_BUCKET"),
        public_domain=os.getenv("R2_CUSTOM_DOMAIN"),
        region=os.getenv("R2_REGION", "auto"),
        public_path_prefix=os.getenv("PUBLIC_PATH_PREFIX", "free-bucket"),
        timeout_seconds=float(os.getenv("BLOB_STORE_TIMEOUT_SECONDS", 15)),
    )

    temp_root = Path(
        os.getenv("TEMP_ROOT", str(Path(tempfile.gettempdir()) / "freebucket-uploads"))
    )
    upload_limits = UploadLimits(
        allowed_content_types=tuple(_split_list(os.getenv("ALLOWED_CONTENT_TYPES")))
        or DEFAULT_CONTENT_TYPES,
        max_file_size_bytes=int(os.getenv("MAX_FILE_SIZE_BYTES", 10 * 1024 * 1024)),
        max_request_size_bytes=int(os.getenv("MAX_REQUEST_SIZE_BYTES", 12 * 1024 * 1024)),
        max_form_fields=int(os.getenv("MAX_FORM_FIELDS", 5)),
        max_field_size_bytes=int(os.getenv("MAX_FIELD_SIZE_BYTES", 2 * 1024)),
        content_scan_bytes=int(os.getenv("CONTENT_SCAN_BYTES", 1024)),
        original_name_max_length=int(os.getenv("ORIGINAL_NAME_MAX_LENGTH", 100)),
        chunk_size_bytes=int(os.getenv("UPLOAD_CHUNK_SIZE_BYTES", 256 * 1024)),
        temp_root=temp_root,
        temp_ttl_seconds=int(os.getenv("TEMP_TTL_SECONDS", 60 * 60)),
    )

    rate_limit = RateLimitSettings(
        window_seconds=float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", 15 * 60)),
        max_attempts=int(os.getenv("RATE_LIMIT_MAX_ATTEMPTS", 20)),
        sweep_probability=float(os.getenv("RATE_LIMIT_SWEEP_PROBABILITY", 0.01)),
        trust_proxy_headers=_env_bool("TRUST_PROXY_HEADERS", True),
    )

    usage = UsageSettings(
        source=os.getenv("USAGE_SOURCE", "memory").strip().lower(),
        storage_limit_gb=float(os.getenv("QUOTA_STORAGE_GB", 10)),
        class_a_limit=int(os.getenv("QUOTA_CLASS_A_OPERATIONS", 1_000_000)),
        class_b_limit=int(os.getenv("QUOTA_CLASS_B_OPERATIONS", 10_000_000)),
        block_threshold_percent=float(os.getenv("QUOTA_BLOCK_THRESHOLD_PERCENT", 50)),
        warning_threshold_percent=float(os.getenv("QUOTA_WARNING_THRESHOLD_PERCENT", 80)),
        fallback_percent=float(os.getenv("USAGE_FALLBACK_PERCENT", 60)),
        timeout_seconds=float(os.getenv("USAGE_TIMEOUT_SECONDS", 10)),
        counter=CounterSettings(
            base_url=os.getenv("USAGE_COUNTER_URL"),
            api_secret=os.getenv("USAGE_COUNTER_SECRET"),
        ),
        analytics=AnalyticsSettings(
            email=os.getenv("CLOUDFLARE_EMAIL"),
            global_api_key=os.getenv("CLOUDFLARE_GLOBAL_API_KEY"),
            account_id=os.getenv("CLOUDFLARE_ACCOUNT_ID"),
            bucket_name=os.getenv("CLOUDFLARE_BUCKET_NAME"),
            endpoint=os.getenv(
                "CLOUDFLARE_GRAPHQL_ENDPOINT",
                "https://api.cloudflare.com/client/v4/graphql",
            ),
        ),
    )

    return AppConfig(
        blob_store=blob_store,
        upload_limits=upload_limits,
        rate_limit=rate_limit,
        usage=usage,
        allowed_origins=_allowed_origins(),
        environment=os.getenv("APP_ENV", "production").strip().lower(),
        temp_cleanup_interval_seconds=float(os.getenv("TEMP_CLEANUP_INTERVAL_SECONDS", 15 * 60)),
    )
