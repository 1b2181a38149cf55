"""Dependency wiring helpers."""

from __future__ import annotations

from fastapi import FastAPI

from .config import AppConfig
from .storage.blob_store import BlobStore
from .storage.s3_blob_store import S3BlobStore
from .upload.rate_limiter import SlidingWindowRateLimiter
from .upload.temp_store import TempUploadStore
from .upload.upload_api import router as upload_router
from .upload.upload_service import UploadOrchestrator
from .upload.validation import ContentValidator, signatures_for
from .usage.quota_gate import QuotaGate
from .usage.sources_base import UsageSource
from .usage.sources_factory import create_source
from .usage.usage_api import router as usage_router
from .usage.usage_models import UsageLimits
from .usage.usage_oracle import UsageOracle
from .usage.usage_service import UsageService


def build_oracle(config: AppConfig, source: UsageSource | None = None) -> UsageOracle:
    usage = config.usage
    return UsageOracle(
        source=source or create_source(usage),
        limits=UsageLimits.from_storage_gb(
            usage.storage_limit_gb, usage.class_a_limit, usage.class_b_limit
        ),
        timeout_seconds=usage.timeout_seconds,
        fallback_percent=usage.fallback_percent,
    )


def include_routers(
    app: FastAPI,
    config: AppConfig,
    *,
    blob_store: BlobStore | None = None,
    usage_source: UsageSource | None = None,
) -> None:
    """Mount module routers and attach services."""
    limits = config.upload_limits
    store = blob_store or S3BlobStore.from_settings(config.blob_store)
    oracle = build_oracle(config, usage_source)
    gate = QuotaGate(threshold_percent=config.usage.block_threshold_percent)
    rate_limiter = SlidingWindowRateLimiter(
        window_seconds=config.rate_limit.window_seconds,
        max_attempts=config.rate_limit.max_attempts,
        sweep_probability=config.rate_limit.sweep_probability,
    )
    validator = ContentValidator(
        max_size_bytes=limits.max_file_size_bytes,
        scan_bytes=limits.content_scan_bytes,
        signatures=signatures_for(limits.allowed_content_types),
    )
    temp_store = TempUploadStore(
        root=limits.temp_root,
        ttl_seconds=limits.temp_ttl_seconds,
        chunk_size_bytes=limits.chunk_size_bytes,
    )

    upload_orchestrator = UploadOrchestrator(
        allowed_origins=tuple(config.allowed_origins),
        rate_limiter=rate_limiter,
        validator=validator,
        temp_store=temp_store,
        oracle=oracle,
        gate=gate,
        blob_store=store,
        public_domain=config.blob_store.public_domain or "",
        public_path_prefix=config.blob_store.public_path_prefix,
        max_request_size_bytes=limits.max_request_size_bytes,
        max_file_size_bytes=limits.max_file_size_bytes,
        max_form_fields=limits.max_form_fields,
        max_field_size_bytes=limits.max_field_size_bytes,
        original_name_max_length=limits.original_name_max_length,
    )
    usage_service = UsageService(
        oracle=oracle,
        gate=gate,
        warning_threshold_percent=config.usage.warning_threshold_percent,
        expose_debug=not config.is_production,
    )

    app.state.config = config
    app.state.blob_store = store
    app.state.usage_oracle = oracle
    app.state.rate_limiter = rate_limiter
    app.state.temp_store = temp_store
    app.state.upload_orchestrator = upload_orchestrator
    app.state.usage_service = usage_service

    app.include_router(upload_router)
    app.include_router(usage_router)
