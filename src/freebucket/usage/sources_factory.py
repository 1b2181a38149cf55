"""Factory for usage sources."""

from ..config import UsageSettings
from .analytics_source import AnalyticsQuerySource
from .counter_source import CounterServiceSource
from .memory_source import InMemoryUsageSource
from .sources_base import UsageSource


def create_source(settings: UsageSettings) -> UsageSource:
    """Instantiate the usage source selected by ``USAGE_SOURCE``."""
    name = settings.source.lower()
    if name == "memory":
        return InMemoryUsageSource()
    if name == "counter":
        return CounterServiceSource(
            base_url=settings.counter.base_url,
            api_secret=settings.counter.api_secret,
            timeout_seconds=settings.timeout_seconds,
        )
    if name == "analytics":
        analytics = settings.analytics
        return AnalyticsQuerySource(
            email=analytics.email,
            global_api_key=analytics.global_api_key,
            account_id=analytics.account_id,
            bucket_name=analytics.bucket_name,
            endpoint=analytics.endpoint,
            timeout_seconds=settings.timeout_seconds,
        )
    raise ValueError(f"Unsupported usage source '{settings.source}'")
