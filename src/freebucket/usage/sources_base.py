"""Abstract usage source definition."""

from abc import ABC, abstractmethod

from .billing_period import BillingPeriod
from .usage_models import QuotaDimension, SourceCapability, UsageReading


class UsageSource(ABC):
    """Base interface for usage sources.

    Sources only report raw counters for a billing period. Limits,
    percentages and failure handling belong to :class:`UsageOracle`.
    """

    name: str = "unknown"
    capabilities: frozenset[SourceCapability] = frozenset({SourceCapability.READ})

    def supports(self, capability: SourceCapability) -> bool:
        return capability in self.capabilities

    def missing_settings(self) -> list[str]:
        """Names of settings the source needs but does not have."""
        return []

    @abstractmethod
    async def read(self, period: BillingPeriod) -> UsageReading:
        """Return usage accumulated since ``period.start``."""

    async def increment(
        self,
        dimension: QuotaDimension,
        *,
        size_bytes: int = 0,
        period: BillingPeriod,
    ) -> None:
        """Record one operation of ``dimension``; storage grows by ``size_bytes``."""
        raise NotImplementedError(f"Usage source '{self.name}' does not accept increments")

    async def aclose(self) -> None:
        """Release network resources held by the source."""
