"""Pre-write quota projection."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .usage_models import QuotaDecision, QuotaDimension, UsageSnapshot

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class QuotaGate:
    """Refuse uploads whose projected usage crosses the block threshold.

    An upload is modelled as one class A operation plus ``size`` bytes of
    storage; class B usage is compared as-is since this path never reads.
    """

    threshold_percent: float = 50.0
    log: logging.Logger = field(default_factory=lambda: logger)

    def project(self, snapshot: UsageSnapshot, pending_size_bytes: int) -> QuotaDecision:
        """Decide without logging; used for read-only reporting."""
        projected = snapshot.with_upload(max(0, pending_size_bytes))
        exceeded = frozenset(
            dimension
            for dimension in QuotaDimension
            if projected.percentage(dimension) > self.threshold_percent
        )
        return QuotaDecision(
            can_proceed=not exceeded,
            exceeded=exceeded,
            projected=projected,
            threshold_percent=self.threshold_percent,
        )

    def evaluate(self, snapshot: UsageSnapshot, pending_size_bytes: int) -> QuotaDecision:
        decision = self.project(snapshot, pending_size_bytes)
        if decision.exceeded:
            self.log.warning(
                "quota.gate.exceeded",
                extra={
                    "exceeded": decision.exceeded_sorted,
                    "pending_size_bytes": pending_size_bytes,
                    "threshold_percent": self.threshold_percent,
                    "estimated": snapshot.estimated,
                },
            )
        return decision
