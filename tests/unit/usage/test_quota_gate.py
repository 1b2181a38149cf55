import logging
from datetime import datetime, timezone

import pytest

from freebucket.usage.billing_period import BillingPeriod
from freebucket.usage.quota_gate import QuotaGate
from freebucket.usage.usage_models import QuotaDimension, UsageLimits, UsageSnapshot

NOW = datetime(2026, 1, 31, 23, 0, tzinfo=timezone.utc)
LIMITS = UsageLimits(storage_bytes=100_000, class_a_operations=100, class_b_operations=1_000)


def snapshot(storage: int = 0, class_a: int = 0, class_b: int = 0, **kwargs) -> UsageSnapshot:
    return UsageSnapshot(
        storage_bytes=storage,
        class_a_operations=class_a,
        class_b_operations=class_b,
        limits=kwargs.pop("limits", LIMITS),
        period=BillingPeriod.containing(NOW),
        source="test",
        last_updated=NOW,
        **kwargs,
    )


def test_storage_crossing_threshold_is_the_only_exceeded_dimension() -> None:
    decision = QuotaGate(threshold_percent=50).evaluate(snapshot(storage=49_000), 2_000)

    assert not decision.can_proceed
    assert decision.exceeded == frozenset({QuotaDimension.STORAGE})
    assert decision.projected.storage_bytes == 51_000
    assert decision.projected.class_a_operations == 1


def test_projection_exactly_at_threshold_is_allowed() -> None:
    decision = QuotaGate(threshold_percent=50).evaluate(snapshot(storage=49_000), 1_000)

    assert decision.can_proceed
    assert decision.exceeded == frozenset()


def test_upload_counts_as_one_class_a_operation() -> None:
    decision = QuotaGate(threshold_percent=50).evaluate(snapshot(class_a=50), 0)

    assert decision.exceeded == frozenset({QuotaDimension.CLASS_A})


def test_class_b_is_compared_without_projection() -> None:
    gate = QuotaGate(threshold_percent=50)

    assert gate.evaluate(snapshot(class_b=500), 10).can_proceed
    assert gate.evaluate(snapshot(class_b=501), 10).exceeded == frozenset({QuotaDimension.CLASS_B})


def test_reports_every_exceeded_dimension_in_order() -> None:
    decision = QuotaGate(threshold_percent=50).evaluate(
        snapshot(storage=60_000, class_a=80, class_b=900), 1
    )

    assert decision.exceeded_sorted == ["storage", "classA", "classB"]


def test_zero_limit_leaves_no_headroom() -> None:
    limits = UsageLimits(storage_bytes=0, class_a_operations=100, class_b_operations=100)

    decision = QuotaGate().evaluate(snapshot(limits=limits), 1)

    assert QuotaDimension.STORAGE in decision.exceeded


@pytest.mark.parametrize("storage", [0, 10_000, 25_000, 40_000, 48_999, 49_999, 50_000])
@pytest.mark.parametrize("size", [0, 1, 1_000, 5_000, 20_000])
def test_decision_matches_projected_percentages(storage: int, size: int) -> None:
    decision = QuotaGate(threshold_percent=50).evaluate(snapshot(storage=storage), size)

    over = (storage + size) / LIMITS.storage_bytes * 100 > 50
    assert decision.can_proceed is (not over)
    assert (QuotaDimension.STORAGE in decision.exceeded) is over


def test_snapshot_is_not_mutated_by_projection() -> None:
    current = snapshot(storage=1_000, object_count=3)

    QuotaGate().evaluate(current, 500)

    assert current.storage_bytes == 1_000
    assert current.object_count == 3


def test_project_matches_evaluate_without_logging(caplog) -> None:
    gate = QuotaGate(threshold_percent=50)
    current = snapshot(storage=49_000)

    with caplog.at_level(logging.WARNING):
        quiet = gate.project(current, 2_000)
    assert caplog.records == []

    with caplog.at_level(logging.WARNING):
        logged = gate.evaluate(current, 2_000)
    assert logged == quiet
    assert [record.getMessage() for record in caplog.records] == ["quota.gate.exceeded"]
