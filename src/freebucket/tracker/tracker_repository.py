"""Monthly usage counters backed by SQLAlchemy."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..usage.billing_period import BillingPeriod, utcnow
from .tracker_db import UsageCounterModel
from .tracker_models import MonthlyUsage, TrackerOperation


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; every stored value is UTC.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class UsageCounterRepository:
    """One row per calendar month; a new month starts from zero."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def current_month(self) -> str:
        return BillingPeriod.containing(self._clock()).key

    def ensure_current_month(self) -> tuple[MonthlyUsage, bool]:
        """Return the current month's counters and whether the row was just created."""
        month = self.current_month()
        with self._session_factory() as session:
            row = session.get(UsageCounterModel, month)
            if row is not None:
                return self._to_domain(row), False
            now = self._clock()
            row = UsageCounterModel(
                month=month,
                storage_bytes=0,
                class_a_operations=0,
                class_b_operations=0,
                created_at=now,
                last_updated=now,
                storage_last_updated=now,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                # A concurrent request created the row first.
                session.rollback()
                return self._to_domain(session.get(UsageCounterModel, month)), False
            return self._to_domain(row), True

    def get_usage(self) -> MonthlyUsage:
        usage, _ = self.ensure_current_month()
        return usage

    def increment(self, operation: TrackerOperation, file_size: int = 0) -> MonthlyUsage:
        """Bump one counter in a single UPDATE so concurrent calls never lose counts."""
        self.ensure_current_month()
        month = self.current_month()
        now = self._clock()
        values: dict[str, object] = {"last_updated": now}
        if operation is TrackerOperation.CLASS_A:
            values["class_a_operations"] = UsageCounterModel.class_a_operations + 1
            if file_size > 0:
                values["storage_bytes"] = UsageCounterModel.storage_bytes + file_size
                values["storage_last_updated"] = now
        else:
            values["class_b_operations"] = UsageCounterModel.class_b_operations + 1

        with self._session_factory() as session:
            session.execute(
                update(UsageCounterModel)
                .where(UsageCounterModel.month == month)
                .values(**values)
            )
            session.commit()
            row = session.get(UsageCounterModel, month, populate_existing=True)
            return self._to_domain(row)

    def reset(self) -> MonthlyUsage:
        self.ensure_current_month()
        month = self.current_month()
        now = self._clock()
        with self._session_factory() as session:
            session.execute(
                update(UsageCounterModel)
                .where(UsageCounterModel.month == month)
                .values(
                    storage_bytes=0,
                    class_a_operations=0,
                    class_b_operations=0,
                    last_updated=now,
                    storage_last_updated=now,
                )
            )
            session.commit()
            row = session.get(UsageCounterModel, month, populate_existing=True)
            return self._to_domain(row)

    @staticmethod
    def _to_domain(row: UsageCounterModel) -> MonthlyUsage:
        return MonthlyUsage(
            month=row.month,
            storage_bytes=int(row.storage_bytes),
            class_a_operations=int(row.class_a_operations),
            class_b_operations=int(row.class_b_operations),
            created_at=_aware(row.created_at),
            last_updated=_aware(row.last_updated),
            storage_last_updated=_aware(row.storage_last_updated),
        )
