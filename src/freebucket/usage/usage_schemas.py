"""Pydantic schemas for usage responses."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class StorageUsageSchema(_CamelModel):
    current_gb: float = Field(alias="currentGB")
    current_bytes: int = Field(alias="currentBytes")
    object_count: int | None = Field(default=None, alias="objectCount")
    limit: float
    percentage: float


class OperationUsageSchema(_CamelModel):
    current_value: int = Field(alias="currentValue")
    limit: int
    percentage: float


class UsageReportSchema(_CamelModel):
    storage: StorageUsageSchema
    class_a: OperationUsageSchema = Field(alias="classA")
    class_b: OperationUsageSchema = Field(alias="classB")
    warnings: list[str] = Field(default_factory=list)
    should_block_uploads: bool = Field(alias="shouldBlockUploads")
    last_updated: datetime = Field(alias="lastUpdated")
    period: str
    source: str
    estimated: bool = False


class UsageResponseSchema(_CamelModel):
    usage: UsageReportSchema
    debug: dict[str, Any] | None = None


class UsageSummarySchema(_CamelModel):
    """Human-readable usage lines returned after an upload."""

    storage: str
    class_a: str = Field(alias="classA")
    class_b: str = Field(alias="classB")
