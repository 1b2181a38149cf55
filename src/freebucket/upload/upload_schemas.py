"""Pydantic schemas for upload responses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from ..usage.usage_schemas import UsageSummarySchema


class ProcessingMetaSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str
    size_bytes: int = Field(alias="sizeBytes")
    content_type: str = Field(alias="contentType")
    processing_time_ms: float = Field(alias="processingTimeMs")
    usage_source: str = Field(alias="usageSource")
    usage_estimated: bool = Field(alias="usageEstimated")
    accounted: bool
    environment: str


class UploadSuccessSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    message: str = "File uploaded successfully"
    usage: UsageSummarySchema
    processing_meta: ProcessingMetaSchema | None = Field(default=None, alias="processingMeta")


class UploadErrorSchema(BaseModel):
    error: str
    message: str | None = None
