"""Pydantic schemas for the counter service."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .tracker_models import TrackerOperation


class IncrementRequestSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    operation: TrackerOperation
    file_size: int = Field(default=0, ge=0, alias="fileSize")
