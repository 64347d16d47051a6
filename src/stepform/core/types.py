"""Core type definitions shared across stepform modules."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class FieldType(StrEnum):
    """Supported input kinds. Closed set: configuration with any other type is rejected."""

    TEXT = "text"
    EMAIL = "email"
    NUMBER = "number"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    FILE = "file"
    IMAGE_SELECT = "image-select"


class ValidationResult(BaseModel):
    """Result of validating a field set or step."""

    valid: bool
    errors: dict[str, list[str]] = Field(default_factory=dict)
    data: dict[str, Any] = Field(default_factory=dict)


class SubmissionResult(BaseModel):
    """Outcome of handing a finalized value set to the submission transport."""

    success: bool
    message: str = ""
    redirect_url: str | None = None
    errors: dict[str, list[str]] = Field(default_factory=dict)


class HealthStatus(BaseModel):
    """Health check response for any service."""

    service: str
    healthy: bool
    details: dict[str, Any] = Field(default_factory=dict)
