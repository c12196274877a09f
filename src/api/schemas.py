"""Pydantic request/response schemas for the FastAPI endpoints."""

from typing import Any

from pydantic import BaseModel


class FileInfo(BaseModel):
    """Metadata about the uploaded image."""

    original_name: str
    size: int
    content_type: str | None = None


class RecognitionResponse(BaseModel):
    """Response schema for a recognition request."""

    success: bool
    message: str
    kind: str
    data: dict[str, Any]
    file_info: FileInfo
    processing_time_ms: float


class UploadPolicyResponse(BaseModel):
    """Upload limits a client should respect."""

    max_file_size: int
    allowed_mime_types: list[str]
    supported_kinds: list[str]


class ConfigResponse(BaseModel):
    """Response schema for the public configuration endpoint."""

    success: bool
    data: UploadPolicyResponse


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    engine_configured: bool
