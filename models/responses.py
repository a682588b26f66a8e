"""Response models for the Clippa API."""

from typing import Optional, Dict, List
from pydantic import BaseModel


class ClipAccepted(BaseModel):
    id: str
    status: str


class JobStatus(BaseModel):
    """Job status response model."""

    id: str
    status: str
    url: Optional[str] = None
    error: Optional[str] = None
    storagePath: Optional[str] = None


class CleanupResponse(BaseModel):
    success: bool


class FormatOption(BaseModel):
    format_id: str
    label: str


class FormatsResponse(BaseModel):
    formats: List[FormatOption]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    dependencies: Dict[str, bool]


class VideoInfoResponse(BaseModel):
    """Video information response."""

    title: str
    description: Optional[str] = None
    duration: Optional[str] = None
    uploader: Optional[str] = None
    thumbnail: Optional[str] = None
