"""Models package for request and response schemas."""

from .requests import ClipRequest, CropRatio, SourceUrlQuery
from .responses import (
    ClipAccepted,
    JobStatus,
    CleanupResponse,
    FormatOption,
    FormatsResponse,
    HealthResponse,
    VideoInfoResponse,
)

__all__ = [
    'ClipRequest',
    'CropRatio',
    'SourceUrlQuery',
    'ClipAccepted',
    'JobStatus',
    'CleanupResponse',
    'FormatOption',
    'FormatsResponse',
    'HealthResponse',
    'VideoInfoResponse',
]
