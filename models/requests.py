"""Request models for the Clippa API."""

import re
from enum import Enum
from typing import Optional
from urllib.parse import urlparse
from pydantic import BaseModel, validator, Field, root_validator

import config
from utils.timecodes import parse_timestamp

FORMAT_ID_PATTERN = re.compile(r'^[A-Za-z0-9_\-+]{1,64}$')


class CropRatio(str, Enum):
    ORIGINAL = "original"
    VERTICAL = "vertical"
    SQUARE = "square"


def _check_url(v: str) -> str:
    parsed = urlparse(v.strip())
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise ValueError("Invalid URL")
    return v.strip()


class ClipRequest(BaseModel):
    """Request model for a clip job."""

    url: str = Field(..., description="Video URL (YouTube, Instagram, ...)")
    start_time: str = Field(..., alias="startTime", description="Clip start (HH:MM:SS[.mmm])")
    end_time: str = Field(..., alias="endTime", description="Clip end (HH:MM:SS[.mmm])")
    subtitles: bool = Field(default=False, description="Burn subtitles into the clip")
    crop_ratio: CropRatio = Field(default=CropRatio.ORIGINAL, alias="cropRatio")
    format_id: Optional[str] = Field(None, alias="formatId", description="yt-dlp format id")
    user_id: str = Field(..., alias="userId", min_length=1)

    @validator('url')
    def validate_url(cls, v):
        return _check_url(v)

    @validator('start_time', 'end_time')
    def validate_time(cls, v):
        v = v.strip()
        parse_timestamp(v)
        return v

    @validator('format_id')
    def validate_format_id(cls, v):
        if v in (None, ""):
            return None
        if not FORMAT_ID_PATTERN.match(v):
            raise ValueError("Invalid format id")
        return v

    @root_validator(skip_on_failure=True)
    def validate_range(cls, values):
        start = parse_timestamp(values['start_time'])
        end = parse_timestamp(values['end_time'])
        if end <= start:
            raise ValueError("endTime must be after startTime")
        if end - start > config.MAX_CLIP_DURATION:
            raise ValueError(f"Clips cannot be longer than {config.MAX_CLIP_DURATION} seconds")
        return values

    @property
    def start_seconds(self) -> float:
        return parse_timestamp(self.start_time)

    @property
    def end_seconds(self) -> float:
        return parse_timestamp(self.end_time)

    @property
    def duration(self) -> float:
        return round(self.end_seconds - self.start_seconds, 3)


class SourceUrlQuery(BaseModel):
    """Query model for endpoints that probe a source URL."""

    url: str = Field(..., description="Video URL")

    @validator('url')
    def validate_url(cls, v):
        return _check_url(v)
