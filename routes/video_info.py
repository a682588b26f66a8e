"""
API endpoints that look up a source video without downloading it.
"""

import logging
from fastapi import APIRouter, HTTPException, Query
from pydantic import ValidationError

from models.requests import SourceUrlQuery
from models.responses import FormatsResponse, VideoInfoResponse
from services.clipper import probe
from services.errors import ProbeError

# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def _source_url(url: str) -> str:
    try:
        return SourceUrlQuery(url=url).url
    except ValidationError:
        raise HTTPException(status_code=400, detail="A valid url is required")


@router.get("/formats", response_model=FormatsResponse)
async def get_formats(url: str = Query("", description="Video URL")):
    """List the qualities a clip can be requested in."""
    source = _source_url(url)
    try:
        formats = await probe.get_formats(source)
    except ProbeError as e:
        logger.error(f"Error fetching formats: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    return FormatsResponse(formats=formats)


@router.get("/metadata", response_model=VideoInfoResponse)
async def get_video_info_endpoint(url: str = Query("", description="Video URL")):
    """Get video information without starting a clip job."""
    source = _source_url(url)
    try:
        video_info = await probe.get_video_info(source)
    except ProbeError as e:
        logger.error(f"Error getting video info: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    return VideoInfoResponse(**video_info)
