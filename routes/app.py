"""
API endpoints for application management and statistics.
"""

import logging
from datetime import datetime
from fastapi import APIRouter, HTTPException

import config
from services.clipper import clipper
from services.errors import ClippaError

# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=dict)
async def root():
    """Root endpoint with API information."""
    return {
        "message": "Clippa API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }


@router.get("/stats")
async def get_stats():
    """Get API statistics."""
    try:
        stats = clipper.stats()
    except ClippaError as e:
        logger.error(f"Failed to collect stats: {e}")
        raise HTTPException(status_code=500, detail="Job store unavailable")

    stats.update({
        "job_store": config.JOB_STORE_BACKEND,
        "ffmpeg_threads": config.FFMPEG_THREADS,
        "ytdl_concurrent_fragments": config.YTDL_CONCURRENT_FRAGMENTS,
        "retention_hours": config.FILE_RETENTION_HOURS,
        "timestamp": datetime.now().isoformat()
    })
    return stats


@router.post("/cleanup")
async def trigger_cleanup():
    """Manually trigger cleanup of old jobs and files."""
    try:
        result = clipper.perform_cleanup()
    except ClippaError as e:
        logger.error(f"Manual cleanup failed: {e}")
        raise HTTPException(status_code=500, detail=f"Cleanup failed: {str(e)}")
    return {"message": "Cleanup completed successfully", **result}
