"""
API endpoints for clip jobs.
"""

import os
import re
import logging

from fastapi import APIRouter, HTTPException, BackgroundTasks, Request
from fastapi.responses import FileResponse, RedirectResponse, StreamingResponse

from models.requests import ClipRequest
from models.responses import ClipAccepted, JobStatus, CleanupResponse
from services.clipper import clipper
from services.errors import JobNotFoundError, JobStateError, QueueFullError, StorageError
from services.job_store import JobState

# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/clip")

RANGE_CHUNK_SIZE = 1024 * 1024


def _job_or_404(job_id: str):
    try:
        return clipper.get_job(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    except StorageError as e:
        logger.error(f"Failed to read job {job_id}: {e}")
        raise HTTPException(status_code=500, detail="Job store unavailable")


@router.post("", response_model=ClipAccepted, status_code=202)
async def create_clip_job(request: ClipRequest, background_tasks: BackgroundTasks):
    """Accept a clip request and process it in the background."""
    try:
        job = clipper.submit(request)
    except QueueFullError as e:
        raise HTTPException(status_code=429, detail=str(e))
    except StorageError as e:
        logger.error(f"Failed to create job: {e}")
        raise HTTPException(status_code=500, detail="Job store unavailable")

    background_tasks.add_task(clipper.run_job, job.id, request)

    return ClipAccepted(id=job.id, status=job.status.value)


@router.get("/{job_id}", response_model=JobStatus)
async def get_clip_status(job_id: str):
    """Get job status by ID."""
    job = _job_or_404(job_id)
    return JobStatus(**job.to_public_dict())


@router.delete("/{job_id}/cleanup", response_model=CleanupResponse)
async def cleanup_clip(job_id: str):
    """Delete a finished job and its stored clip."""
    try:
        clipper.delete_job(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    except JobStateError:
        raise HTTPException(status_code=409, detail="Job is still processing")
    except StorageError as e:
        logger.error(f"Cleanup of job {job_id} failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete clip from storage")
    return CleanupResponse(success=True)


def range_file_response(path: str, request: Request, content_type: str = "video/mp4", filename: str = "clip.mp4"):
    """Serve ``path`` honouring a single ``bytes=`` range."""
    file_size = os.path.getsize(path)
    disposition = {"Content-Disposition": f'attachment; filename="{filename}"'}
    range_header = request.headers.get("range")
    if not range_header:
        return FileResponse(path, media_type=content_type, filename=filename,
                            headers={"Accept-Ranges": "bytes"})

    match = re.match(r"bytes=(\d*)-(\d*)$", range_header.strip())
    if not match or (not match.group(1) and not match.group(2)):
        return FileResponse(path, media_type=content_type, filename=filename,
                            headers={"Accept-Ranges": "bytes"})

    if match.group(1):
        start = int(match.group(1))
        end = int(match.group(2)) if match.group(2) else file_size - 1
    else:
        # Suffix range: the last N bytes
        start = max(0, file_size - int(match.group(2)))
        end = file_size - 1
    end = min(end, file_size - 1)

    if start > end or start >= file_size:
        raise HTTPException(status_code=416, detail="Range Not Satisfiable",
                            headers={"Content-Range": f"bytes */{file_size}"})

    length = end - start + 1

    def iterfile():
        with open(path, "rb") as f:
            f.seek(start)
            remaining = length
            while remaining > 0:
                data = f.read(min(RANGE_CHUNK_SIZE, remaining))
                if not data:
                    break
                remaining -= len(data)
                yield data

    headers = {
        "Content-Range": f"bytes {start}-{end}/{file_size}",
        "Accept-Ranges": "bytes",
        "Content-Length": str(length),
        **disposition,
    }
    return StreamingResponse(iterfile(), status_code=206, media_type=content_type, headers=headers)


@router.get("/{job_id}/file")
async def download_clip(job_id: str, request: Request):
    """Stream a locally kept clip, or redirect to its public URL."""
    job = _job_or_404(job_id)

    if job.status != JobState.READY:
        raise HTTPException(status_code=409, detail=f"Job status: {job.status.value}")

    if not job.local_path:
        if job.result_location:
            return RedirectResponse(job.result_location, status_code=307)
        raise HTTPException(status_code=404, detail="File not found")

    if not os.path.exists(job.local_path):
        raise HTTPException(status_code=410, detail="File no longer available")

    return range_file_response(job.local_path, request)
