import os
import time
import uuid
import shutil
import asyncio
import logging
import threading
from typing import Any, Dict, Optional

from mutagen import MutagenError
from mutagen.mp4 import MP4

import config
from models.requests import ClipRequest
from services.downloader import SegmentDownloader
from services.errors import (
    ClippaError,
    JobNotFoundError,
    JobStateError,
    QueueFullError,
    StorageError,
    SubtitleError,
)
from services.job_store import Job, JobRepository, JobState, create_job_store
from services.probe import SourceProbe
from services.storage import StoredArtifact, create_storage, create_supabase_client
from services.subtitles import shift_vtt_file
from services.transcoder import ClipTranscoder, TranscodeOptions
from utils.ffmpeg_utils import check_ffmpeg_available, check_ytdlp_available, get_ffmpeg_version

logger = logging.getLogger(__name__)

WORK_DIR_PREFIX = "clippa-"
GENERIC_FAILURE = "An unexpected error occurred. Please try again."
RECORD_FAILURE = "The clip was created but could not be saved. Please try again."


class ClipService:
    """
    Owns the clip job lifecycle: admission, the download → subtitles →
    transcode → upload pipeline, terminal bookkeeping and retention sweeps.
    """

    def __init__(self, job_store: JobRepository, storage, downloader: Optional[SegmentDownloader] = None,
                 transcoder: Optional[ClipTranscoder] = None, temp_dir: Optional[str] = None,
                 max_concurrent: int = config.MAX_CONCURRENT_JOBS, max_queued: int = config.MAX_QUEUED_JOBS):
        self.job_store = job_store
        self.storage = storage
        self.downloader = downloader or SegmentDownloader()
        self.transcoder = transcoder or ClipTranscoder()
        self.temp_dir = temp_dir or config.TEMP_DIR
        self.max_concurrent = max_concurrent
        self.max_queued = max_queued
        self._admitted = 0
        self._slots: Optional[asyncio.Semaphore] = None
        self.cleanup_thread = None
        self._stop_cleanup = threading.Event()
        os.makedirs(self.temp_dir, exist_ok=True)
        logger.info(f"Initialized ClipService with temp_dir: {self.temp_dir}")

    # ------------------------------------------------------------------
    # Admission and pipeline
    # ------------------------------------------------------------------

    @property
    def admitted_jobs(self) -> int:
        return self._admitted

    def _get_slots(self) -> asyncio.Semaphore:
        if self._slots is None:
            self._slots = asyncio.Semaphore(self.max_concurrent)
        return self._slots

    def work_dir(self, job_id: str) -> str:
        return os.path.join(self.temp_dir, f"{WORK_DIR_PREFIX}{job_id}")

    def submit(self, request: ClipRequest) -> Job:
        """
        Admit a request and create its job record.

        Raises:
            QueueFullError: running plus waiting jobs already fill the queue.
        """
        if self._admitted >= self.max_concurrent + self.max_queued:
            raise QueueFullError("Too many clips are being processed. Please try again shortly.")
        job = self.job_store.create(Job(
            id=uuid.uuid4().hex,
            user_id=request.user_id,
            source_url=request.url,
        ))
        self._admitted += 1
        logger.info(f"Created clip job {job.id} for user {job.user_id}")
        return job

    async def run_job(self, job_id: str, request: ClipRequest) -> None:
        """Run the pipeline for an admitted job. Never raises."""
        work_dir = self.work_dir(job_id)
        try:
            async with self._get_slots():
                artifact = await self._run_pipeline(job_id, request, work_dir)
            self._record_success(job_id, artifact)
        except ClippaError as e:
            logger.error(f"Job {job_id} failed: {e}")
            self._record_failure(job_id, str(e))
        except Exception as e:
            logger.exception(f"Job {job_id} failed unexpectedly: {e}")
            self._record_failure(job_id, GENERIC_FAILURE)
        finally:
            self._admitted -= 1
            self._remove_work_dir(work_dir)

    async def _run_pipeline(self, job_id: str, request: ClipRequest, work_dir: str) -> StoredArtifact:
        os.makedirs(work_dir, exist_ok=True)
        logger.info(f"Job {job_id}: clipping {request.url} from {request.start_time} to {request.end_time} "
                    f"(crop={request.crop_ratio.value}, subtitles={request.subtitles})")

        download = await self.downloader.download(job_id, request, work_dir)

        subtitle_path = None
        if request.subtitles and download.subtitle_path:
            try:
                shift_vtt_file(download.subtitle_path, request.start_seconds, request.duration)
                subtitle_path = download.subtitle_path
            except SubtitleError as e:
                logger.warning(f"Job {job_id}: skipping subtitle burn-in: {e}")

        output_path = await self.transcoder.transcode(TranscodeOptions(
            input_path=download.video_path,
            output_path=os.path.join(work_dir, f"{job_id}.mp4"),
            crop_ratio=request.crop_ratio,
            subtitle_path=subtitle_path,
        ))

        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, self._insert_metadata, output_path, request)
        return await loop.run_in_executor(None, self.storage.store, job_id, output_path)

    def _insert_metadata(self, filepath: str, request: ClipRequest) -> None:
        try:
            clip = MP4(filepath)
            clip['\xa9cmt'] = [request.url]
            clip['desc'] = [f"{request.start_time}-{request.end_time}"]
            clip['\xa9too'] = ["Clippa"]
            clip.save()
        except (MutagenError, OSError) as e:
            logger.warning(f"Failed to tag clip {filepath}: {e}")

    def _record_success(self, job_id: str, artifact: StoredArtifact) -> None:
        try:
            self.job_store.complete(job_id, artifact.location, storage_path=artifact.storage_path,
                                    local_path=artifact.local_path)
            logger.info(f"Job {job_id} completed successfully: {artifact.location}")
        except (JobNotFoundError, JobStateError) as e:
            # The record is gone or already terminal; nobody can fetch this artifact
            logger.warning(f"Discarding clip for job {job_id}: {e}")
            self._remove_artifact(artifact.storage_path, artifact.local_path)
        except StorageError as e:
            logger.error(f"Could not record completion of job {job_id}: {e}")
            self._remove_artifact(artifact.storage_path, artifact.local_path)
            self._record_failure(job_id, RECORD_FAILURE)

    def _record_failure(self, job_id: str, message: str) -> None:
        try:
            self.job_store.fail(job_id, message)
        except ClippaError as e:
            logger.warning(f"Could not record failure of job {job_id}: {e}")

    def _remove_work_dir(self, work_dir: str) -> None:
        try:
            shutil.rmtree(work_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove work directory {work_dir}: {e}")

    def _remove_artifact(self, storage_path: Optional[str], local_path: Optional[str]) -> None:
        try:
            self.storage.remove(storage_path=storage_path, local_path=local_path)
        except StorageError as e:
            logger.error(f"Failed to remove artifact: {e}")

    # ------------------------------------------------------------------
    # Job queries and cleanup
    # ------------------------------------------------------------------

    def get_job(self, job_id: str) -> Job:
        job = self.job_store.get(job_id)
        if not job:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def delete_job(self, job_id: str) -> None:
        """
        Remove a finished job and its artifact.

        Raises:
            JobNotFoundError: unknown or already deleted id.
            JobStateError: the job is still processing.
            StorageError: the artifact could not be deleted; the record is kept.
        """
        job = self.get_job(job_id)
        if job.status == JobState.PROCESSING:
            raise JobStateError(f"Job {job_id} is still processing")
        self.storage.remove(storage_path=job.storage_path, local_path=job.local_path)
        if not self.job_store.delete(job_id):
            raise JobNotFoundError(f"Job {job_id} not found")
        logger.info(f"Cleaned up job {job_id}")

    def stats(self) -> Dict[str, Any]:
        jobs = self.job_store.list_jobs()
        return {
            "total_jobs": len(jobs),
            "ready_jobs": sum(1 for job in jobs if job.status == JobState.READY),
            "failed_jobs": sum(1 for job in jobs if job.status == JobState.ERROR),
            "processing_jobs": sum(1 for job in jobs if job.status == JobState.PROCESSING),
            "admitted_jobs": self._admitted,
            "concurrent_jobs_limit": self.max_concurrent,
            "queued_jobs_limit": self.max_queued,
        }

    def check_dependencies(self) -> Dict[str, bool]:
        deps = {
            'ffmpeg': check_ffmpeg_available(),
            'yt_dlp': check_ytdlp_available(),
        }
        if deps['ffmpeg']:
            version = get_ffmpeg_version()
            if version:
                logger.info(f"FFmpeg detected: {version}")
        return deps

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def start_cleanup_thread(self):
        if self.cleanup_thread is None:
            self._stop_cleanup.clear()
            self.cleanup_thread = threading.Thread(target=self._cleanup_worker, daemon=True)
            self.cleanup_thread.start()
            logger.info("Started automatic cleanup thread")

    def stop_cleanup_thread(self):
        self._stop_cleanup.set()
        if self.cleanup_thread and self.cleanup_thread.is_alive():
            self.cleanup_thread.join(timeout=2)
            if self.cleanup_thread.is_alive():
                logger.warning("Cleanup thread did not stop gracefully, continuing shutdown...")
        self.cleanup_thread = None
        logger.info("Stopped automatic cleanup thread")

    def _cleanup_worker(self):
        while not self._stop_cleanup.is_set():
            try:
                self.perform_cleanup()
            except Exception as e:
                logger.error(f"Error in cleanup worker: {e}")
            self._stop_cleanup.wait(config.CLEANUP_INTERVAL)

    def perform_cleanup(self, now: Optional[float] = None) -> Dict[str, int]:
        """Delete jobs, artifacts and stray work directories past retention."""
        logger.info("Starting automatic cleanup...")
        now = now if now is not None else time.time()
        cutoff = now - config.FILE_RETENTION_HOURS * 3600

        removed_jobs = 0
        for job in self.job_store.older_than(cutoff):
            self._remove_artifact(job.storage_path, job.local_path)
            try:
                if self.job_store.delete(job.id):
                    removed_jobs += 1
                    logger.info(f"Removed old job: {job.id}")
            except StorageError as e:
                logger.error(f"Failed to remove job {job.id}: {e}")

        removed_dirs = 0
        try:
            names = os.listdir(self.temp_dir)
        except OSError as e:
            logger.error(f"Cannot list {self.temp_dir}: {e}")
            names = []
        for name in names:
            path = os.path.join(self.temp_dir, name)
            if not name.startswith(WORK_DIR_PREFIX) or not os.path.isdir(path):
                continue
            try:
                if os.path.getmtime(path) < cutoff:
                    shutil.rmtree(path)
                    removed_dirs += 1
                    logger.info(f"Removed stale work directory: {path}")
            except OSError as e:
                logger.error(f"Failed to remove work directory {path}: {e}")

        logger.info(f"Cleanup completed. Removed jobs: {removed_jobs}, work dirs: {removed_dirs}")
        return {"removed_jobs": removed_jobs, "removed_work_dirs": removed_dirs}

    def cleanup_on_shutdown(self, budget_seconds: float = 3.0) -> None:
        """Drop local clips of jobs that will not survive the restart."""
        if self.job_store.persistent:
            return
        started = time.time()
        for job in self.job_store.list_jobs():
            if job.local_path:
                self._remove_artifact(None, job.local_path)
            # Timeout to prevent hanging
            if time.time() - started > budget_seconds:
                logger.warning("File cleanup timeout, continuing shutdown...")
                break


supabase_client = create_supabase_client()
job_store = create_job_store(config.JOB_STORE_BACKEND, supabase_client)
clipper = ClipService(job_store=job_store, storage=create_storage(supabase_client))
probe = SourceProbe()
