"""
Where finished clips live.

Clips are uploaded to a Supabase Storage bucket and served from its public
URL. Clips above the upload limit, or every clip when no bucket is
configured, stay on local disk and are streamed by ``/api/clip/{id}/file``.
"""

import os
import shutil
import logging
from dataclasses import dataclass
from typing import Optional

import config
from services.errors import StorageError

logger = logging.getLogger(__name__)


@dataclass
class StoredArtifact:
    location: str
    storage_path: Optional[str] = None
    local_path: Optional[str] = None


def local_file_url(job_id: str) -> str:
    return f"/api/clip/{job_id}/file"


def create_supabase_client():
    """Create a Supabase client from configuration, or None when not configured."""
    if not config.SUPABASE_URL or not config.SUPABASE_SERVICE_KEY:
        logger.info("Supabase not configured (SUPABASE_URL/SUPABASE_SERVICE_KEY missing)")
        return None
    try:
        from supabase import create_client
        return create_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_KEY)
    except Exception as e:
        logger.warning(f"Supabase client creation failed: {e}")
        return None


class LocalStorage:
    """Keeps clips in ``output_dir`` on this host."""

    def __init__(self, output_dir: str = config.OUTPUT_DIR):
        self.output_dir = output_dir
        os.makedirs(self.output_dir, exist_ok=True)

    def store(self, job_id: str, source_path: str) -> StoredArtifact:
        target = os.path.join(self.output_dir, f"{job_id}.mp4")
        try:
            shutil.move(source_path, target)
        except OSError as e:
            raise StorageError(f"Failed to keep clip locally: {e}")
        logger.info(f"Stored clip for job {job_id} at {target}")
        return StoredArtifact(location=local_file_url(job_id), local_path=target)

    def remove(self, storage_path: Optional[str] = None, local_path: Optional[str] = None) -> None:
        if not local_path:
            return
        try:
            os.remove(local_path)
            logger.info(f"Removed local clip {local_path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Failed to remove {local_path}: {e}")


class SupabaseStorage:
    """Uploads clips to a Supabase Storage bucket, falling back to local disk."""

    def __init__(self, client, bucket: str = config.SUPABASE_BUCKET,
                 max_upload_mb: float = config.STORAGE_MAX_UPLOAD_MB,
                 fallback: Optional[LocalStorage] = None):
        self._client = client
        self.bucket = bucket
        self.max_upload_bytes = int(max_upload_mb * 1024 * 1024)
        self.fallback = fallback or LocalStorage()

    def _bucket(self):
        return self._client.storage.from_(self.bucket)

    def store(self, job_id: str, source_path: str) -> StoredArtifact:
        size = os.path.getsize(source_path)
        if size > self.max_upload_bytes:
            logger.info(f"Clip for job {job_id} is {size} bytes, above the upload limit; keeping it locally")
            return self.fallback.store(job_id, source_path)

        key = f"clips/{job_id}.mp4"
        try:
            with open(source_path, 'rb') as f:
                self._bucket().upload(
                    path=key,
                    file=f.read(),
                    file_options={
                        "content-type": "video/mp4",
                        "cache-control": "3600",
                        "upsert": "true",
                    },
                )
            public_url = self._bucket().get_public_url(key)
        except Exception as e:
            raise StorageError(f"Upload to bucket '{self.bucket}' failed: {e}")

        try:
            os.remove(source_path)
        except OSError as e:
            logger.warning(f"Failed to remove uploaded file {source_path}: {e}")

        logger.info(f"Uploaded clip for job {job_id} to {self.bucket}/{key}")
        return StoredArtifact(location=public_url, storage_path=key)

    def remove(self, storage_path: Optional[str] = None, local_path: Optional[str] = None) -> None:
        if storage_path:
            try:
                self._bucket().remove([storage_path])
            except Exception as e:
                raise StorageError(f"Failed to delete {storage_path} from bucket '{self.bucket}': {e}")
            logger.info(f"Removed {self.bucket}/{storage_path}")
        self.fallback.remove(local_path=local_path)


def create_storage(supabase_client=None):
    if supabase_client is not None:
        return SupabaseStorage(supabase_client)
    return LocalStorage()
