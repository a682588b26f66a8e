"""
Job repositories.

Pipelines and routes only talk to ``JobRepository``; the backing store
(process memory, JSON files on disk or a Supabase table) is picked from
configuration. Every backend enforces the same lifecycle: a job is created in
``processing`` and moves exactly once to ``ready`` or ``error``.
"""

import os
import json
import time
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from enum import Enum
from threading import Lock
from typing import Any, Dict, List, Optional

import config
from services.errors import JobNotFoundError, JobStateError, StorageError

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


@dataclass
class Job:
    id: str
    user_id: str
    source_url: str
    status: JobState = JobState.PROCESSING
    result_location: Optional[str] = None
    storage_path: Optional[str] = None
    local_path: Optional[str] = None
    error: Optional[str] = None
    created_at: float = 0.0
    updated_at: float = 0.0

    def __post_init__(self):
        self.status = JobState(self.status)
        if not self.created_at:
            self.created_at = time.time()
        if not self.updated_at:
            self.updated_at = self.created_at

    @property
    def is_terminal(self) -> bool:
        return self.status != JobState.PROCESSING

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['status'] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Job':
        fields = cls.__dataclass_fields__
        return cls(**{key: value for key, value in data.items() if key in fields})

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "url": self.result_location,
            "error": self.error,
            "storagePath": self.storage_path,
        }


def _check_transition(job: Job, status: JobState) -> None:
    if status == JobState.PROCESSING:
        raise JobStateError("A job can only finish as ready or error")
    if job.is_terminal:
        raise JobStateError(f"Job {job.id} already finished as {job.status.value}")


class JobRepository(ABC):
    """Create, read, finish and delete jobs by id."""

    # Whether records survive a restart of this process
    persistent = True

    @abstractmethod
    def create(self, job: Job) -> Job:
        ...

    @abstractmethod
    def get(self, job_id: str) -> Optional[Job]:
        ...

    @abstractmethod
    def finish(self, job_id: str, status: JobState, **fields) -> Job:
        """
        Move a processing job to a terminal state.

        Raises:
            JobNotFoundError: no job with this id.
            JobStateError: the job already finished.
        """

    @abstractmethod
    def delete(self, job_id: str) -> bool:
        """Remove a job record. Returns False if it did not exist."""

    @abstractmethod
    def list_jobs(self) -> List[Job]:
        ...

    def complete(self, job_id: str, result_location: str, storage_path: Optional[str] = None,
                 local_path: Optional[str] = None) -> Job:
        return self.finish(job_id, JobState.READY, result_location=result_location,
                           storage_path=storage_path, local_path=local_path)

    def fail(self, job_id: str, error: str) -> Job:
        return self.finish(job_id, JobState.ERROR, error=error)

    def older_than(self, cutoff: float) -> List[Job]:
        return [job for job in self.list_jobs() if job.created_at < cutoff]


class MemoryJobRepository(JobRepository):
    """Jobs kept in a dict; lost on restart, single instance only."""

    persistent = False

    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._lock = Lock()

    def create(self, job: Job) -> Job:
        with self._lock:
            self._jobs[job.id] = job
        return job

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return Job.from_dict(job.to_dict()) if job else None

    def finish(self, job_id: str, status: JobState, **fields) -> Job:
        status = JobState(status)
        with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                raise JobNotFoundError(f"Job {job_id} not found")
            _check_transition(job, status)
            job.status = status
            for key, value in fields.items():
                setattr(job, key, value)
            job.updated_at = time.time()
            return Job.from_dict(job.to_dict())

    def delete(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def list_jobs(self) -> List[Job]:
        with self._lock:
            return [Job.from_dict(job.to_dict()) for job in self._jobs.values()]


class FileJobRepository(JobRepository):
    """One JSON document per job under ``root``."""

    def __init__(self, root: str):
        self._root = root
        self._lock = Lock()
        os.makedirs(self._root, exist_ok=True)

    @property
    def root(self) -> str:
        return self._root

    def _path(self, job_id: str) -> str:
        if not job_id or os.sep in job_id or job_id.startswith('.'):
            raise JobNotFoundError(f"Job {job_id} not found")
        return os.path.join(self._root, f"{job_id}.json")

    def _read(self, path: str) -> Optional[Job]:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return Job.from_dict(json.load(f))
        except FileNotFoundError:
            return None
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Unreadable job record {path}: {e}")
            return None

    def _write(self, job: Job) -> None:
        path = self._path(job.id)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(job.to_dict(), f)
        os.replace(tmp_path, path)

    def create(self, job: Job) -> Job:
        with self._lock:
            self._write(job)
        return job

    def get(self, job_id: str) -> Optional[Job]:
        try:
            path = self._path(job_id)
        except JobNotFoundError:
            return None
        with self._lock:
            return self._read(path)

    def finish(self, job_id: str, status: JobState, **fields) -> Job:
        status = JobState(status)
        with self._lock:
            job = self._read(self._path(job_id))
            if not job:
                raise JobNotFoundError(f"Job {job_id} not found")
            _check_transition(job, status)
            job.status = status
            for key, value in fields.items():
                setattr(job, key, value)
            job.updated_at = time.time()
            self._write(job)
            return job

    def delete(self, job_id: str) -> bool:
        try:
            path = self._path(job_id)
        except JobNotFoundError:
            return False
        with self._lock:
            try:
                os.remove(path)
                return True
            except FileNotFoundError:
                return False

    def list_jobs(self) -> List[Job]:
        with self._lock:
            names = [name for name in os.listdir(self._root) if name.endswith('.json')]
            jobs = [self._read(os.path.join(self._root, name)) for name in names]
        return [job for job in jobs if job]


class SupabaseJobRepository(JobRepository):
    """
    Jobs stored as rows of a Supabase (Postgres) table.

    Terminal writes are conditional on ``status = 'processing'`` so a
    duplicate completion from another worker cannot overwrite the first.
    """

    def __init__(self, client, table: str = config.SUPABASE_JOBS_TABLE):
        self._client = client
        self._table = table

    def _query(self):
        return self._client.table(self._table)

    def create(self, job: Job) -> Job:
        try:
            self._query().insert(job.to_dict()).execute()
        except Exception as e:
            raise StorageError(f"Failed to create job {job.id}: {e}")
        return job

    def get(self, job_id: str) -> Optional[Job]:
        try:
            response = self._query().select("*").eq("id", job_id).limit(1).execute()
        except Exception as e:
            raise StorageError(f"Failed to read job {job_id}: {e}")
        rows = response.data or []
        return Job.from_dict(rows[0]) if rows else None

    def finish(self, job_id: str, status: JobState, **fields) -> Job:
        status = JobState(status)
        if status == JobState.PROCESSING:
            raise JobStateError("A job can only finish as ready or error")
        update = dict(fields, status=status.value, updated_at=time.time())
        try:
            response = (
                self._query()
                .update(update)
                .eq("id", job_id)
                .eq("status", JobState.PROCESSING.value)
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to update job {job_id}: {e}")
        rows = response.data or []
        if rows:
            return Job.from_dict(rows[0])

        existing = self.get(job_id)
        if not existing:
            raise JobNotFoundError(f"Job {job_id} not found")
        raise JobStateError(f"Job {job_id} already finished as {existing.status.value}")

    def delete(self, job_id: str) -> bool:
        try:
            response = self._query().delete().eq("id", job_id).execute()
        except Exception as e:
            raise StorageError(f"Failed to delete job {job_id}: {e}")
        return bool(response.data)

    def list_jobs(self) -> List[Job]:
        try:
            response = self._query().select("*").execute()
        except Exception as e:
            raise StorageError(f"Failed to list jobs: {e}")
        return [Job.from_dict(row) for row in response.data or []]

    def older_than(self, cutoff: float) -> List[Job]:
        try:
            response = self._query().select("*").lt("created_at", cutoff).execute()
        except Exception as e:
            raise StorageError(f"Failed to list old jobs: {e}")
        return [Job.from_dict(row) for row in response.data or []]


def create_job_store(backend: str = config.JOB_STORE_BACKEND, supabase_client=None) -> JobRepository:
    """Build the repository named by ``backend``."""
    if backend == "memory":
        return MemoryJobRepository()
    if backend == "file":
        return FileJobRepository(config.JOBS_DIR)
    if backend == "supabase":
        if supabase_client is None:
            raise RuntimeError("JOB_STORE_BACKEND=supabase requires SUPABASE_URL and SUPABASE_SERVICE_KEY")
        return SupabaseJobRepository(supabase_client)
    raise ValueError(f"Unknown job store backend: {backend}")
