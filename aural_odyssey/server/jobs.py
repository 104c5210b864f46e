"""In-memory job store for long-running book jobs, with TTL cleanup.

WHY: Chapter extraction and book analysis send a whole book to the model
and can take a minute or more for a large PDF. The HTTP API returns a job
ID immediately and does the work in the background; clients poll for the
result. An in-memory store is enough for a single-user reading assistant
with no persistence requirements.

HOW: Three components work together:
  JobStatus  — enum of valid job states
  Job        — dataclass holding the job's kind, input document, status,
               and result
  JobStore   — thread-safe dict-based store with create/update/get/list/delete
               and TTL cleanup

RULES:
- All store mutations are protected by threading.Lock
- Uploaded book bytes live in a per-job temp directory, removed with the job
- TTL-based expiry removes finished jobs and their temp directories
- Job IDs are uuid4 hex strings generated at creation time
- Default TTL is 1 hour (3600 seconds)
"""

from __future__ import annotations

import enum
import logging
import shutil
import tempfile
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600


class JobKind(str, enum.Enum):
    """What a job does with its book.

    RULES:
    - storyteller: extract the first chapter and chunk it for narration
    - analysis: answer a question about the book
    """

    STORYTELLER = "storyteller"
    ANALYSIS = "analysis"


class JobStatus(str, enum.Enum):
    """Valid states for a book job.

    RULES:
    - pending: job created, not yet started
    - processing: the model is reading the book
    - completed: result is ready
    - failed: unrecoverable error
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Job:
    """Metadata, input, and result for a single book job.

    RULES:
    - id: uuid4 hex string, immutable after creation
    - kind: JobKind chosen by the endpoint that created the job
    - filename: sanitised uploaded filename; the book is stored at
      work_dir / filename
    - config: request parameters (e.g. {"question": ...} for analysis)
    - result: JSON-serialisable dict once status is COMPLETED, else None
    - error: error message if status is FAILED, else None
    """

    id: str
    kind: JobKind
    status: JobStatus
    filename: str
    work_dir: Path
    created_at: float
    updated_at: float
    completed_at: Optional[float] = None
    error: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)
    result: Optional[Dict[str, Any]] = None

    @property
    def input_path(self) -> Path:
        return self.work_dir / self.filename


class JobStore:
    """Thread-safe in-memory store for book jobs.

    WHY: API requests and background tasks touch job state concurrently.

    HOW: Jobs live in a dict keyed by job ID; every access takes
    self._lock. cleanup_expired() drops finished jobs older than the TTL.

    RULES:
    - create_job() raises ValueError once max_jobs are stored
    - get_job() returns None for missing job IDs (no exceptions)
    - delete_job() removes the job and its temp directory
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_jobs: int = 100,
    ) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self.max_jobs = max_jobs

    def create_job(
        self,
        kind: JobKind,
        filename: str,
        config: Optional[Dict[str, Any]] = None,
    ) -> Job:
        """Create a PENDING job with its own temp directory."""
        with self._lock:
            if len(self._jobs) >= self.max_jobs:
                raise ValueError(
                    "Maximum number of concurrent jobs ({}) reached".format(
                        self.max_jobs
                    )
                )

            job_id = uuid.uuid4().hex
            now = time.time()
            work_dir = Path(tempfile.mkdtemp(prefix="aural_job_"))

            job = Job(
                id=job_id,
                kind=kind,
                status=JobStatus.PENDING,
                filename=filename,
                work_dir=work_dir,
                created_at=now,
                updated_at=now,
                config=config or {},
            )
            self._jobs[job_id] = job

        logger.info("Created %s job %s for %s", kind.value, job_id, filename)
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def list_jobs(self) -> List[Job]:
        """All jobs, oldest first."""
        with self._lock:
            return sorted(self._jobs.values(), key=lambda j: j.created_at)

    def update_job(
        self,
        job_id: str,
        status: Optional[JobStatus] = None,
        error: Optional[str] = None,
        result: Optional[Dict[str, Any]] = None,
    ) -> Optional[Job]:
        """Apply non-None updates; stamp completed_at on terminal states.

        Returns the updated Job, or None if job_id is unknown.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None

            now = time.time()
            if status is not None:
                job.status = status
            if error is not None:
                job.error = error
            if result is not None:
                job.result = result
            job.updated_at = now

            if job.status in (JobStatus.COMPLETED, JobStatus.FAILED):
                job.completed_at = now

            return job

    def delete_job(self, job_id: str) -> bool:
        """Delete a job and its temp directory. Returns False if unknown."""
        with self._lock:
            job = self._jobs.pop(job_id, None)

        if job is None:
            return False

        self._cleanup_work_dir(job.work_dir)
        logger.info("Deleted job %s", job_id)
        return True

    def cleanup_expired(self) -> int:
        """Remove finished jobs whose completed_at is older than the TTL.

        Returns the count of removed jobs.
        """
        now = time.time()
        expired_jobs: List[Job] = []

        with self._lock:
            for job_id, job in list(self._jobs.items()):
                if job.status not in (JobStatus.COMPLETED, JobStatus.FAILED):
                    continue
                if job.completed_at is None:
                    continue
                if now - job.completed_at > self._ttl_seconds:
                    expired_jobs.append(self._jobs.pop(job_id))

        for job in expired_jobs:
            self._cleanup_work_dir(job.work_dir)
            logger.info("Expired job %s (completed %.0fs ago)", job.id, now - job.completed_at)

        return len(expired_jobs)

    @staticmethod
    def _cleanup_work_dir(work_dir: Path) -> None:
        """Remove a job's temp directory; log and continue on failure."""
        if work_dir.exists():
            try:
                shutil.rmtree(work_dir)
            except OSError:
                logger.warning("Failed to clean up temp dir: %s", work_dir)
