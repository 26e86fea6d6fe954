"""In-memory job registry for async relay jobs.

The registry is the single source of truth for job visibility. It stores the
immutable request snapshot and small result metadata only, never document
bytes.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from collections import Counter
from typing import Any, Callable, Dict, Optional

from pdf_relay.core.models import Job, JobStatus, TransformRequest
from pdf_relay.core.utils import new_token
from pdf_relay.workers.scheduler import DeadlineScheduler

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = ("status", "progress", "message", "result", "error")


class JobRegistry:
    def __init__(
        self,
        scheduler: DeadlineScheduler,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._scheduler = scheduler
        self._clock = clock
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def create(self, params: TransformRequest) -> str:
        """Create a queued job and return its ID."""
        with self._lock:
            job_id = new_token()
            while job_id in self._jobs:
                job_id = new_token()
            self._jobs[job_id] = Job(id=job_id, params=params, created_at=self._clock())

        logger.info(f"[{job_id}] Job created")
        return job_id

    def get(self, job_id: str) -> Optional[Job]:
        """Return a snapshot of the job, or None if unknown or swept."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            snapshot = dataclasses.replace(job)
            if job.result is not None:
                snapshot.result = dict(job.result)
            return snapshot

    def update(self, job_id: str, **patch: Any) -> bool:
        """Merge ``patch`` into the job.

        Returns False without raising when the job no longer exists or is
        already terminal.
        """
        unknown = set(patch) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update job fields: {sorted(unknown)}")

        status = patch.get("status")
        if status is not None:
            status = JobStatus(status)
        if patch.get("error") is not None and status is not JobStatus.FAILED:
            raise ValueError("error can only be set together with status=failed")
        if patch.get("result") is not None and status is not JobStatus.COMPLETED:
            raise ValueError("result can only be set together with status=completed")

        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                logger.debug(f"[{job_id}] Update skipped: job already swept")
                return False
            if job.status.is_terminal:
                logger.warning(f"[{job_id}] Update ignored: job already {job.status.value}")
                return False

            if status is not None:
                job.status = status
            if "message" in patch and patch["message"] is not None:
                job.message = patch["message"]

            if job.status is JobStatus.COMPLETED:
                job.progress = 100
            elif "progress" in patch and patch["progress"] is not None:
                job.progress = max(job.progress, min(99, int(patch["progress"])))

            if job.status.is_terminal:
                job.completed_at = self._clock()
                job.result = patch.get("result")
                job.error = patch.get("error")

            progress = job.progress
            current = job.status

        if status is not None:
            logger.info(f"[{job_id}] Status updated: {current.value} ({progress}%)")
        else:
            logger.debug(f"[{job_id}] Progress: {progress}% - {patch.get('message', '')}")
        return True

    def sweep(self, job_id: str, after: float) -> None:
        """Delete the job once ``after`` seconds have elapsed, if it is terminal by then."""
        self._scheduler.schedule(after, lambda: self._expire(job_id), label=f"sweep:{job_id}")

    def _expire(self, job_id: str) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            if not job.status.is_terminal:
                logger.warning(f"[{job_id}] Sweep skipped: job still {job.status.value}")
                return
            del self._jobs[job_id]
        logger.info(f"[{job_id}] Job swept")

    def stats(self) -> Dict[str, int]:
        with self._lock:
            counts = Counter(job.status.value for job in self._jobs.values())
        return {status.value: counts.get(status.value, 0) for status in JobStatus}
