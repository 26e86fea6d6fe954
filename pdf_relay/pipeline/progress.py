"""Progress observers for pipeline runs.

The orchestrator emits stage and progress events; observers decide where they
go (the job registry for async runs, the log for sync runs).
"""

import logging

from pdf_relay.core.models import JobStatus
from pdf_relay.workers.registry import JobRegistry

logger = logging.getLogger(__name__)


class ProgressObserver:
    """Base observer; ignores every event."""

    def on_stage(self, status: JobStatus, progress: int, message: str) -> None:
        pass

    def on_progress(self, progress: int, message: str) -> None:
        pass


class LoggingObserver(ProgressObserver):
    """Sync runs: progress goes to the log only."""

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id

    def on_stage(self, status: JobStatus, progress: int, message: str) -> None:
        logger.info(f"[sync:{self.run_id}] {status.value} ({progress}%): {message}")

    def on_progress(self, progress: int, message: str) -> None:
        logger.debug(f"[sync:{self.run_id}] {progress}%: {message}")


class RegistryObserver(ProgressObserver):
    """Async runs: every event becomes a registry update for the job."""

    def __init__(self, registry: JobRegistry, job_id: str) -> None:
        self.registry = registry
        self.job_id = job_id

    def on_stage(self, status: JobStatus, progress: int, message: str) -> None:
        self.registry.update(self.job_id, status=status, progress=progress, message=message)

    def on_progress(self, progress: int, message: str) -> None:
        self.registry.update(self.job_id, progress=progress, message=message)
