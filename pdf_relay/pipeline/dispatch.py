"""Sync vs async admission for relay requests."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from pdf_relay.core.exceptions import ServiceBusyError
from pdf_relay.core.models import (
    ExecutionMode,
    JobStatus,
    RelayResult,
    SourceMetadata,
    TransformRequest,
)
from pdf_relay.core.utils import BYTES_PER_MB, new_token, redact_url_for_log, size_mb
from pdf_relay.pipeline.orchestrator import PipelineOrchestrator
from pdf_relay.pipeline.progress import LoggingObserver
from pdf_relay.stores.base import SourceStore
from pdf_relay.workers.job_queue import JobQueue
from pdf_relay.workers.registry import JobRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchPolicy:
    async_threshold_bytes: int = 20 * BYTES_PER_MB
    seconds_per_mb: float = 1.0
    request_budget_seconds: float = 25.0

    def estimate_seconds(self, size: int) -> float:
        return size_mb(size) * self.seconds_per_mb

    def decide(self, size: Optional[int]) -> ExecutionMode:
        if size is None:
            return ExecutionMode.ASYNC
        if size >= self.async_threshold_bytes:
            return ExecutionMode.ASYNC
        if self.estimate_seconds(size) > self.request_budget_seconds:
            return ExecutionMode.ASYNC
        return ExecutionMode.SYNC

    @property
    def max_sync_bytes(self) -> int:
        """Largest body ``decide`` would still run synchronously."""
        limit = self.async_threshold_bytes - 1
        if self.seconds_per_mb > 0:
            budget_bytes = int(self.request_budget_seconds / self.seconds_per_mb * BYTES_PER_MB)
            limit = min(limit, budget_bytes)
        return max(0, limit)


@dataclass(frozen=True)
class DispatchOutcome:
    mode: ExecutionMode
    result: Optional[RelayResult] = None
    job_id: Optional[str] = None


class Dispatcher:
    """Decides once per request whether to relay inline or in the background."""

    def __init__(
        self,
        policy: DispatchPolicy,
        orchestrator: PipelineOrchestrator,
        registry: JobRegistry,
        job_queue: JobQueue,
        source: SourceStore,
    ) -> None:
        self.policy = policy
        self.orchestrator = orchestrator
        self.registry = registry
        self.job_queue = job_queue
        self.source = source

    def probe_metadata(self, source_ref: str) -> Optional[SourceMetadata]:
        """Return source metadata, or None when it cannot be fetched."""
        try:
            return self.source.fetch_metadata(source_ref)
        except Exception as e:
            logger.warning(f"Size probe failed for {redact_url_for_log(source_ref)}: {e}")
            return None

    def choose_mode(
        self, request: TransformRequest, metadata: Optional[SourceMetadata] = None
    ) -> ExecutionMode:
        if request.force_async:
            return ExecutionMode.ASYNC
        return self.policy.decide(metadata.size if metadata else None)

    def submit(self, request: TransformRequest) -> DispatchOutcome:
        """Relay ``request`` inline or queue it as a job.

        Raises:
            ValidationError: The source reference is malformed.
            RelayError: Sync run failed, or the job could not be queued.
        """
        self.source.validate_ref(request.source_ref)
        metadata = None if request.force_async else self.probe_metadata(request.source_ref)
        mode = self.choose_mode(request, metadata)
        if mode is ExecutionMode.SYNC:
            run_id = new_token(4)
            logger.info(f"[sync:{run_id}] Running inline")
            result = self.orchestrator.run(
                request,
                LoggingObserver(run_id),
                max_bytes=self.policy.max_sync_bytes,
                metadata=metadata,
            )
            return DispatchOutcome(mode=mode, result=result)

        job_id = self.registry.create(request)
        try:
            self.job_queue.enqueue(job_id)
        except Exception as e:
            logger.error(f"[{job_id}] Failed to enqueue job: {e}")
            self.registry.update(
                job_id,
                status=JobStatus.FAILED,
                message="Failed",
                error="Job queue is full",
            )
            self.registry.sweep(job_id, after=self.orchestrator.failed_ttl)
            raise ServiceBusyError("Server is busy. Please try again shortly.", original_error=e) from e
        return DispatchOutcome(mode=mode, job_id=job_id)
