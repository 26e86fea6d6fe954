"""Fetch -> transform -> store-back pipeline.

Stages run strictly in order and report through a ``ProgressObserver``:

    downloading (10%) -> processing (30-80%) -> uploading (85%) -> completed (100%)

Nothing is retried; a failed stage ends the run. ``run`` raises the stage's
``RelayError`` (sync path); ``run_job`` records it on the job instead (async
path).
"""

from __future__ import annotations

import logging
import math
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from pdf_relay.core.exceptions import (
    EngineError,
    PayloadTooLargeError,
    RelayError,
    UpstreamError,
)
from pdf_relay.core.models import (
    DestinationHints,
    JobStatus,
    RelayResult,
    SourceMetadata,
    StoreHints,
    TransformRequest,
)
from pdf_relay.core.utils import reduction_percent, size_mb
from pdf_relay.engine.base import TransformEngine
from pdf_relay.pipeline.progress import ProgressObserver, RegistryObserver
from pdf_relay.stores.base import DestinationStore, SourceStore
from pdf_relay.workers.registry import JobRegistry

logger = logging.getLogger(__name__)

DOWNLOAD_PROGRESS = 10
PROCESS_START_PROGRESS = 30
PROCESS_SPAN = 50
PROCESS_END_PROGRESS = PROCESS_START_PROGRESS + PROCESS_SPAN
UPLOAD_PROGRESS = 85


def page_progress(page: int, total: int) -> int:
    """Map page ``page`` of ``total`` onto the 30-80% processing band."""
    if total <= 0:
        return PROCESS_START_PROGRESS
    page = max(0, min(page, total))
    return PROCESS_START_PROGRESS + math.floor(PROCESS_SPAN * page / total)


def output_title(source_title: str, suffix: str) -> str:
    stem = source_title[:-4] if source_title.lower().endswith(".pdf") else source_title
    return f"{stem}{suffix}"


def resolve_store_hints(hints: DestinationHints, metadata: SourceMetadata) -> StoreHints:
    """An explicit caller parent wins over the source document's container."""
    if hints.parent_id:
        return StoreHints(container_id=hints.parent_id, owner_id=hints.owner_id, inherited=False)
    return StoreHints(
        container_id=metadata.container_id,
        owner_id=hints.owner_id,
        inherited=metadata.container_id is not None,
    )


@contextmanager
def _stage(wrap: Callable[..., RelayError]) -> Iterator[None]:
    """Let RelayErrors through; convert anything else to ``wrap``'s error type."""
    try:
        yield
    except RelayError:
        raise
    except Exception as e:
        raise wrap(str(e) or e.__class__.__name__, original_error=e) from e


class PipelineOrchestrator:
    def __init__(
        self,
        source: SourceStore,
        destination: DestinationStore,
        engine: TransformEngine,
        registry: Optional[JobRegistry] = None,
        title_suffix: str = "_compressed",
        keep_original_if_larger: bool = True,
        completed_ttl: float = 3600.0,
        failed_ttl: float = 600.0,
    ) -> None:
        self.source = source
        self.destination = destination
        self.engine = engine
        self.registry = registry
        self.title_suffix = title_suffix
        self.keep_original_if_larger = keep_original_if_larger
        self.completed_ttl = completed_ttl
        self.failed_ttl = failed_ttl

    def run(
        self,
        request: TransformRequest,
        observer: Optional[ProgressObserver] = None,
        max_bytes: Optional[int] = None,
        metadata: Optional[SourceMetadata] = None,
    ) -> RelayResult:
        """Run every stage for ``request`` and return the stored result.

        Args:
            request: What to fetch, how to transform it, where to put it.
            observer: Receives stage/progress events.
            max_bytes: Reject bodies larger than this after download (sync path).
            metadata: Already-fetched source metadata; skips the metadata call.

        Raises:
            UpstreamError: Source or destination call failed.
            EngineError: Transform failed.
            PayloadTooLargeError: Body exceeded ``max_bytes``.
        """
        observer = observer or ProgressObserver()
        ref = request.source_ref

        # Stage 1: download
        observer.on_stage(JobStatus.DOWNLOADING, DOWNLOAD_PROGRESS, "Downloading source document...")
        with _stage(UpstreamError):
            if metadata is None:
                metadata = self.source.fetch_metadata(ref)
            data = self.source.fetch_bytes(ref)
        original_size = len(data)
        logger.info(f"Downloaded '{metadata.title}' ({size_mb(original_size):.2f}MB)")

        if max_bytes is not None and original_size > max_bytes:
            raise PayloadTooLargeError.for_sync(original_size, max_bytes)

        # Stage 2: transform
        observer.on_stage(
            JobStatus.PROCESSING,
            PROCESS_START_PROGRESS,
            f"Compressing {size_mb(original_size):.1f}MB document...",
        )

        def on_page(page: int, total: int) -> None:
            observer.on_progress(page_progress(page, total), f"Processed page {page} of {total}")

        with _stage(EngineError):
            transformed = self.engine.transform(data, request.fidelity, on_page)
        observer.on_progress(PROCESS_END_PROGRESS, "Compression complete")

        payload = transformed
        kept_original = False
        if self.keep_original_if_larger and len(transformed) >= original_size:
            logger.warning("Compression did not reduce size, storing original")
            payload = data
            kept_original = True
        del transformed

        # Stage 3: upload
        title = output_title(metadata.title, self.title_suffix)
        store_hints = resolve_store_hints(request.hints, metadata)
        observer.on_stage(JobStatus.UPLOADING, UPLOAD_PROGRESS, f"Uploading to {self.destination.name}...")

        def on_upload(sent: int, total: int) -> None:
            percent = round(sent * 100 / total) if total else 100
            observer.on_progress(UPLOAD_PROGRESS, f"Uploading to {self.destination.name} ({percent}%)")

        with _stage(UpstreamError):
            stored = self.destination.store(title, payload, store_hints, on_upload)

        result = RelayResult(
            original_size=original_size,
            transformed_size=len(payload),
            reduction_percent=reduction_percent(original_size, len(payload)),
            destination_handle=stored.handle,
            title=title,
            destination_url=stored.url,
            kept_original=kept_original,
        )
        logger.info(
            f"Relayed '{title}': {size_mb(result.original_size):.2f}MB -> "
            f"{size_mb(result.transformed_size):.2f}MB ({result.reduction_percent}%)"
        )
        return result

    def run_job(self, job_id: str) -> None:
        """Execute a queued job, recording the outcome on its registry record. Never raises."""
        if self.registry is None:
            raise RuntimeError("run_job requires a job registry")

        job = self.registry.get(job_id)
        if job is None:
            logger.warning(f"[{job_id}] Job vanished before processing")
            return

        start_time = time.time()
        try:
            result = self.run(job.params, RegistryObserver(self.registry, job_id))
        except RelayError as e:
            logger.error(f"[{job_id}] Job failed ({e.error_type}): {e.message}")
            self._finish_failed(job_id, e.message)
        except Exception as e:
            logger.exception(f"[{job_id}] Job failed with unexpected error: {e}")
            self._finish_failed(job_id, str(e) or e.__class__.__name__)
        else:
            self.registry.update(
                job_id,
                status=JobStatus.COMPLETED,
                message="Completed",
                result=result.to_dict(),
            )
            self.registry.sweep(job_id, after=self.completed_ttl)
            logger.info(f"[{job_id}] Job completed in {time.time() - start_time:.1f}s")

    def _finish_failed(self, job_id: str, message: str) -> None:
        self.registry.update(job_id, status=JobStatus.FAILED, message="Failed", error=message)
        self.registry.sweep(job_id, after=self.failed_ttl)
