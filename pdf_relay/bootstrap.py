"""Runtime wiring and bootstrap for background workers and the sweep scheduler."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from pdf_relay.config import RuntimeConfig
from pdf_relay.engine import create_engine
from pdf_relay.engine.base import TransformEngine
from pdf_relay.pipeline.dispatch import DispatchPolicy, Dispatcher
from pdf_relay.pipeline.orchestrator import PipelineOrchestrator
from pdf_relay.stores import build_destination_store, build_source_store
from pdf_relay.stores.base import DestinationStore, SourceStore
from pdf_relay.workers.job_queue import JobQueue
from pdf_relay.workers.registry import JobRegistry
from pdf_relay.workers.scheduler import DeadlineScheduler

logger = logging.getLogger(__name__)


class RelayRuntime:
    """Everything one process needs to accept, run and report relay jobs."""

    def __init__(
        self,
        config: RuntimeConfig,
        source: SourceStore,
        destination: DestinationStore,
        engine: TransformEngine,
        scheduler: Optional[DeadlineScheduler] = None,
    ) -> None:
        self.config = config
        self.source = source
        self.destination = destination
        self.engine = engine
        self.scheduler = scheduler or DeadlineScheduler()
        self.registry = JobRegistry(self.scheduler)
        self.orchestrator = PipelineOrchestrator(
            source,
            destination,
            engine,
            registry=self.registry,
            title_suffix=config.output_title_suffix,
            keep_original_if_larger=config.keep_original_if_larger,
            completed_ttl=config.completed_job_ttl_seconds,
            failed_ttl=config.failed_job_ttl_seconds,
        )
        self.job_queue = JobQueue(self.orchestrator.run_job)
        self.policy = DispatchPolicy(
            async_threshold_bytes=config.async_threshold_bytes,
            seconds_per_mb=config.seconds_per_mb,
            request_budget_seconds=config.request_budget_seconds,
        )
        self.dispatcher = Dispatcher(self.policy, self.orchestrator, self.registry, self.job_queue, source)

        self._start_lock = threading.Lock()
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        """Start worker threads and the sweep scheduler once; later calls are no-ops."""
        with self._start_lock:
            if self._started:
                return
            self.job_queue.start_workers(self.config.async_workers)
            self.scheduler.start(self.config.sweep_interval_seconds)
            self._started = True

        if not self.engine.is_available():
            logger.warning(f"Transform engine '{self.engine.name}' is not available; jobs will fail")


def build_runtime(
    config: RuntimeConfig,
    source: Optional[SourceStore] = None,
    destination: Optional[DestinationStore] = None,
    engine: Optional[TransformEngine] = None,
) -> RelayRuntime:
    """Build a runtime from config; any collaborator can be injected instead."""
    if engine is None:
        engine = create_engine(
            config.transform_engine,
            gs_base_dpi=config.gs_base_dpi,
            gs_min_timeout_seconds=config.gs_min_timeout_seconds,
            raster_base_dpi=config.raster_base_dpi,
            work_dir=config.work_dir,
        )
    return RelayRuntime(
        config,
        source=source or build_source_store(config),
        destination=destination or build_destination_store(config),
        engine=engine,
    )
