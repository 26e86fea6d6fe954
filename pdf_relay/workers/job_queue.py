"""Background worker pool for async relay jobs.

Jobs are queued by ID; each worker thread pops one and hands it to the
configured processor. The processor owns all job state changes.
"""

import logging
import queue
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class JobQueue:
    """FIFO queue drained by a fixed pool of daemon threads."""

    def __init__(self, processor: Callable[[str], None], maxsize: int = 0) -> None:
        self._processor = processor
        self._work_queue: "queue.Queue[str]" = queue.Queue(maxsize=maxsize)
        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()

    def enqueue(self, job_id: str) -> None:
        """Add a job to the processing queue.

        Raises:
            queue.Full: If the queue is bounded and at capacity.
        """
        self._work_queue.put_nowait(job_id)
        logger.info(f"[{job_id}] Job enqueued")

    def start_workers(self, num_workers: int = 2) -> None:
        """Start worker threads once; later calls are no-ops."""
        with self._lock:
            if self._threads:
                return
            for i in range(max(1, num_workers)):
                worker_thread = threading.Thread(target=self._worker, daemon=True, name=f"relay-worker-{i}")
                worker_thread.start()
                self._threads.append(worker_thread)
        logger.info(f"Started {len(self._threads)} relay workers")

    def process_next(self, timeout: Optional[float] = None) -> bool:
        """Run a single queued job on the calling thread. Returns False if none was waiting."""
        try:
            job_id = self._work_queue.get(timeout=timeout) if timeout else self._work_queue.get_nowait()
        except queue.Empty:
            return False
        self._run(job_id)
        return True

    def get_stats(self) -> dict:
        return {
            "queued": self._work_queue.qsize(),
            "workers": len(self._threads),
        }

    def _run(self, job_id: str) -> None:
        logger.info(f"[{job_id}] Processing started")
        try:
            self._processor(job_id)
        except Exception as e:
            logger.exception(f"[{job_id}] Processing failed: {e}")
        finally:
            self._work_queue.task_done()

    def _worker(self) -> None:
        logger.info("Job queue worker started")
        while True:
            job_id = self._work_queue.get()
            self._run(job_id)
