"""Thread pool of upload workers for the in-process queue."""

import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from asset_ingest.errors import AssetIngestError
from asset_ingest.queue.memory import InMemoryJobQueue, Lease
from asset_ingest.services.upload_processor import UploadProcessor

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for worker processes."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
    )


class WorkerPool:
    """Bounded pool of threads, each leasing one job at a time.

    Files inside a job are processed sequentially by the worker that holds
    the lease; parallelism only exists across jobs.
    """

    def __init__(
        self,
        queue: InMemoryJobQueue,
        processor: UploadProcessor,
        concurrency: int = 4,
        poll_timeout: float = 1.0,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.queue = queue
        self.processor = processor
        self.concurrency = concurrency
        self.poll_timeout = poll_timeout
        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()
        self._jobs_processed = 0
        self._jobs_failed = 0
        self._started_at: Optional[datetime] = None

    def start(self) -> None:
        """Start the worker threads."""
        if any(t.is_alive() for t in self._threads):
            logger.warning("Worker pool already running")
            return

        self._stop_event.clear()
        self._started_at = datetime.utcnow()
        self._threads = [
            threading.Thread(target=self._run_loop, name=f"upload-worker-{i}", daemon=True)
            for i in range(self.concurrency)
        ]
        for thread in self._threads:
            thread.start()
        logger.info(f"Worker pool started with {self.concurrency} workers")

    def stop(self, timeout: float = 10.0) -> None:
        """Stop accepting jobs and wait for in-flight jobs to finish."""
        logger.info("Stopping worker pool...")
        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []
        logger.info(f"Worker pool stopped ({self._jobs_processed} jobs processed, {self._jobs_failed} failed)")

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            lease = self.queue.lease(timeout=self.poll_timeout)
            if lease is None:
                continue
            self.handle(lease)

    def handle(self, lease: Lease) -> None:
        """Process one leased job and settle the lease."""
        try:
            self.processor.process(lease.payload, attempt=lease.attempt, max_attempts=lease.max_attempts)
        except AssetIngestError as e:
            if e.retryable and not lease.is_final_attempt:
                self.queue.retry(lease, str(e))
            else:
                self.queue.fail(lease, str(e))
                self._count(failed=True)
        except Exception as e:
            logger.exception(f"Unexpected error processing upload job {lease.job_id}")
            self.queue.fail(lease, f"{type(e).__name__}: {e}")
            self._count(failed=True)
        else:
            self.queue.ack(lease)
            self._count(failed=False)

    def _count(self, failed: bool) -> None:
        with self._lock:
            self._jobs_processed += 1
            if failed:
                self._jobs_failed += 1

    def get_status(self) -> Dict[str, Any]:
        """Get current pool status."""
        return {
            "running": any(t.is_alive() for t in self._threads),
            "concurrency": self.concurrency,
            "jobs_processed": self._jobs_processed,
            "jobs_failed": self._jobs_failed,
            "started_at": self._started_at.isoformat() if self._started_at else None,
        }
