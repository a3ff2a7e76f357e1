"""In-process job queue with leases and redelivery."""

import functools
import heapq
import itertools
import logging
import threading
import time
import uuid
from collections import deque
from datetime import datetime
from typing import Callable, Deque, Dict, List, Optional, Tuple

from asset_ingest.queue.base import BaseJobQueue
from asset_ingest.schemas.queue import JobSnapshot, JobState, QueueStats, RetryPolicy
from asset_ingest.schemas.upload_job import UploadJobPayload

logger = logging.getLogger(__name__)


class Lease:
    """A worker's time-bounded claim on one job delivery."""

    def __init__(
        self,
        job_id: str,
        payload: UploadJobPayload,
        attempt: int,
        max_attempts: int,
        token: str,
        expires_at: float,
    ):
        self.job_id = job_id
        self.payload = payload
        self.attempt = attempt
        self.max_attempts = max_attempts
        self.token = token
        self.expires_at = expires_at

    @property
    def is_final_attempt(self) -> bool:
        return self.attempt >= self.max_attempts

    def __repr__(self):
        return f"<Lease(job_id={self.job_id}, attempt={self.attempt}/{self.max_attempts})>"


class _Entry:
    __slots__ = ("payload", "policy", "snapshot", "token", "expires_at", "finished_clock")

    def __init__(self, payload: UploadJobPayload, policy: RetryPolicy, snapshot: JobSnapshot):
        self.payload = payload
        self.policy = policy
        self.snapshot = snapshot
        self.token: Optional[str] = None
        self.expires_at = 0.0
        self.finished_clock: Optional[float] = None


def _reports_expired(method):
    """Run ``on_failed`` for jobs the reaper failed, after the lock is released."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        finally:
            self._flush_failures()

    return wrapper


class InMemoryJobQueue(BaseJobQueue):
    """Thread-safe FIFO queue for a single process.

    Workers call ``lease`` and must finish with ``ack``, ``retry`` or
    ``fail`` before the lease expires. An expired lease is redelivered
    (counting as an attempt), and any later call made with it is ignored.
    Retries wait ``RetryPolicy.delay_for(attempt)`` seconds.

    A lease that expires on the last attempt fails the job with no worker
    left to record it; ``on_failed(job_id, reason)`` is called for those
    jobs once the queue lock is released. Finished jobs are forgotten
    ``finished_ttl`` seconds after they complete or fail.

    Example:
        >>> queue = InMemoryJobQueue(lease_timeout=60)
        >>> queue.enqueue(payload.job_id, payload)
        True
        >>> lease = queue.lease(timeout=1)
        >>> queue.ack(lease)
        True
    """

    def __init__(
        self,
        lease_timeout: float = 300.0,
        default_retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        on_failed: Optional[Callable[[str, str], None]] = None,
        finished_ttl: float = 3600.0,
    ):
        super().__init__(default_retry_policy)
        self.lease_timeout = lease_timeout
        self.on_failed = on_failed
        self.finished_ttl = finished_ttl
        self._expired_failures: List[Tuple[str, str]] = []
        self._clock = clock
        self._cond = threading.Condition()
        self._entries: Dict[str, _Entry] = {}
        self._ready: Deque[str] = deque()
        self._delayed: List[Tuple[float, int, str]] = []
        self._seq = itertools.count()
        self._closed = False

    def enqueue(
        self,
        job_id: str,
        payload: UploadJobPayload,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> bool:
        policy = retry_policy or self.default_retry_policy
        with self._cond:
            if self._closed:
                raise RuntimeError("Queue is closed")
            if job_id in self._entries:
                logger.warning(f"Upload job {job_id} already queued, ignoring duplicate")
                return False

            self._entries[job_id] = _Entry(
                payload,
                policy,
                JobSnapshot(
                    id=job_id,
                    state=JobState.WAITING,
                    max_attempts=policy.attempts,
                    created_at=datetime.utcnow(),
                ),
            )
            self._ready.append(job_id)
            self._cond.notify()

        logger.info(f"Upload job {job_id} queued for processing")
        return True

    @_reports_expired
    def lease(self, timeout: Optional[float] = None) -> Optional[Lease]:
        """Block until a job is ready and claim it.

        Args:
            timeout: Seconds to wait; None waits until a job arrives or the queue closes

        Returns:
            Lease, or None on timeout or close
        """
        deadline = None if timeout is None else self._clock() + timeout
        with self._cond:
            while True:
                now = self._clock()
                self._reap_expired(now)
                self._promote_delayed(now)

                if self._ready:
                    return self._claim(self._ready.popleft(), now)
                if self._closed:
                    return None

                wait = self._next_wakeup(now)
                if deadline is not None:
                    remaining = deadline - now
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    @_reports_expired
    def ack(self, lease: Lease) -> bool:
        """Mark a leased job completed. Returns False for a stale lease."""
        with self._cond:
            entry = self._current(lease)
            if entry is None:
                return False
            self._finish(entry, JobState.COMPLETED)
            return True

    @_reports_expired
    def retry(self, lease: Lease, error: str) -> bool:
        """Schedule another attempt after the backoff delay.

        Returns:
            True if rescheduled, False if attempts are exhausted (job failed)
            or the lease is stale
        """
        with self._cond:
            entry = self._current(lease)
            if entry is None:
                return False
            entry.snapshot.last_error = error
            if entry.snapshot.attempts >= entry.policy.attempts:
                self._finish(entry, JobState.FAILED)
                logger.error(f"Upload job {lease.job_id} failed after {entry.snapshot.attempts} attempts: {error}")
                return False

            delay = entry.policy.delay_for(entry.snapshot.attempts)
            entry.token = None
            entry.snapshot.state = JobState.DELAYED
            heapq.heappush(self._delayed, (self._clock() + delay, next(self._seq), lease.job_id))
            self._cond.notify()

        logger.warning(f"Upload job {lease.job_id} will retry in {delay:.1f}s: {error}")
        return True

    @_reports_expired
    def fail(self, lease: Lease, error: str) -> bool:
        """Mark a leased job failed without further attempts."""
        with self._cond:
            entry = self._current(lease)
            if entry is None:
                return False
            entry.snapshot.last_error = error
            self._finish(entry, JobState.FAILED)
            return True

    @_reports_expired
    def get_status(self, job_id: str) -> Optional[JobSnapshot]:
        with self._cond:
            self._reap_expired(self._clock())
            entry = self._entries.get(job_id)
            return entry.snapshot.model_copy() if entry else None

    @_reports_expired
    def stats(self) -> QueueStats:
        with self._cond:
            self._reap_expired(self._clock())
            counts = QueueStats()
            for entry in self._entries.values():
                state = entry.snapshot.state
                setattr(counts, state, getattr(counts, state) + 1)
            return counts

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def _flush_failures(self) -> None:
        with self._cond:
            failures, self._expired_failures = self._expired_failures, []
        if self.on_failed is None:
            return
        for job_id, reason in failures:
            try:
                self.on_failed(job_id, reason)
            except Exception:
                logger.exception(f"Failure callback raised for upload job {job_id}")

    # ----- internals (call with the condition held) -------------------

    def _claim(self, job_id: str, now: float) -> Lease:
        entry = self._entries[job_id]
        entry.token = uuid.uuid4().hex
        entry.expires_at = now + self.lease_timeout
        snapshot = entry.snapshot
        snapshot.state = JobState.ACTIVE
        snapshot.attempts += 1
        snapshot.processed_at = datetime.utcnow()
        return Lease(job_id, entry.payload, snapshot.attempts, entry.policy.attempts, entry.token, entry.expires_at)

    def _current(self, lease: Lease) -> Optional[_Entry]:
        self._reap_expired(self._clock())
        entry = self._entries.get(lease.job_id)
        if entry is None or entry.token != lease.token:
            logger.warning(f"Ignoring stale lease for upload job {lease.job_id}")
            return None
        return entry

    def _finish(self, entry: _Entry, state: str) -> None:
        entry.token = None
        entry.finished_clock = self._clock()
        entry.snapshot.state = state
        entry.snapshot.finished_at = datetime.utcnow()

    def _reap_expired(self, now: float) -> None:
        for job_id, entry in self._entries.items():
            if entry.token is None or entry.expires_at > now:
                continue
            entry.token = None
            entry.snapshot.last_error = "Lease expired"
            if entry.snapshot.attempts >= entry.policy.attempts:
                self._finish(entry, JobState.FAILED)
                self._expired_failures.append((job_id, "Lease expired on the last attempt"))
                logger.error(f"Upload job {job_id} lease expired on its last attempt")
            else:
                entry.snapshot.state = JobState.WAITING
                self._ready.append(job_id)
                logger.warning(f"Upload job {job_id} lease expired, redelivering")

        expired = [
            job_id
            for job_id, entry in self._entries.items()
            if entry.finished_clock is not None and now - entry.finished_clock >= self.finished_ttl
        ]
        for job_id in expired:
            del self._entries[job_id]

    def _promote_delayed(self, now: float) -> None:
        while self._delayed and self._delayed[0][0] <= now:
            _, _, job_id = heapq.heappop(self._delayed)
            self._entries[job_id].snapshot.state = JobState.WAITING
            self._ready.append(job_id)

    def _next_wakeup(self, now: float) -> Optional[float]:
        candidates = [self._delayed[0][0]] if self._delayed else []
        candidates.extend(e.expires_at for e in self._entries.values() if e.token is not None)
        if not candidates:
            return None
        return max(min(candidates) - now, 0.0)
