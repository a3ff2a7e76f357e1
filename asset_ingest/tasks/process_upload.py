"""Upload processing task."""

import logging
from typing import Any, Dict, Optional

from asset_ingest.celery_app import celery_app
from asset_ingest.errors import AssetIngestError
from asset_ingest.pipeline import Pipeline
from asset_ingest.schemas.queue import RetryPolicy
from asset_ingest.schemas.upload_job import UploadJobPayload

logger = logging.getLogger(__name__)

_pipeline: Optional[Pipeline] = None


def get_pipeline() -> Pipeline:
    """Build the worker's collaborators on first use."""
    global _pipeline
    if _pipeline is None:
        _pipeline = Pipeline.from_settings(queue_backend="celery")
    return _pipeline


@celery_app.task(bind=True, name="asset_ingest.tasks.process_upload.process_upload")
def process_upload(self, message: Dict[str, Any], retry_policy: Optional[Dict[str, Any]] = None) -> Optional[dict]:
    """
    Process an upload job delivered by Celery.

    The attempt number is the larger of Celery's retry count and the
    deliveries recorded in the queue snapshot, so broker redeliveries after
    a lost worker count against the limit too.

    Args:
        message: ``UploadJobPayload.to_message()`` output
        retry_policy: ``RetryPolicy`` fields chosen at enqueue time

    Returns:
        Final job details, or None when the job ran out of attempts
    """
    pipeline = get_pipeline()
    queue = pipeline.queue
    policy = RetryPolicy(**retry_policy) if retry_policy else queue.default_retry_policy
    payload = UploadJobPayload.from_message(message)
    job_id = payload.job_id

    deliveries = queue.mark_active(job_id, policy.attempts)
    attempt = max(deliveries, self.request.retries + 1)

    if attempt > policy.attempts:
        reason = f"Attempts exhausted: delivered {attempt} times, limit is {policy.attempts}"
        logger.error(f"Upload job {job_id} not processed: {reason}")
        pipeline.processor.fail_job(job_id, reason)
        queue.mark_failed(job_id, reason)
        return None

    logger.info(f"Starting upload job {job_id} (attempt {attempt}/{policy.attempts})")

    try:
        details = pipeline.processor.process(payload, attempt=attempt, max_attempts=policy.attempts)
    except AssetIngestError as e:
        if e.retryable and attempt < policy.attempts:
            delay = policy.delay_for(attempt)
            queue.mark_retry(job_id, str(e))
            logger.warning(f"Upload job {job_id} retrying in {delay:.1f}s: {e}")
            raise self.retry(exc=e, countdown=delay, max_retries=policy.attempts - 1)
        queue.mark_failed(job_id, str(e))
        raise
    except Exception as e:
        logger.exception(f"Error processing upload job {job_id}: {e}")
        reason = f"{type(e).__name__}: {e}"
        # Errors outside the file loop (e.g. a soft time limit) are not recorded by the processor
        pipeline.processor.fail_job(job_id, reason)
        queue.mark_failed(job_id, reason)
        raise

    queue.mark_completed(job_id)
    return details
