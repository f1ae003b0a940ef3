"""
Celery tasks for async lead forwarding.
"""
import logging
from contextlib import contextmanager

from celery import shared_task
from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from django.utils import timezone

from pipeline.models import Lead
from pipeline.services.delivery import deliver_lead

logger = logging.getLogger(__name__)


def backoff_delay(attempt_no: int, base: int = None) -> int:
    """Seconds to wait after failed attempt N: base, 2*base, 4*base, ..."""
    if base is None:
        base = settings.FORWARD_BACKOFF_BASE_SECONDS
    return base * 2 ** (attempt_no - 1)


@contextmanager
def lead_lock(lead_id: int):
    """
    Single-flight guard per lead.

    Yields True when this execution owns the lead. The lock expires on its
    own so a crashed worker cannot block the lead forever.
    """
    key = f"forward-lock:{lead_id}"
    acquired = cache.add(key, 1, timeout=settings.FORWARD_LOCK_TIMEOUT_SECONDS)
    try:
        yield acquired
    finally:
        if acquired:
            cache.delete(key)


@shared_task(
    bind=True,
    acks_late=True,
    max_retries=None,
)
def forward_lead(self, lead_id: int):
    """
    Forward a lead to the advertiser its mapping points to.

    The attempt number is derived from the job's retry count, so a manual
    retry (a fresh job) starts counting at 1 again. Transient failures are
    rescheduled with exponential backoff until FORWARD_MAX_ATTEMPTS.

    Args:
        lead_id: ID of the Lead to forward
    """
    max_attempts = settings.FORWARD_MAX_ATTEMPTS
    attempt_no = self.request.retries + 1

    with lead_lock(lead_id) as acquired:
        if not acquired:
            # Re-queued with the same retry count, so no attempt is consumed
            countdown = settings.FORWARD_LOCK_RETRY_SECONDS
            logger.warning(f"Lead {lead_id} is locked by another execution, re-queueing in {countdown}s")
            self.apply_async(args=(lead_id,), countdown=countdown, retries=self.request.retries)
            return 'locked'

        try:
            result = deliver_lead(lead_id, attempt_no, max_attempts)
        except Lead.DoesNotExist:
            logger.error(f"Lead {lead_id} not found in database")
            raise

    if result.outcome.should_retry:
        countdown = backoff_delay(attempt_no)
        logger.info(f"Lead {lead_id}: scheduling attempt {attempt_no + 1} in {countdown}s")
        # Raise to hand the retry to Celery
        raise self.retry(countdown=countdown, max_retries=max_attempts - 1)

    return result.outcome.value


def retry_lead(lead_id: int, scheduler) -> None:
    """
    Operator retry: reset the lead to pending and enqueue a fresh forward job.

    This is the only path from a terminal status back to pending. The reset
    and the enqueue share a transaction: if the job cannot be queued, the
    lead keeps its previous status. The UPDATE holds the row lock until commit, and
    the delivery executor locks it before its status check, so a job picked
    up early waits for the reset.

    Raises:
        Lead.DoesNotExist: If the lead is unknown
    """
    with transaction.atomic():
        updated = Lead.objects.filter(id=lead_id).update(
            status=Lead.Status.PENDING,
            updated_at=timezone.now(),
        )
        if not updated:
            raise Lead.DoesNotExist(f"Lead {lead_id} not found")

        scheduler.enqueue(lead_id)
    logger.info(f"Lead {lead_id} manual retry initiated")
