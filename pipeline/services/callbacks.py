"""
Callback reconciler for advertiser status callbacks.

Workflow:
1. Find the lead by transaction id (404 if unknown)
2. Require an assigned advertiser (its secret authenticates the callback)
3. Verify signature and replay-protect when the advertiser has a secret
4. Log the callback, accepted or not
5. Update advertiser status, payout and canonical status (forward only)
6. Create the automatic commission once for approved, paid conversions
"""
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from pipeline.exceptions import (
    AdvertiserNotAssigned,
    BrokerError,
    InvalidSignature,
    LeadNotFound,
    MissingSignature,
    ReplayDetected,
)
from pipeline.metrics import CALLBACKS_COUNTER
from pipeline.models import CallbackLog, Lead
from pipeline.services.ledger import record_conversion_commission
from pipeline.services.signing import ReplayGuard, verify

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')


@dataclass
class CallbackResult:
    lead: Lead
    status_changed: bool
    commission_created: bool


def _status_label(advertiser_status: str) -> str:
    # Advertiser vocabularies are open-ended; keep metric labels bounded
    if advertiser_status in (Lead.Status.APPROVED, Lead.Status.REJECTED, Lead.Status.PENDING):
        return advertiser_status
    return 'other'


def authenticate_callback(advertiser, raw_body: str, signature: Optional[str], timestamp: Optional[str],
                          replay_guard: ReplayGuard, now: Optional[float] = None) -> None:
    """
    Check a callback's signature headers against the advertiser secret.

    Advertisers without a secret are accepted unauthenticated, which is
    logged every time.

    Raises:
        MissingSignature: Secret configured but headers absent (when required)
        InvalidSignature: Verification failed
        ReplayDetected: The (timestamp, signature) pair was already used
    """
    if not advertiser.endpoint_secret:
        logger.warning(f"Advertiser {advertiser.id} has no secret, accepting unauthenticated callback")
        return

    if not signature or not timestamp:
        if settings.CALLBACK_REQUIRE_SIGNATURE:
            raise MissingSignature()
        logger.warning(f"Unsigned callback accepted for advertiser {advertiser.id}")
        return

    if not verify(advertiser.endpoint_secret, timestamp, raw_body, signature, now=now):
        raise InvalidSignature()

    if replay_guard.is_replay(timestamp, signature):
        raise ReplayDetected()


def reconcile_callback(data: dict, payload: dict, raw_body: str, signature: Optional[str] = None,
                       timestamp: Optional[str] = None, replay_guard: Optional[ReplayGuard] = None,
                       now: Optional[float] = None) -> CallbackResult:
    """
    Apply an advertiser callback to its lead.

    Args:
        data: Validated callback fields (az_tx_id, status, payout)
        payload: The full callback body, stored verbatim in the callback log
        raw_body: Exact request body the signature was computed over
        signature: X-Signature header value
        timestamp: X-Signature-Timestamp header value
        replay_guard: Replay cache, defaults to the shared cache
        now: Unix-time override for signature verification

    Returns:
        CallbackResult

    Raises:
        BrokerError: On unknown lead, missing advertiser or failed authentication
    """
    az_tx_id = data['az_tx_id']
    advertiser_status = data['status']
    payout = data.get('payout')
    if payout is not None:
        payout = Decimal(str(payout)).quantize(CENTS, rounding=ROUND_HALF_UP)
    replay_guard = replay_guard or ReplayGuard()
    advertiser = None

    try:
        lead = Lead.objects.select_related('advertiser').filter(az_tx_id=az_tx_id).first()
        if lead is None:
            raise LeadNotFound(f"Lead not found: {az_tx_id}")

        advertiser = lead.advertiser
        if advertiser is None:
            raise AdvertiserNotAssigned()

        authenticate_callback(advertiser, raw_body, signature, timestamp, replay_guard, now=now)
    except BrokerError as e:
        CallbackLog.objects.create(
            advertiser=advertiser,
            az_tx_id=az_tx_id,
            payload=payload,
            signature=signature,
            status_code=e.status_code,
            error_code=e.code,
        )
        CALLBACKS_COUNTER.labels(str(advertiser.id) if advertiser else 'unknown', e.code.lower()).inc()
        logger.warning(f"Callback for {az_tx_id} rejected: {e.code}")
        raise

    # Written outside the update transaction so it survives a failed update
    callback_log = CallbackLog.objects.create(
        advertiser=advertiser,
        az_tx_id=az_tx_id,
        payload=payload,
        signature=signature,
        status_code=200,
    )

    commission_created = False
    try:
        with transaction.atomic():
            lead = Lead.objects.select_for_update().get(id=lead.id)
            previous_status = lead.status
            status_changed = lead.apply_advertiser_status(
                advertiser_status,
                payout=payout,
                now=timezone.now(),
            )
            lead.save()

            if status_changed:
                logger.info(f"Lead {lead.id} status {previous_status} -> {lead.status} via callback")

            if (
                advertiser_status == Lead.Status.APPROVED
                and lead.status == Lead.Status.APPROVED
                and payout is not None
                and payout > 0
            ):
                _, commission_created = record_conversion_commission(
                    lead,
                    advertiser,
                    payout,
                    f"Conversion payout for {az_tx_id}",
                )
    except Exception:
        CallbackLog.objects.filter(pk=callback_log.pk).update(status_code=500, error_code=BrokerError.code)
        logger.error(f"Callback for {az_tx_id} failed while updating lead {lead.id}", exc_info=True)
        raise

    CALLBACKS_COUNTER.labels(str(advertiser.id), _status_label(advertiser_status)).inc()
    logger.info(
        f"Callback processed: az_tx_id={az_tx_id} status={advertiser_status} "
        f"advertiser={advertiser.id} external_id={data.get('external_id')} payout={payout}"
    )

    return CallbackResult(lead=lead, status_changed=status_changed, commission_created=commission_created)
