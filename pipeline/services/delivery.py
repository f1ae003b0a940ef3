"""
Delivery executor: one forward attempt for one lead.

Workflow:
1. Load lead; anything but pending is a no-op
2. Resolve mapping; a miss ends in no_mapping, never retried
3. Build payload, merge the transaction id, sign if the advertiser has a secret
4. POST with a bounded timeout
5. Record a ForwardAttempt whatever happened
6. Classify: 2xx forwarded, other non-5xx forward_failed (no retry),
   5xx or transport error retried until the last attempt
"""
import enum
import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx
from django.conf import settings
from django.db import transaction

from pipeline.metrics import FORWARD_ATTEMPTS_COUNTER, FORWARD_LATENCY_HISTOGRAM
from pipeline.models import FieldMapping, ForwardAttempt, Lead
from pipeline.services.advertiser_client import encode_body, post_lead, response_body
from pipeline.services.routing import endpoint_for, resolve_mapping
from pipeline.services.signing import signature_headers
from pipeline.services.transformer import TX_ID_KEY, build_payload

logger = logging.getLogger(__name__)


class Outcome(str, enum.Enum):
    FORWARDED = 'forwarded'
    NO_MAPPING = 'no_mapping'
    CLIENT_ERROR = 'client_error'
    RETRY = 'retry'
    EXHAUSTED = 'exhausted'
    SKIPPED = 'skipped'

    @property
    def should_retry(self) -> bool:
        return self is Outcome.RETRY


@dataclass
class DeliveryResult:
    outcome: Outcome
    attempt_no: int
    status_code: Optional[int] = None
    error: Optional[str] = None


def build_request(lead: Lead, advertiser, url: str) -> dict:
    """Outbound request (url, headers, body) for a lead, signed when required."""
    fields = build_payload(
        lead,
        lead.raw_payload,
        FieldMapping.objects.filter(advertiser=advertiser),
    )
    # Merged last so a misconfigured rule cannot override it
    payload = {**fields, TX_ID_KEY: lead.az_tx_id}
    body = encode_body(payload)

    headers = {
        'Content-Type': 'application/json',
        'User-Agent': settings.FORWARD_USER_AGENT,
    }
    if advertiser.endpoint_secret:
        headers.update(signature_headers(advertiser.endpoint_secret, body))
    else:
        logger.info(f"Advertiser {advertiser.id} has no secret, sending lead {lead.id} unsigned")

    return {'url': url, 'headers': headers, 'body': body, 'payload': payload}


def _record_attempt(lead, attempt_no, request, response=None, error=None, latency_ms=None):
    audit_request = {
        'url': request['url'],
        'headers': request['headers'],
        'body': request['payload'],
    }

    if response is not None:
        return ForwardAttempt.objects.create(
            lead=lead,
            attempt_no=attempt_no,
            request=audit_request,
            response={
                'status': response.status_code,
                'headers': dict(response.headers),
                'body': response_body(response),
            },
            status_code=response.status_code,
            success=200 <= response.status_code < 300,
            latency_ms=latency_ms,
        )

    return ForwardAttempt.objects.create(
        lead=lead,
        attempt_no=attempt_no,
        request=audit_request,
        response={'error': error},
        error_message=error,
        success=False,
        latency_ms=latency_ms,
    )


def _set_status(lead, status, advertiser=None, advertiser_response=None):
    lead.status = status
    fields = ['status', 'updated_at']
    if advertiser is not None:
        lead.advertiser = advertiser
        fields.append('advertiser')
    if advertiser_response is not None:
        lead.advertiser_response = advertiser_response
        fields.append('advertiser_response')
    lead.save(update_fields=fields)


def deliver_lead(lead_id: int, attempt_no: int, max_attempts: int) -> DeliveryResult:
    """
    Run one forward attempt for a lead.

    Args:
        lead_id: ID of the Lead to forward
        attempt_no: 1-based attempt number within the current forward cycle
        max_attempts: Attempt cap; a transient failure on this attempt is final

    Returns:
        DeliveryResult whose outcome tells the job layer to retry or stop

    Raises:
        Lead.DoesNotExist: If the lead is gone
    """
    with transaction.atomic():
        # Waits out an operator reset that has not committed yet
        lead = Lead.objects.select_for_update().get(id=lead_id)
    logger.info(f"Processing lead {lead_id}, attempt {attempt_no}/{max_attempts}, status: {lead.status}")

    if lead.status != Lead.Status.PENDING:
        logger.info(f"Lead {lead_id} already processed, status: {lead.status}")
        return DeliveryResult(Outcome.SKIPPED, attempt_no)

    mapping = resolve_mapping(lead.affiliate_id, lead.offer_id)
    if mapping is None:
        _set_status(lead, Lead.Status.NO_MAPPING)
        FORWARD_ATTEMPTS_COUNTER.labels('no_mapping', 'no_mapping').inc()
        logger.warning(
            f"Lead {lead_id} NO_MAPPING: affiliate={lead.affiliate_id} offer={lead.offer_id}"
        )
        return DeliveryResult(Outcome.NO_MAPPING, attempt_no)

    advertiser = mapping.advertiser
    advertiser_label = str(advertiser.id)
    request = build_request(lead, advertiser, endpoint_for(mapping))

    logger.info(f"Lead {lead_id}: forwarding to advertiser {advertiser.id}, attempt #{attempt_no}")

    started = time.monotonic()
    try:
        response = post_lead(request['url'], request['body'], request['headers'])
    except httpx.HTTPError as e:
        latency_ms = int((time.monotonic() - started) * 1000)
        error = f"{type(e).__name__}: {e}"
        final = attempt_no >= max_attempts

        with transaction.atomic():
            _record_attempt(lead, attempt_no, request, error=error, latency_ms=latency_ms)
            if final:
                _set_status(lead, Lead.Status.FORWARD_FAILED, advertiser=advertiser)

        FORWARD_ATTEMPTS_COUNTER.labels(advertiser_label, 'server_error').inc()
        return _transient_result(lead_id, attempt_no, max_attempts, final, error=error)

    latency = time.monotonic() - started
    latency_ms = int(latency * 1000)
    status_code = response.status_code

    if 200 <= status_code < 300:
        with transaction.atomic():
            _record_attempt(lead, attempt_no, request, response=response, latency_ms=latency_ms)
            _set_status(
                lead,
                Lead.Status.FORWARDED,
                advertiser=advertiser,
                advertiser_response=response_body(response),
            )
        FORWARD_ATTEMPTS_COUNTER.labels(advertiser_label, 'success').inc()
        FORWARD_LATENCY_HISTOGRAM.labels(advertiser_label).observe(latency)
        logger.info(f"Lead {lead_id} FORWARDED to advertiser {advertiser.id}")
        return DeliveryResult(Outcome.FORWARDED, attempt_no, status_code=status_code)

    if status_code < 500:
        # The advertiser answered and refused; retrying cannot help
        with transaction.atomic():
            _record_attempt(lead, attempt_no, request, response=response, latency_ms=latency_ms)
            _set_status(
                lead,
                Lead.Status.FORWARD_FAILED,
                advertiser=advertiser,
                advertiser_response=response_body(response),
            )
        FORWARD_ATTEMPTS_COUNTER.labels(advertiser_label, 'client_error').inc()
        logger.error(f"Lead {lead_id} FORWARD_FAILED: advertiser returned {status_code}, no retry")
        return DeliveryResult(Outcome.CLIENT_ERROR, attempt_no, status_code=status_code)

    final = attempt_no >= max_attempts
    with transaction.atomic():
        _record_attempt(lead, attempt_no, request, response=response, latency_ms=latency_ms)
        if final:
            _set_status(
                lead,
                Lead.Status.FORWARD_FAILED,
                advertiser=advertiser,
                advertiser_response=response_body(response),
            )
    FORWARD_ATTEMPTS_COUNTER.labels(advertiser_label, 'server_error').inc()
    return _transient_result(
        lead_id, attempt_no, max_attempts, final,
        status_code=status_code, error=f"Server error: {status_code}",
    )


def _transient_result(lead_id, attempt_no, max_attempts, final, status_code=None, error=None):
    if final:
        logger.error(f"Lead {lead_id} FORWARD_FAILED: attempts exhausted ({attempt_no}/{max_attempts}): {error}")
        return DeliveryResult(Outcome.EXHAUSTED, attempt_no, status_code=status_code, error=error)

    logger.warning(f"Lead {lead_id}: {error}, will retry (attempt {attempt_no}/{max_attempts})")
    return DeliveryResult(Outcome.RETRY, attempt_no, status_code=status_code, error=error)
