"""
Tests for the delivery executor.
"""
import json

import pytest
from unittest.mock import patch
import httpx

from pipeline.models import Advertiser, FieldMapping, ForwardAttempt, Lead
from pipeline.services.delivery import Outcome, deliver_lead
from pipeline.services.signing import SIGNATURE_HEADER, TIMESTAMP_HEADER, verify


@pytest.mark.django_db
class TestDeliverLeadSuccess:
    """Tests for successful delivery."""

    @patch('pipeline.services.advertiser_client.httpx.post')
    def test_201_marks_lead_forwarded(self, mock_post, pending_lead, mapping, advertiser):
        """pending -> forwarded with one recorded attempt."""
        mock_post.return_value = httpx.Response(201, json={'id': 'adv-991'})

        result = deliver_lead(pending_lead.id, 1, 6)

        assert result.outcome == Outcome.FORWARDED
        assert result.status_code == 201

        pending_lead.refresh_from_db()
        assert pending_lead.status == Lead.Status.FORWARDED
        assert pending_lead.advertiser == advertiser
        assert pending_lead.advertiser_response == {'id': 'adv-991'}

        attempts = list(pending_lead.forward_attempts.all())
        assert len(attempts) == 1
        assert attempts[0].attempt_no == 1
        assert attempts[0].status_code == 201
        assert attempts[0].success is True
        assert attempts[0].response['body'] == {'id': 'adv-991'}

    @patch('pipeline.services.advertiser_client.httpx.post')
    def test_request_is_signed_over_sent_bytes(self, mock_post, pending_lead, mapping):
        mock_post.return_value = httpx.Response(201, json={})

        deliver_lead(pending_lead.id, 1, 6)

        call_kwargs = mock_post.call_args.kwargs
        body = call_kwargs['content'].decode('utf-8')
        headers = call_kwargs['headers']
        assert headers['Content-Type'] == 'application/json'
        assert headers['User-Agent'] == 'LeadBroker/1.0'
        assert headers[SIGNATURE_HEADER].startswith('sha256=')
        assert verify('s1', headers[TIMESTAMP_HEADER], body, headers[SIGNATURE_HEADER])

        attempt = pending_lead.forward_attempts.get()
        assert SIGNATURE_HEADER in attempt.request['headers']
        assert attempt.request['url'] == 'https://advertiser-x.test/leads'

    @patch('pipeline.services.advertiser_client.httpx.post')
    def test_default_payload_includes_tx_id(self, mock_post, pending_lead, mapping):
        mock_post.return_value = httpx.Response(200, json={})

        deliver_lead(pending_lead.id, 1, 6)

        sent = json.loads(mock_post.call_args.kwargs['content'])
        assert sent == {
            'email': 'rainer.simossek@t-online.de',
            'phone': '0160 8912308',
            'first_name': 'Rainer',
            'last_name': 'Simossek',
            'country': 'DE',
            'az_tx_id': pending_lead.az_tx_id,
        }

    @patch('pipeline.services.advertiser_client.httpx.post')
    def test_field_rules_allowlist_outbound_payload(self, mock_post, pending_lead, mapping, advertiser):
        FieldMapping.objects.create(advertiser=advertiser, source_field='email', target_field='email_addr')
        FieldMapping.objects.create(advertiser=advertiser, source_field='phone', target_field='tel', allowlist=False)
        mock_post.return_value = httpx.Response(201, json={})

        deliver_lead(pending_lead.id, 1, 6)

        sent = json.loads(mock_post.call_args.kwargs['content'])
        assert sent == {'email_addr': 'rainer.simossek@t-online.de', 'az_tx_id': pending_lead.az_tx_id}

    @patch('pipeline.services.advertiser_client.httpx.post')
    def test_rule_cannot_override_tx_id(self, mock_post, pending_lead, mapping, advertiser):
        FieldMapping.objects.create(advertiser=advertiser, source_field='utm_source', target_field='az_tx_id')
        mock_post.return_value = httpx.Response(201, json={})

        deliver_lead(pending_lead.id, 1, 6)

        sent = json.loads(mock_post.call_args.kwargs['content'])
        assert sent['az_tx_id'] == pending_lead.az_tx_id

    @patch('pipeline.services.advertiser_client.httpx.post')
    def test_forward_url_override(self, mock_post, pending_lead, mapping):
        mapping.forward_url = 'https://advertiser-x.test/campaign-7'
        mapping.save()
        mock_post.return_value = httpx.Response(201, json={})

        deliver_lead(pending_lead.id, 1, 6)

        assert mock_post.call_args.args[0] == 'https://advertiser-x.test/campaign-7'

    @patch('pipeline.services.advertiser_client.httpx.post')
    def test_unsigned_when_advertiser_has_no_secret(self, mock_post, pending_lead, mapping, advertiser):
        advertiser.endpoint_secret = ''
        advertiser.save()
        mock_post.return_value = httpx.Response(201, json={})

        result = deliver_lead(pending_lead.id, 1, 6)

        assert result.outcome == Outcome.FORWARDED
        headers = mock_post.call_args.kwargs['headers']
        assert SIGNATURE_HEADER not in headers
        assert TIMESTAMP_HEADER not in headers


@pytest.mark.django_db
class TestDeliverLeadFailures:
    """Tests for failure classification."""

    @patch('pipeline.services.advertiser_client.httpx.post')
    def test_4xx_is_terminal(self, mock_post, pending_lead, mapping, advertiser):
        """4xx -> forward_failed after exactly one attempt, no retry."""
        mock_post.return_value = httpx.Response(400, json={'error': 'bad phone'})

        result = deliver_lead(pending_lead.id, 1, 6)

        assert result.outcome == Outcome.CLIENT_ERROR
        assert not result.outcome.should_retry

        pending_lead.refresh_from_db()
        assert pending_lead.status == Lead.Status.FORWARD_FAILED
        assert pending_lead.advertiser == advertiser
        assert pending_lead.forward_attempts.count() == 1
        attempt = pending_lead.forward_attempts.get()
        assert attempt.status_code == 400
        assert attempt.success is False

    @patch('pipeline.services.advertiser_client.httpx.post')
    def test_5xx_is_retried(self, mock_post, pending_lead, mapping):
        mock_post.return_value = httpx.Response(503, text='Service Unavailable')

        result = deliver_lead(pending_lead.id, 1, 6)

        assert result.outcome == Outcome.RETRY
        assert result.status_code == 503

        pending_lead.refresh_from_db()
        assert pending_lead.status == Lead.Status.PENDING
        attempt = pending_lead.forward_attempts.get()
        assert attempt.response['body'] == 'Service Unavailable'

    @patch('pipeline.services.advertiser_client.httpx.post')
    def test_5xx_on_last_attempt_exhausts(self, mock_post, pending_lead, mapping):
        mock_post.return_value = httpx.Response(500, json={})

        result = deliver_lead(pending_lead.id, 6, 6)

        assert result.outcome == Outcome.EXHAUSTED
        pending_lead.refresh_from_db()
        assert pending_lead.status == Lead.Status.FORWARD_FAILED

    @patch('pipeline.services.advertiser_client.httpx.post')
    def test_timeout_on_every_attempt(self, mock_post, pending_lead, mapping):
        """Six timeouts leave six attempt rows and a forward_failed lead."""
        mock_post.side_effect = httpx.TimeoutException('Request timeout')

        outcomes = [deliver_lead(pending_lead.id, attempt_no, 6).outcome for attempt_no in range(1, 7)]

        assert outcomes == [Outcome.RETRY] * 5 + [Outcome.EXHAUSTED]

        pending_lead.refresh_from_db()
        assert pending_lead.status == Lead.Status.FORWARD_FAILED

        attempts = ForwardAttempt.objects.filter(lead=pending_lead).order_by('attempt_no')
        assert [a.attempt_no for a in attempts] == [1, 2, 3, 4, 5, 6]
        assert all(a.success is False for a in attempts)
        assert all(a.status_code is None for a in attempts)
        assert 'TimeoutException' in attempts[0].error_message

    @patch('pipeline.services.advertiser_client.httpx.post')
    def test_connection_error_is_retried(self, mock_post, pending_lead, mapping):
        mock_post.side_effect = httpx.ConnectError('Connection refused')

        result = deliver_lead(pending_lead.id, 2, 6)

        assert result.outcome == Outcome.RETRY
        assert pending_lead.forward_attempts.get().attempt_no == 2


@pytest.mark.django_db
class TestDeliverLeadGuards:

    @patch('pipeline.services.advertiser_client.httpx.post')
    def test_no_mapping(self, mock_post, pending_lead):
        result = deliver_lead(pending_lead.id, 1, 6)

        assert result.outcome == Outcome.NO_MAPPING
        pending_lead.refresh_from_db()
        assert pending_lead.status == Lead.Status.NO_MAPPING
        assert pending_lead.forward_attempts.count() == 0
        mock_post.assert_not_called()

    @patch('pipeline.services.advertiser_client.httpx.post')
    def test_non_pending_lead_skipped(self, mock_post, forwarded_lead, mapping):
        result = deliver_lead(forwarded_lead.id, 1, 6)

        assert result.outcome == Outcome.SKIPPED
        forwarded_lead.refresh_from_db()
        assert forwarded_lead.status == Lead.Status.FORWARDED
        mock_post.assert_not_called()

    @patch('pipeline.services.advertiser_client.httpx.post')
    def test_mapping_advertiser_used(self, mock_post, pending_lead, mapping):
        other = Advertiser.objects.create(name='Advertiser Y', endpoint_url='https://advertiser-y.test/leads')
        mapping.advertiser = other
        mapping.save()
        mock_post.return_value = httpx.Response(201, json={})

        deliver_lead(pending_lead.id, 1, 6)

        pending_lead.refresh_from_db()
        assert pending_lead.advertiser == other

    def test_missing_lead_raises(self, db):
        with pytest.raises(Lead.DoesNotExist):
            deliver_lead(999999, 1, 6)
