"""
API views for Lead Broker Service.
"""
import logging

from django.apps import apps
from django.http import HttpResponse
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from rest_framework import status
from rest_framework.authentication import BasicAuthentication, SessionAuthentication
from rest_framework.exceptions import ParseError
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from pipeline.exceptions import LeadNotFound
from pipeline.models import Lead
from pipeline.serializers import CallbackSerializer
from pipeline.services.callbacks import reconcile_callback
from pipeline.services.signing import SIGNATURE_HEADER, TIMESTAMP_HEADER
from pipeline.tasks import retry_lead
from pipeline.throttling import CallbackRateThrottle

logger = logging.getLogger(__name__)


@method_decorator(csrf_exempt, name='dispatch')
class AdvertiserCallbackView(APIView):
    """
    Callback endpoint for advertiser status updates.

    POST /advertiser_callback
    - Verifies HMAC signature and replay-protects (advertisers with a secret)
    - Logs every callback
    - Updates lead status and creates the commission once
    - Returns 200 {"ok": true}, also for repeated approved callbacks
    """

    authentication_classes = []
    permission_classes = []
    throttle_classes = [CallbackRateThrottle]

    def post(self, request):
        """
        Handle an advertiser callback.

        Returns:
            200 OK: Callback applied (or already applied)
            400 Bad Request: Malformed body, lead without advertiser, replay
            401 Unauthorized: Missing or invalid signature
            404 Not Found: Unknown az_tx_id
        """
        # Read the raw body before DRF parses it; the signature covers these bytes
        try:
            raw_body = request.body.decode('utf-8')
        except UnicodeDecodeError:
            raise ParseError('Request body is not valid UTF-8')

        payload = request.data
        serializer = CallbackSerializer(data=payload)
        serializer.is_valid(raise_exception=True)

        reconcile_callback(
            serializer.validated_data,
            payload=payload,
            raw_body=raw_body,
            signature=request.headers.get(SIGNATURE_HEADER),
            timestamp=request.headers.get(TIMESTAMP_HEADER),
        )

        return Response({'ok': True}, status=status.HTTP_200_OK)


class LeadRetryView(APIView):
    """
    Operator retry trigger.

    POST /leads/<id>/retry/
    - Resets the lead to pending and enqueues a fresh forward job
    """

    authentication_classes = [SessionAuthentication, BasicAuthentication]
    permission_classes = [IsAdminUser]
    scheduler = None

    def get_scheduler(self):
        return self.scheduler or apps.get_app_config('pipeline').scheduler

    def post(self, request, lead_id):
        try:
            retry_lead(lead_id, self.get_scheduler())
        except Lead.DoesNotExist:
            raise LeadNotFound(f"Lead not found: {lead_id}")

        logger.info(f"Lead {lead_id} retry requested by {request.user}")
        return Response({'ok': True, 'lead_id': lead_id}, status=status.HTTP_202_ACCEPTED)


@require_GET
def metrics_view(request):
    """Prometheus scrape endpoint."""
    return HttpResponse(generate_latest(), content_type=CONTENT_TYPE_LATEST)
