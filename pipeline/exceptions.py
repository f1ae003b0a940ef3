"""
Error taxonomy and the REST error envelope.

Every API error is rendered as {"error": {"code", "message", "details"?}}.
"""
import logging

from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class BrokerError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = 'INTERNAL_ERROR'
    default_message = 'An unexpected error occurred'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class LeadNotFound(BrokerError):
    status_code = status.HTTP_404_NOT_FOUND
    code = 'LEAD_NOT_FOUND'
    default_message = 'Lead not found'


class AdvertiserNotAssigned(BrokerError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'NO_ADVERTISER'
    default_message = 'Lead has no associated advertiser'


class MissingSignature(BrokerError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = 'MISSING_SIGNATURE'
    default_message = 'Signature headers are required for this advertiser'


class InvalidSignature(BrokerError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = 'INVALID_SIGNATURE'
    default_message = 'Invalid HMAC signature'


class ReplayDetected(BrokerError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'REPLAY_ATTACK'
    default_message = 'Request has been processed before'


def _envelope(code, message, status_code, details=None):
    error = {'code': code, 'message': message}
    if details is not None:
        error['details'] = details
    return Response({'error': error}, status=status_code)


def api_exception_handler(exc, context):
    """DRF exception handler producing the error envelope."""
    view = context.get('view')
    view_name = view.__class__.__name__ if view is not None else 'unknown'

    if isinstance(exc, BrokerError):
        logger.warning(f"{view_name} rejected request: {exc.code} {exc.message}")
        return _envelope(exc.code, exc.message, exc.status_code)

    if isinstance(exc, exceptions.ValidationError):
        return _envelope('VALIDATION_ERROR', 'Invalid request payload', exc.status_code, exc.detail)

    if isinstance(exc, exceptions.ParseError):
        return _envelope('MALFORMED_JSON', str(exc.detail), exc.status_code)

    if isinstance(exc, exceptions.Throttled):
        response = _envelope('RATE_LIMIT_EXCEEDED', 'Too many requests', exc.status_code)
        if exc.wait is not None:
            response['Retry-After'] = str(int(exc.wait))
        return response

    response = exception_handler(exc, context)
    if response is not None:
        code = getattr(exc, 'default_code', 'error').upper()
        detail = getattr(exc, 'detail', str(exc))
        return _envelope(code, str(detail), response.status_code)

    logger.error(f"Unhandled error in {view_name}: {exc}", exc_info=True)
    return _envelope('INTERNAL_ERROR', BrokerError.default_message, status.HTTP_500_INTERNAL_SERVER_ERROR)
