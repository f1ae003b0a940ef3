"""
Advertiser API client for posting leads to advertiser endpoints.
"""
import logging
import json
import httpx
from django.conf import settings

logger = logging.getLogger(__name__)


def _format_response(response: httpx.Response) -> str:
    """Return a readable response string (pretty JSON if possible)."""
    try:
        data = response.json()
        return json.dumps(data, indent=2, ensure_ascii=False)
    except ValueError:
        return response.text


def encode_body(payload: dict) -> str:
    """Serialize the payload exactly once so the signed bytes are the sent bytes."""
    return json.dumps(payload, separators=(',', ':'), ensure_ascii=False)


def response_body(response: httpx.Response):
    """Decoded JSON body if possible, raw text otherwise."""
    try:
        return response.json()
    except ValueError:
        return response.text


def post_lead(url: str, body: str, headers: dict) -> httpx.Response:
    """
    Posts a serialized lead to an advertiser endpoint.

    Any response is returned, whatever its status; classification is the
    caller's job.

    Args:
        url: Advertiser endpoint
        body: JSON body as produced by encode_body
        headers: Request headers, including any signature headers

    Returns:
        HTTP response from the advertiser

    Raises:
        httpx.HTTPError: On network/timeout errors
    """
    logger.info(f"Sending lead to advertiser: {url}")
    logger.debug(f"Body: {body}")

    try:
        response = httpx.post(
            url,
            content=body.encode('utf-8'),
            headers=headers,
            timeout=settings.FORWARD_TIMEOUT_SECONDS
        )

        logger.info(f"Advertiser response: {response.status_code}")
        logger.debug("Advertiser response body:\n%s", _format_response(response))

        return response

    except httpx.TimeoutException as e:
        logger.error(f"Timeout sending to advertiser: {e}")
        raise
    except httpx.ConnectError as e:
        logger.error(f"Connection error sending to advertiser: {e}")
        raise
    except httpx.HTTPError as e:
        logger.error(f"HTTP error sending to advertiser: {e}")
        raise
