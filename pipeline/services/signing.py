"""
HMAC signing and verification for advertiser traffic.

Signing input is "{timestamp}:{body}" keyed with the advertiser secret. The
signature travels as "X-Signature: {algorithm}={hex digest}" next to
"X-Signature-Timestamp: {unix seconds}".
"""
import hashlib
import hmac
import logging
import time
from typing import Optional

from django.conf import settings
from django.core.cache import cache as default_cache

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = 'X-Signature'
TIMESTAMP_HEADER = 'X-Signature-Timestamp'


def _algorithm() -> str:
    return settings.HMAC_ALGO


def sign(secret: str, timestamp, body: str, algorithm: Optional[str] = None) -> str:
    """Return the hex HMAC digest of "{timestamp}:{body}"."""
    message = f"{timestamp}:{body}".encode('utf-8')
    return hmac.new(secret.encode('utf-8'), message, algorithm or _algorithm()).hexdigest()


def signature_headers(secret: str, body: str, now: Optional[float] = None) -> dict:
    """Build the signature and timestamp headers for an outbound body."""
    timestamp = str(int(now if now is not None else time.time()))
    algorithm = _algorithm()
    return {
        SIGNATURE_HEADER: f"{algorithm}={sign(secret, timestamp, body, algorithm)}",
        TIMESTAMP_HEADER: timestamp,
    }


def verify(secret: str, timestamp, body: str, signature: str, now: Optional[float] = None) -> bool:
    """
    Verify a signature header value against a body.

    Never raises: a malformed header, a stale or future timestamp, an
    algorithm mismatch and a digest mismatch all return False.
    """
    try:
        request_time = int(timestamp)
    except (TypeError, ValueError):
        logger.warning(f"Invalid signature timestamp: {timestamp!r}")
        return False

    current = int(now if now is not None else time.time())
    skew = abs(current - request_time)
    if skew > settings.SIGNATURE_TOLERANCE_SECONDS:
        logger.warning(f"Signature timestamp outside tolerance: skew={skew}s")
        return False

    algorithm, separator, digest = (signature or '').partition('=')
    expected_algorithm = _algorithm()
    if not separator or algorithm != expected_algorithm:
        logger.warning(f"Invalid HMAC algorithm: expected={expected_algorithm}, received={algorithm}")
        return False

    expected = sign(secret, timestamp, body, algorithm)
    return hmac.compare_digest(digest.encode('utf-8'), expected.encode('utf-8'))


class ReplayGuard:
    """
    Rejects a (timestamp, signature) pair seen within the replay window.

    Uses a single atomic cache.add, so concurrent requests carrying the same
    pair cannot both be accepted.
    """

    key_prefix = 'replay'

    def __init__(self, cache=None, ttl: Optional[int] = None):
        self.cache = cache or default_cache
        self.ttl = ttl if ttl is not None else settings.REPLAY_TTL_SECONDS

    def _key(self, timestamp, signature: str) -> str:
        digest = hashlib.sha256(f"{timestamp}:{signature}".encode('utf-8')).hexdigest()
        return f"{self.key_prefix}:{digest}"

    def is_replay(self, timestamp, signature: str) -> bool:
        """Record the pair and return True if it was already recorded."""
        first_use = self.cache.add(self._key(timestamp, signature), 1, timeout=self.ttl)
        if not first_use:
            logger.warning(f"Replay detected for signature timestamp {timestamp}")
        return not first_use
