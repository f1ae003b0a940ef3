"""
Fixed-window rate limiting on shared cache counters.
"""
import logging

from django.conf import settings
from django.core.cache import cache
from rest_framework.throttling import BaseThrottle

logger = logging.getLogger(__name__)


class CallbackRateThrottle(BaseThrottle):
    """
    Per-client-IP limit for the callback endpoint.

    Counting uses cache.add + cache.incr only, which are atomic on the
    Redis backend, so concurrent requests never lose increments.
    """

    scope = 'callback'

    def get_limit(self):
        return settings.RATE_LIMIT_CALLBACK, settings.RATE_LIMIT_WINDOW_SECONDS

    def allow_request(self, request, view):
        limit, window = self.get_limit()
        key = f"rate_limit:{self.scope}:{self.get_ident(request)}"

        cache.add(key, 0, timeout=window)
        try:
            count = cache.incr(key)
        except ValueError:
            # Window expired between add and incr
            cache.add(key, 1, timeout=window)
            count = 1

        if count > limit:
            logger.warning(f"Rate limit exceeded for {key}: {count}/{limit}")
            return False
        return True

    def wait(self):
        return settings.RATE_LIMIT_WINDOW_SECONDS
