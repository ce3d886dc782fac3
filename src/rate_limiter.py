"""
Per-client sliding-window rate limiting for the auth and import routes.

State is process-local and in memory: it resets on restart and is not
shared between workers. It slows down password guessing and import floods;
it is not an access control.
"""

import math
import time
import threading
from collections import deque
from functools import wraps

from flask import current_app, request

import config
from errors import RateLimitError


class SlidingWindowRateLimiter:
    """
    Allows at most `limit` hits per key within any `window_seconds` span.

    Keys whose hits have all left the window are dropped, at most once per
    window, so the table only holds recently seen clients.

    Usage:
        limiter = SlidingWindowRateLimiter(3, 60)
        allowed, retry_after = limiter.hit('203.0.113.7')
    """

    def __init__(self, limit, window_seconds, clock=time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock
        self._hits = {}
        self._last_sweep = clock()
        self._lock = threading.Lock()

    def hit(self, key):
        """
        Record a request for key if it is within budget.

        Pruning, checking and recording happen under one lock.

        Returns:
            tuple: (allowed, retry_after) where retry_after is the whole number
            of seconds until the oldest hit leaves the window (0 when allowed)
        """
        with self._lock:
            now = self.clock()
            cutoff = now - self.window_seconds
            if self._last_sweep <= cutoff:
                self._sweep(cutoff)
                self._last_sweep = now

            window = self._hits.setdefault(key, deque())
            while window and window[0] <= cutoff:
                window.popleft()

            if len(window) >= self.limit:
                retry_after = max(1, math.ceil(window[0] + self.window_seconds - now))
                return False, retry_after

            window.append(now)
            return True, 0

    def _sweep(self, cutoff):
        # Newest hit is last, so a key is stale when that one has left the window
        stale = [key for key, window in self._hits.items() if not window or window[-1] <= cutoff]
        for key in stale:
            del self._hits[key]

    def reset(self):
        with self._lock:
            self._hits.clear()


limiters = {
    name: SlidingWindowRateLimiter(limit, window)
    for name, (limit, window) in config.RATE_LIMITS.items()
}


def reset_all():
    for limiter in limiters.values():
        limiter.reset()


def rate_limited(name):
    """
    Decorator that applies the named limiter to a route, keyed by client IP.

    Usage:
        @app.route('/auth/login', methods=['POST'])
        @rate_limited('login')
        def login():
            ...
    """
    limiter = limiters[name]

    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            if current_app.config.get('RATELIMIT_ENABLED', True):
                client_ip = request.remote_addr or 'unknown'
                allowed, retry_after = limiter.hit(client_ip)
                if not allowed:
                    current_app.logger.warning(
                        f"Rate limit '{name}' exceeded for {client_ip}, retry in {retry_after}s"
                    )
                    raise RateLimitError(retry_after)
            return f(*args, **kwargs)
        return decorated
    return decorator
