"""
Fixed-window request counting in redis.

The HTTP layer calls :meth:`RateLimiter.hit` before passing a request on to
a controller. If redis cannot be reached the request is let through; the
limiter is a guard, not a dependency of authentication.
"""

from typing import Any
import logging
import time

import redis

from ..context import get_application_config
from ..exceptions import RateLimited
from .sessions import get_redis

logger = logging.getLogger(__name__)


class RateLimiter(object):
    """Counts hits per scope and key, and refuses those over the limit."""

    def __init__(self, r: redis.Redis, window: int = 900, limit: int = 100,
                 prefix: str = 'useraccounts') -> None:
        self.r = r
        self._window = window
        self._limit = limit
        self._prefix = prefix

    def hit(self, scope: str, key: str) -> int:
        """
        Count a request.

        Parameters
        ----------
        scope : str
            E.g. the name of the route.
        key : str
            E.g. the client IP address, or the account.

        Returns
        -------
        int
            Requests counted in the current window, including this one.

        Raises
        ------
        :class:`RateLimited`

        """
        bucket = int(time.time() // self._window)
        name = f'{self._prefix}:ratelimit:{scope}:{key}:{bucket}'
        try:
            count = int(self.r.incr(name))
            if count == 1:
                self.r.expire(name, self._window)
        except redis.exceptions.RedisError as e:
            logger.error('Rate limit check failed, allowing: %s', e)
            return 0
        if count > self._limit:
            logger.info('Rate limit exceeded for %s by %s', scope, key)
            raise RateLimited()
        return count

    @classmethod
    def get_limiter(cls, app: Any = None) -> 'RateLimiter':
        """Build a :class:`.RateLimiter` from application config."""
        config = get_application_config(app)
        return cls(get_redis(app),
                   window=int(config.get('RATE_LIMIT_WINDOW', 900)),
                   limit=int(config.get('RATE_LIMIT_MAX', 100)),
                   prefix=config.get('REDIS_PREFIX', 'useraccounts'))
