"""
Session registry: outstanding refresh tokens, in redis.

Each refresh token that has been issued is registered here by its token id
(``jti``), and indexed by account, so that it can be revoked on its own
(rotation, single logout) or together with every other session of the
account (logout, password change).

Revocation is a marker key written with ``SET NX``. Only one caller can ever
write it, so :meth:`SessionRegistry.revoke` tells exactly one of several
concurrent callers that it was the one to revoke the token. Token rotation
relies on this.

Entries expire from redis along with the token they track. That is only
housekeeping: tokens carry their own expiry.

The registry also holds the other short-lived per-account state of the
service: password-reset grants, and per-account locks.
"""

from typing import Any, Generator, List, Optional
from contextlib import contextmanager
from datetime import datetime
import json
import logging

import fakeredis
import redis
from redis.cluster import RedisCluster
from pytz import UTC
from flask import current_app, has_app_context

from .. import domain
from ..context import get_application_config, get_application_global
from .exceptions import SessionCreationFailed, SessionDeletionFailed, \
    UnknownSession, Unavailable

logger = logging.getLogger(__name__)

EXTENSION = 'useraccounts.redis'


class SessionRegistry(object):
    """
    Tracks refresh tokens in redis.

    The redis client is thread safe, and connections are attached at the time
    a command is executed. This class simply provides a container for
    configuration.
    """

    def __init__(self, r: redis.Redis, prefix: str = 'useraccounts',
                 duration: int = 604800, lock_timeout: float = 10,
                 lock_blocking_timeout: float = 3) -> None:
        self.r = r
        self._prefix = prefix
        self._duration = duration
        self._lock_timeout = lock_timeout
        self._lock_blocking_timeout = lock_blocking_timeout

    def _key(self, *parts: str) -> str:
        return ':'.join((self._prefix,) + parts)

    def register(self, account_id: str, token_id: str, issued_at: datetime,
                 expires_at: Optional[datetime] = None) -> domain.SessionEntry:
        """
        Register a newly issued refresh token.

        Parameters
        ----------
        account_id : str
        token_id : str
            The ``jti`` claim of the refresh token.
        issued_at : :class:`datetime`
        expires_at : :class:`datetime`
            The expiry of the refresh token. The entry is kept (at least)
            this long.

        Returns
        -------
        :class:`domain.SessionEntry`

        """
        entry = domain.SessionEntry(
            account_id=account_id,
            token_id=token_id,
            issued_at=issued_at,
            expires_at=expires_at
        )
        ttl = self._duration
        if expires_at is not None:
            ttl = max(int((expires_at - issued_at).total_seconds()), 1)
        index = self._key('account', account_id, 'sessions')
        try:
            # Index first: an index member without an entry is harmless.
            self.r.sadd(index, token_id)
            self.r.expire(index, max(ttl, self._duration))
            self.r.set(self._key('session', token_id),
                       json.dumps(domain.to_dict(entry)), ex=ttl)
        except redis.exceptions.ConnectionError as e:
            raise SessionCreationFailed(f'Connection failed: {e}') from e
        except redis.exceptions.RedisError as e:
            raise SessionCreationFailed(f'Failed to create: {e}') from e
        logger.debug('Registered session %s for %s', token_id, account_id)
        return entry

    def load(self, token_id: str) -> domain.SessionEntry:
        """
        Get a session entry by token id.

        Raises
        ------
        :class:`UnknownSession`
            There is no entry, e.g. because the token has expired.

        """
        try:
            raw = self.r.get(self._key('session', token_id))
            revoked = bool(self.r.exists(self._key('revoked', token_id)))
        except redis.exceptions.RedisError as e:
            raise Unavailable(f'Failed to load session: {e}') from e
        if not raw:
            raise UnknownSession(f'Failed to find session {token_id}')
        data = json.loads(raw)
        data['revoked'] = revoked
        entry: domain.SessionEntry = domain.from_dict(domain.SessionEntry,
                                                      data)
        return entry

    def is_active(self, token_id: str) -> bool:
        """Whether the token is registered, unexpired and not revoked."""
        try:
            return self.load(token_id).active
        except UnknownSession:
            return False

    def revoke(self, token_id: str) -> bool:
        """
        Revoke a session.

        Returns
        -------
        bool
            ``True`` if this call revoked the session; ``False`` if it had
            already been revoked.

        """
        try:
            revoked = self.r.set(self._key('revoked', token_id), '1',
                                 nx=True, ex=self._duration)
        except redis.exceptions.ConnectionError as e:
            raise SessionDeletionFailed(f'Connection failed: {e}') from e
        except redis.exceptions.RedisError as e:
            raise SessionDeletionFailed(f'Failed to revoke: {e}') from e
        if revoked:
            logger.debug('Revoked session %s', token_id)
        return bool(revoked)

    def revoke_all_for_account(self, account_id: str) -> int:
        """
        Revoke every session of an account.

        Returns
        -------
        int
            The number of sessions that this call revoked.

        """
        index = self._key('account', account_id, 'sessions')
        try:
            token_ids = self.r.smembers(index)
        except redis.exceptions.RedisError as e:
            raise SessionDeletionFailed(f'Failed to list: {e}') from e
        count = sum(1 for token_id in token_ids if self.revoke(token_id))
        if token_ids:
            try:
                # Only the members we saw: a session registered meanwhile
                # stays indexed.
                self.r.srem(index, *token_ids)
            except redis.exceptions.RedisError as e:
                logger.warning('Could not prune index for %s: %s',
                               account_id, e)
        logger.debug('Revoked %i sessions for %s', count, account_id)
        return count

    def sessions_for(self, account_id: str) -> List[domain.SessionEntry]:
        """Get the active sessions of an account."""
        try:
            token_ids = self.r.smembers(
                self._key('account', account_id, 'sessions')
            )
        except redis.exceptions.RedisError as e:
            raise Unavailable(f'Failed to list sessions: {e}') from e
        entries = []
        for token_id in sorted(token_ids):
            try:
                entry = self.load(token_id)
            except UnknownSession:
                continue
            if entry.active:
                entries.append(entry)
        return entries

    def grant_reset(self, account_id: str, ttl: int) -> None:
        """Authorize one password change for ``ttl`` seconds."""
        try:
            self.r.set(self._key('reset', account_id),
                       datetime.now(tz=UTC).isoformat(), ex=ttl)
        except redis.exceptions.RedisError as e:
            raise Unavailable(f'Failed to grant reset: {e}') from e

    def consume_reset(self, account_id: str) -> bool:
        """
        Use up a password-reset grant.

        Returns ``True`` for exactly one caller per grant.
        """
        try:
            return bool(self.r.delete(self._key('reset', account_id)))
        except redis.exceptions.RedisError as e:
            raise Unavailable(f'Failed to consume reset: {e}') from e

    @contextmanager
    def lock(self, account_id: str) -> Generator[None, None, None]:
        """
        Serialize changes to an account's state.

        Raises
        ------
        :class:`Unavailable`
            If the lock cannot be acquired within the blocking timeout.

        """
        lock = self.r.lock(self._key('lock', account_id),
                           timeout=self._lock_timeout,
                           blocking_timeout=self._lock_blocking_timeout)
        try:
            acquired = lock.acquire()
        except redis.exceptions.RedisError as e:
            raise Unavailable(f'Failed to lock: {e}') from e
        if not acquired:
            raise Unavailable(f'Timed out waiting for lock on {account_id}')
        try:
            yield
        finally:
            try:
                lock.release()
            except redis.exceptions.LockError:
                logger.warning('Lock on %s expired while held', account_id)

    def is_available(self) -> bool:
        """Check our connection to redis."""
        try:
            return bool(self.r.ping())
        except redis.exceptions.RedisError as e:
            logger.error('Encountered an error talking to redis: %s', e)
            return False

    @classmethod
    def init_app(cls, app: Any) -> None:
        """Set default configuration parameters for an application instance."""
        config = get_application_config(app)
        config.setdefault('REDIS_HOST', 'localhost')
        config.setdefault('REDIS_PORT', '6379')
        config.setdefault('REDIS_DATABASE', '0')
        config.setdefault('REDIS_TOKEN', None)
        config.setdefault('REDIS_CLUSTER', '0')
        config.setdefault('REDIS_FAKE', False)
        config.setdefault('REDIS_TIMEOUT', 2.0)
        config.setdefault('REDIS_PREFIX', 'useraccounts')
        config.setdefault('REFRESH_TOKEN_TTL', 604800)
        config.setdefault('LOCK_TIMEOUT', 10)
        config.setdefault('LOCK_BLOCKING_TIMEOUT', 3)

    @classmethod
    def get_registry(cls, app: Any = None) -> 'SessionRegistry':
        """Get a new registry, sharing the application's redis client."""
        config = get_application_config(app)
        return cls(
            get_redis(app),
            prefix=config.get('REDIS_PREFIX', 'useraccounts'),
            duration=int(config.get('REFRESH_TOKEN_TTL', 604800)),
            lock_timeout=float(config.get('LOCK_TIMEOUT', 10)),
            lock_blocking_timeout=float(config.get('LOCK_BLOCKING_TIMEOUT', 3))
        )

    @classmethod
    def current_registry(cls) -> 'SessionRegistry':
        """Get/create :class:`.SessionRegistry` for this context."""
        g = get_application_global()
        if not g:
            return cls.get_registry()
        if 'session_registry' not in g:
            g.session_registry = cls.get_registry()
        return g.session_registry     # type: ignore


def new_connection(config: Any) -> redis.Redis:
    """Make a redis client from configuration."""
    if _flag(config.get('REDIS_FAKE', False)):
        logger.debug('Using fake redis')
        return fakeredis.FakeStrictRedis(server=fakeredis.FakeServer(),
                                         decode_responses=True)
    host = config.get('REDIS_HOST', 'localhost')
    port = int(config.get('REDIS_PORT', '6379'))
    timeout = float(config.get('REDIS_TIMEOUT', 2.0))
    password = config.get('REDIS_TOKEN', None)
    logger.debug('New redis connection at %s, port %s', host, port)
    if _flag(config.get('REDIS_CLUSTER', '0')):
        return RedisCluster(host=host, port=port, password=password,
                            socket_timeout=timeout,
                            socket_connect_timeout=timeout,
                            decode_responses=True)
    return redis.StrictRedis(host=host, port=port,
                             db=int(config.get('REDIS_DATABASE', '0')),
                             password=password,
                             socket_timeout=timeout,
                             socket_connect_timeout=timeout,
                             decode_responses=True)


def get_redis(app: Any = None) -> redis.Redis:
    """
    Get the redis client of the application.

    The client is made on first use from the configuration at that time, and
    then kept on the application.
    """
    if app is None and has_app_context():
        app = current_app._get_current_object()
    if app is None:
        return new_connection(get_application_config())
    if EXTENSION not in app.extensions:
        app.extensions[EXTENSION] = new_connection(app.config)
    return app.extensions[EXTENSION]


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes')
    return bool(value)
