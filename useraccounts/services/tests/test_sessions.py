"""Tests for :mod:`useraccounts.services.sessions`."""

from unittest import TestCase, mock
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

from pytz import UTC
from redis.exceptions import ConnectionError

from .. import sessions
from ..exceptions import SessionCreationFailed, UnknownSession, Unavailable
from .util import fake_registry, make_app

ACCOUNT = 'foo@example.com'


def _register(registry, token_id, account_id=ACCOUNT, ttl=3600):
    issued_at = datetime.now(tz=UTC).replace(microsecond=0)
    return registry.register(account_id, token_id, issued_at,
                             issued_at + timedelta(seconds=ttl))


class TestRegister(TestCase):
    """Refresh tokens are registered by id, and indexed by account."""

    def setUp(self):
        self.registry = fake_registry()

    def test_register_and_load(self):
        """A registered session can be loaded."""
        entry = _register(self.registry, 'abc123')
        loaded = self.registry.load('abc123')
        self.assertEqual(loaded, entry)
        self.assertIsInstance(loaded.issued_at, datetime)
        self.assertTrue(self.registry.is_active('abc123'))
        self.assertEqual(len(self.registry.sessions_for(ACCOUNT)), 1)

    def test_entry_expires_with_token(self):
        """The entry is kept for as long as the token is good."""
        _register(self.registry, 'abc123', ttl=3600)
        ttl = self.registry.r.ttl('useraccounts:session:abc123')
        self.assertGreater(ttl, 3500)
        self.assertLessEqual(ttl, 3600)

    def test_unknown(self):
        """Nothing was registered under the id."""
        with self.assertRaises(UnknownSession):
            self.registry.load('nope')
        self.assertFalse(self.registry.is_active('nope'))

    def test_connection_failed(self):
        """:class:`.SessionCreationFailed` is raised when creation fails."""
        r = mock.MagicMock()
        r.sadd.side_effect = ConnectionError
        registry = sessions.SessionRegistry(r)
        with self.assertRaises(SessionCreationFailed):
            _register(registry, 'abc123')

    def test_load_failed(self):
        """Failure to read from redis means the registry is unavailable."""
        r = mock.MagicMock()
        r.get.side_effect = ConnectionError
        registry = sessions.SessionRegistry(r)
        with self.assertRaises(Unavailable):
            registry.load('abc123')


class TestRevoke(TestCase):
    """Sessions are revoked one at a time, or all at once."""

    def setUp(self):
        self.registry = fake_registry()

    def test_revoke(self):
        """Only the first revocation counts."""
        _register(self.registry, 'abc123')
        self.assertTrue(self.registry.revoke('abc123'))
        self.assertFalse(self.registry.revoke('abc123'))
        self.assertTrue(self.registry.load('abc123').revoked)
        self.assertFalse(self.registry.is_active('abc123'))

    def test_concurrent_revoke(self):
        """Of many concurrent revocations, exactly one succeeds."""
        _register(self.registry, 'abc123')
        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(
                lambda _: self.registry.revoke('abc123'), range(8)
            ))
        self.assertEqual(results.count(True), 1)

    def test_revoke_all(self):
        """Every session of the account is revoked, and no other."""
        for token_id in ('one', 'two', 'three'):
            _register(self.registry, token_id)
        _register(self.registry, 'other', account_id='bar@example.com')
        self.registry.revoke('one')

        self.assertEqual(self.registry.revoke_all_for_account(ACCOUNT), 2)
        for token_id in ('one', 'two', 'three'):
            self.assertFalse(self.registry.is_active(token_id))
        self.assertTrue(self.registry.is_active('other'))
        self.assertEqual(self.registry.sessions_for(ACCOUNT), [])
        self.assertEqual(self.registry.revoke_all_for_account(ACCOUNT), 0)


class TestResetGrant(TestCase):
    """A reset grant can be used once."""

    def setUp(self):
        self.registry = fake_registry()

    def test_grant_and_consume(self):
        """The grant is consumed once."""
        self.assertFalse(self.registry.consume_reset(ACCOUNT))
        self.registry.grant_reset(ACCOUNT, 600)
        self.assertTrue(self.registry.consume_reset(ACCOUNT))
        self.assertFalse(self.registry.consume_reset(ACCOUNT))

    def test_concurrent_consume(self):
        """Of many concurrent attempts to use a grant, one succeeds."""
        self.registry.grant_reset(ACCOUNT, 600)
        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(
                lambda _: self.registry.consume_reset(ACCOUNT), range(8)
            ))
        self.assertEqual(results.count(True), 1)


class TestLock(TestCase):
    """Changes to an account can be serialized."""

    def test_lock(self):
        """The lock is held inside the block, and released after."""
        registry = fake_registry()
        with registry.lock(ACCOUNT):
            self.assertTrue(registry.r.exists('useraccounts:lock:' + ACCOUNT))
        self.assertFalse(registry.r.exists('useraccounts:lock:' + ACCOUNT))

    def test_lock_timeout(self):
        """Waiting for a held lock is bounded."""
        registry = fake_registry(lock_blocking_timeout=0.1)
        with registry.lock(ACCOUNT):
            with self.assertRaises(Unavailable):
                with registry.lock(ACCOUNT):
                    pass

    def test_other_accounts(self):
        """Locks on different accounts are independent."""
        registry = fake_registry(lock_blocking_timeout=0.1)
        with registry.lock(ACCOUNT):
            with registry.lock('bar@example.com'):
                pass


class TestApplicationIntegration(TestCase):
    """The registry is configured from, and shared by, the application."""

    def test_current_registry(self):
        """The registry is made once per application context."""
        app = make_app()
        with app.app_context():
            registry = sessions.SessionRegistry.current_registry()
            self.assertIs(registry,
                          sessions.SessionRegistry.current_registry())
            self.assertTrue(registry.is_available())
            self.assertIs(registry.r, sessions.get_redis())

    def test_fake_flag_from_environment(self):
        """String flags from the environment are understood."""
        r = sessions.new_connection({'REDIS_FAKE': '1'})
        self.assertTrue(r.ping())

    @mock.patch(f'{sessions.__name__}.redis.StrictRedis')
    def test_real_connection(self, mock_strict_redis):
        """A redis client is made with bounded timeouts."""
        sessions.new_connection({'REDIS_HOST': 'redis.local',
                                 'REDIS_PORT': '6380',
                                 'REDIS_TIMEOUT': 1.5})
        kwargs = mock_strict_redis.call_args[1]
        self.assertEqual(kwargs['host'], 'redis.local')
        self.assertEqual(kwargs['port'], 6380)
        self.assertEqual(kwargs['socket_timeout'], 1.5)
        self.assertEqual(kwargs['socket_connect_timeout'], 1.5)

    def test_unavailable(self):
        """Redis does not answer."""
        r = mock.MagicMock()
        r.ping.side_effect = ConnectionError
        self.assertFalse(sessions.SessionRegistry(r).is_available())
