"""Tests for :mod:`useraccounts.services.credentials`."""

from unittest import TestCase, mock

from sqlalchemy.exc import OperationalError

from ... import domain
from ...exceptions import DuplicateAccount
from .. import passwords
from ..credentials import CredentialStore
from ..exceptions import NoSuchAccount, Unavailable
from .util import temporary_db


class TestCreateAccount(TestCase):
    """Accounts are created unverified, one per address."""

    def setUp(self):
        self.store = CredentialStore()
        self.password_hash = passwords.hash_password('th1sp4ssword')

    def test_create(self):
        """A new account is stored with its profile."""
        with temporary_db():
            account = self.store.create(
                'Foo@Example.com',
                self.password_hash,
                name=domain.AccountName(forename='Jane', surname='Doe'),
                profile=domain.AccountProfile(phone='+15551234567',
                                              company_name='Acme'),
                ip_address='10.0.0.1'
            )
            self.assertEqual(account.email, 'foo@example.com')
            self.assertIsNotNone(account.user_id)
            self.assertFalse(account.verified)
            self.assertFalse(account.disabled)
            self.assertEqual(account.name.forename, 'Jane')
            self.assertEqual(account.profile.company_name, 'Acme')
            self.assertIsNotNone(account.joined)

            found = self.store.find('foo@example.com')
            self.assertEqual(found.user_id, account.user_id)

    def test_duplicate(self):
        """The address is compared without regard to case."""
        with temporary_db():
            self.store.create('foo@example.com', self.password_hash)
            with self.assertRaises(DuplicateAccount):
                self.store.create(' FOO@example.COM', self.password_hash)

    def test_database_unavailable(self):
        """An operational error means the store is unavailable."""
        with temporary_db():
            with mock.patch('useraccounts.services.credentials._query') \
                    as mock_query:
                mock_query.side_effect = OperationalError('SELECT', {}, None)
                with self.assertRaises(Unavailable):
                    self.store.create('foo@example.com', self.password_hash)


class TestFindAndUpdate(TestCase):
    """Accounts can be looked up, verified and changed."""

    def setUp(self):
        self.store = CredentialStore()

    def test_find_unknown(self):
        """There is no account for the address."""
        with temporary_db():
            with self.assertRaises(NoSuchAccount):
                self.store.find('nobody@example.com')
            self.assertFalse(self.store.exists('nobody@example.com'))

    def test_set_verified(self):
        """The account is verified."""
        with temporary_db():
            self.store.create('foo@example.com',
                              passwords.hash_password('th1sp4ssword'))
            self.store.set_verified('FOO@example.com')
            self.assertTrue(self.store.find('foo@example.com').verified)

    def test_update_unknown(self):
        """Updating an account that does not exist fails."""
        with temporary_db():
            with self.assertRaises(NoSuchAccount):
                self.store.set_verified('nobody@example.com')
            with self.assertRaises(NoSuchAccount):
                self.store.update_password_hash('nobody@example.com', 'x')

    def test_disable(self):
        """A disabled account still exists, but cannot authenticate."""
        with temporary_db():
            self.store.create('foo@example.com',
                              passwords.hash_password('th1sp4ssword'))
            self.store.disable('foo@example.com')
            self.assertTrue(self.store.find('foo@example.com').disabled)
            self.assertFalse(self.store.exists('foo@example.com'))
            self.assertFalse(self.store.password_matches('foo@example.com',
                                                         'th1sp4ssword'))


class TestPasswordMatches(TestCase):
    """Passwords are checked against the stored hash."""

    def setUp(self):
        self.store = CredentialStore()

    def test_correct_password(self):
        """The right password matches."""
        with temporary_db():
            self.store.create('foo@example.com',
                              passwords.hash_password('th1sp4ssword'))
            self.assertTrue(self.store.password_matches('Foo@Example.com',
                                                        'th1sp4ssword'))

    def test_wrong_password(self):
        """Any other password does not."""
        with temporary_db():
            self.store.create('foo@example.com',
                              passwords.hash_password('th1sp4ssword'))
            self.assertFalse(self.store.password_matches('foo@example.com',
                                                         'th1sp4sswordd'))

    def test_updated_password(self):
        """After an update, only the new password matches."""
        with temporary_db():
            self.store.create('foo@example.com',
                              passwords.hash_password('th1sp4ssword'))
            self.store.update_password_hash(
                'foo@example.com', passwords.hash_password('an0therone')
            )
            self.assertFalse(self.store.password_matches('foo@example.com',
                                                         'th1sp4ssword'))
            self.assertTrue(self.store.password_matches('foo@example.com',
                                                        'an0therone'))

    @mock.patch('useraccounts.services.credentials.passwords.burn_time')
    def test_unknown_account(self, mock_burn_time):
        """No account means no match, but the same work is done."""
        with temporary_db():
            self.assertFalse(self.store.password_matches('nobody@example.com',
                                                         'th1sp4ssword'))
        mock_burn_time.assert_called_once_with('th1sp4ssword')

    def test_rehash(self):
        """A hash made with old parameters is replaced on login."""
        with temporary_db():
            self.store.create('foo@example.com',
                              passwords.hash_password('th1sp4ssword'))
            with mock.patch.object(passwords, 'needs_rehash',
                                   return_value=True):
                with mock.patch.object(self.store, 'update_password_hash') \
                        as mock_update:
                    self.assertTrue(self.store.password_matches(
                        'foo@example.com', 'th1sp4ssword'
                    ))
            self.assertEqual(mock_update.call_count, 1)
