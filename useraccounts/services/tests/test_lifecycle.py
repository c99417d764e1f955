"""The services together: from registration to a rotated token pair."""

from unittest import TestCase, mock

from ... import domain
from ...exceptions import OtpNotFound, TokenRevoked
from .. import otp, passwords
from ..credentials import CredentialStore
from ..sessions import SessionRegistry
from ..tokens import TokenService
from .util import temporary_db


class TestAccountLifecycle(TestCase):
    """An account is registered, verified, logs in and refreshes."""

    @mock.patch(f'{otp.__name__}._generate_code', return_value='123456')
    def test_register_verify_login_rotate(self, mock_generate):
        """The old refresh token is revoked once it has been rotated."""
        with temporary_db():
            store = CredentialStore()
            manager = otp.OTPManager()
            service = TokenService.get_service(
                registry=SessionRegistry.current_registry()
            )

            account = store.create('a@x.com', passwords.hash_password('pw'))
            self.assertFalse(account.verified)
            code = manager.issue(account.email, domain.Intent.REGISTER)
            self.assertEqual(code, '123456')

            manager.verify('a@x.com', domain.Intent.REGISTER, '123456')
            store.set_verified('a@x.com')
            self.assertTrue(store.find('a@x.com').verified)
            with self.assertRaises(OtpNotFound):
                manager.verify('a@x.com', domain.Intent.REGISTER, '123456')

            self.assertTrue(store.password_matches('a@x.com', 'pw'))
            pair = service.issue_pair('a@x.com')
            self.assertEqual(service.verify_access(pair.access_token),
                             'a@x.com')

            new_pair = service.rotate(pair.refresh_token)
            self.assertEqual(service.verify_access(new_pair.access_token),
                             'a@x.com')
            with self.assertRaises(TokenRevoked):
                service.rotate(pair.refresh_token)

    def test_password_change_revokes_sessions(self):
        """After a password change no earlier refresh token works."""
        with temporary_db():
            store = CredentialStore()
            service = TokenService.get_service()
            store.create('a@x.com', passwords.hash_password('pw'))
            pairs = [service.issue_pair('a@x.com') for _ in range(3)]

            store.update_password_hash('a@x.com',
                                       passwords.hash_password('n3wpassword'))
            service.revoke_all('a@x.com')

            for pair in pairs:
                with self.assertRaises(TokenRevoked):
                    service.rotate(pair.refresh_token)
            self.assertFalse(store.password_matches('a@x.com', 'pw'))
