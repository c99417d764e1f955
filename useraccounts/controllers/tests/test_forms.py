"""Tests for :mod:`useraccounts.controllers.forms`."""

from unittest import TestCase

from ...exceptions import ValidationError
from ...services.tests.util import make_app
from ..forms import EmailForm, LoginForm, OTPForm, RegistrationForm, \
    ResendForm, parse


class TestParse(TestCase):
    """Payloads are checked against a form."""

    def setUp(self):
        self.app = make_app({'PASSWORD_MIN_LENGTH': 10})

    def test_valid(self):
        """A good payload gives a filled-in form."""
        with self.app.app_context():
            form = parse(LoginForm, {'email': 'foo@acme.com',
                                     'password': 'anything'})
        self.assertEqual(form.email.data, 'foo@acme.com')

    def test_unknown_field(self):
        """Fields the form does not know are refused."""
        with self.app.app_context():
            with self.assertRaises(ValidationError) as ctx:
                parse(EmailForm, {'email': 'foo@acme.com', 'role': 'admin'})
        self.assertIn('role', ctx.exception.errors)

    def test_not_a_string(self):
        """Nested values are refused."""
        with self.app.app_context():
            with self.assertRaises(ValidationError) as ctx:
                parse(EmailForm, {'email': ['foo@acme.com']})
        self.assertIn('email', ctx.exception.errors)

    def test_not_an_object(self):
        """The payload must be an object."""
        with self.app.app_context():
            for payload in ('foo', 42, ['email']):
                with self.assertRaises(ValidationError):
                    parse(EmailForm, payload)

    def test_empty(self):
        """No payload at all is a payload with no fields."""
        with self.app.app_context():
            with self.assertRaises(ValidationError) as ctx:
                parse(EmailForm, None)
        self.assertIn('email', ctx.exception.errors)

    def test_password_length(self):
        """The minimum length is configurable."""
        payload = {'email': 'foo@acme.com', 'phone': '5551234567',
                   'password': 'abcd12345', 'first_name': 'F',
                   'last_name': 'L'}
        with self.app.app_context():
            with self.assertRaises(ValidationError) as ctx:
                parse(RegistrationForm, payload)
            self.assertIn('password', ctx.exception.errors)
            payload['password'] = 'abcd123456'
            parse(RegistrationForm, payload)

    def test_code(self):
        """Codes are six digits, give or take whitespace."""
        with self.app.app_context():
            parse(OTPForm, {'email': 'foo@acme.com', 'otp': ' 012345 '})
            for bad in ('12345', '1234567', 'abcdef', ''):
                with self.assertRaises(ValidationError):
                    parse(OTPForm, {'email': 'foo@acme.com', 'otp': bad})

    def test_events(self):
        """Both spellings of each event are accepted."""
        with self.app.app_context():
            for event in ('register', 'Register', 'reset_password',
                          'Reset Password'):
                parse(ResendForm, {'email': 'foo@acme.com', 'event': event})
