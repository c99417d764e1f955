"""
Domain errors.

Each error carries a stable ``code`` and an HTTP ``status``. Controllers
recover these at their boundary and turn them into a response body; messages
are written so as not to reveal which of several checks failed where that
would help an attacker.
"""

from http import HTTPStatus
from typing import Dict, List, Optional


class AuthError(Exception):
    """Base class for errors that are reported to the client."""

    code = 'internal_error'
    status = HTTPStatus.INTERNAL_SERVER_ERROR
    message = 'Something went wrong; please try again later.'

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self) -> dict:
        """Response body for this error."""
        return {'error': self.code, 'message': self.message}


class ValidationError(AuthError):
    """The request is malformed."""

    code = 'validation_error'
    status = HTTPStatus.BAD_REQUEST
    message = 'The request is not valid.'

    def __init__(self, message: Optional[str] = None,
                 errors: Optional[Dict[str, List[str]]] = None) -> None:
        super().__init__(message)
        self.errors = errors or {}

    def to_dict(self) -> dict:
        data = super().to_dict()
        data['fields'] = self.errors
        return data


class DuplicateAccount(AuthError):
    code = 'duplicate_account'
    status = HTTPStatus.CONFLICT
    message = 'An account with that e-mail address already exists.'


class AccountNotVerified(AuthError):
    code = 'account_not_verified'
    status = HTTPStatus.FORBIDDEN
    message = 'This account has not been verified yet.'


class InvalidCredentials(AuthError):
    """Unknown account or wrong password; deliberately indistinguishable."""

    code = 'invalid_credentials'
    status = HTTPStatus.UNAUTHORIZED
    message = 'Invalid e-mail address or password.'


class OtpNotFound(AuthError):
    code = 'otp_not_found'
    status = HTTPStatus.BAD_REQUEST
    message = 'No pending verification code; please request a new one.'


class OtpExpired(AuthError):
    code = 'otp_expired'
    status = HTTPStatus.BAD_REQUEST
    message = 'The verification code has expired; please request a new one.'


class OtpMismatch(AuthError):
    code = 'otp_mismatch'
    status = HTTPStatus.BAD_REQUEST
    message = 'The verification code is not correct.'


class OtpExhausted(AuthError):
    code = 'otp_exhausted'
    status = HTTPStatus.TOO_MANY_REQUESTS
    message = 'Too many attempts; please request a new verification code.'


class TokenExpired(AuthError):
    code = 'token_expired'
    status = HTTPStatus.UNAUTHORIZED
    message = 'The token has expired.'


class TokenInvalid(AuthError):
    code = 'token_invalid'
    status = HTTPStatus.UNAUTHORIZED
    message = 'The token is not valid.'


class TokenRevoked(AuthError):
    code = 'token_revoked'
    status = HTTPStatus.UNAUTHORIZED
    message = 'The token has been revoked.'


class ResetNotAuthorized(AuthError):
    """No verified password-reset code for this account."""

    code = 'reset_not_authorized'
    status = HTTPStatus.FORBIDDEN
    message = 'Please verify a password reset code first.'


class RateLimited(AuthError):
    code = 'rate_limited'
    status = HTTPStatus.TOO_MANY_REQUESTS
    message = 'Too many requests; please try again later.'


class InternalError(AuthError):
    """A store or delivery failure. Details stay in the log."""
