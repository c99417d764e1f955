"""Helpers for :mod:`useraccounts.controllers`."""

from typing import Any, Callable, Dict, Optional, Tuple
from functools import wraps
import logging

from retry import retry

from .. import domain
from ..context import get_application_config
from ..exceptions import AuthError, InternalError
from ..services import mail
from ..services.credentials import CredentialStore
from ..services.exceptions import NoSuchAccount, ServiceError, Unavailable
from ..services.otp import OTPManager
from ..services.sessions import SessionRegistry
from ..services.tokens import TokenService

logger = logging.getLogger(__name__)

ResponseData = Tuple[dict, int, dict]


def credentials() -> CredentialStore:
    """Get the credential store."""
    return CredentialStore()


def otp_manager() -> OTPManager:
    """Get an OTP manager configured for this application."""
    config = get_application_config()
    return OTPManager(ttl=int(config.get('OTP_TTL', 600)),
                      max_attempts=int(config.get('OTP_MAX_ATTEMPTS', 5)))


def registry() -> SessionRegistry:
    """Get the session registry for this context."""
    return SessionRegistry.current_registry()


def tokens() -> TokenService:
    """Get a token service bound to the session registry."""
    return TokenService.get_service(registry=registry())


def deliver(email: str, code: str, intent: str) -> bool:
    """Mail a code. Failure does not undo issuing it."""
    return mail.send_otp(email, code, intent)


@retry(Unavailable, tries=3, delay=0.5, backoff=2)
def find_account(email: str) -> Optional[domain.Account]:
    """Get an account, or ``None`` if there is none for ``email``."""
    try:
        return credentials().find(email)
    except NoSuchAccount:
        return None


@retry(Unavailable, tries=3, delay=0.5, backoff=2)
def mark_verified(email: str) -> None:
    """Mark an account verified. Repeating this is harmless."""
    credentials().set_verified(email)


@retry(Unavailable, tries=3, delay=0.5, backoff=2)
def grant_reset(email: str) -> None:
    """Allow one password change for ``email``. Repeating this is harmless."""
    ttl = int(get_application_config().get('RESET_GRANT_TTL', 600))
    registry().grant_reset(email, ttl)


def issue_code(email: str, intent: str) -> bool:
    """
    Issue a one-time code for an account, and mail it.

    Issuing happens under the account lock; delivery does not.

    Returns
    -------
    bool
        Whether the code was handed to the mail server.

    """
    with registry().lock(email):
        code = otp_manager().issue(email, intent)
    return deliver(email, code, intent)


def recovers(func: Callable[..., ResponseData]) -> Callable[..., ResponseData]:
    """
    Turn errors raised by a controller into responses.

    Domain errors become their code and message. Failures of the database,
    redis, or mail become a generic internal error; the details are logged,
    not returned.
    """
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> ResponseData:
        try:
            return func(*args, **kwargs)
        except AuthError as e:
            logger.debug('%s failed: %s', func.__name__, e.code)
            return e.to_dict(), e.status, {}
        except ServiceError as e:
            logger.exception('%s failed: %s', func.__name__, e)
            error = InternalError()
            return error.to_dict(), error.status, {}
    return wrapper


def user_data(account: domain.Account) -> Dict[str, Any]:
    """Public representation of an account."""
    name = account.name or domain.AccountName(forename='', surname='')
    profile = account.profile or domain.AccountProfile()
    return {
        'id': account.user_id,
        'email': account.email,
        'first_name': name.forename,
        'last_name': name.surname,
        'phone': profile.phone,
        'companyName': profile.company_name,
        'verified': account.verified,
    }


def token_data(pair: domain.TokenPair, account: domain.Account) -> dict:
    """Response body for token-issuing requests, with cookies to set."""
    return {
        'accessToken': pair.access_token,
        'refreshToken': pair.refresh_token,
        'tokenType': pair.token_type,
        'expiresIn': pair.expires_in,
        'refreshExpiresIn': pair.refresh_expires_in,
        'user': user_data(account),
        'cookies': {
            'access_token_cookie': (pair.access_token, pair.access_ttl),
            'refresh_token_cookie': (pair.refresh_token, pair.refresh_ttl)
        }
    }


def cleared_cookies() -> dict:
    """Cookie instructions that remove both token cookies."""
    return {
        'access_token_cookie': ('', 0),
        'refresh_token_cookie': ('', 0)
    }
