"""
Controllers for logging in and out, and for renewing tokens.

When a user logs in they are issued an access token, good for a short time,
and a refresh token that can be exchanged once for a new pair. Both are
returned in the response body and set as HTTP-only cookies. Refresh tokens
are tracked in the session registry, so that logging out can revoke them.
"""

from typing import Any, Optional
from http import HTTPStatus
import logging

from .. import domain
from ..exceptions import AccountNotVerified, InvalidCredentials, \
    TokenExpired, TokenInvalid, ValidationError
from ..services.tokens import TokenService
from . import util
from .forms import EmailForm, LoginForm, RefreshForm, parse
from .util import ResponseData, recovers

logger = logging.getLogger(__name__)


@recovers
def login(payload: Any, ip: str = '') -> ResponseData:
    """
    Log in with e-mail address and password.

    Parameters
    ----------
    payload : dict
        Should include ``email`` and ``password``.
    ip : str
        IP address of the client.

    Returns
    -------
    dict
        Tokens and user data. Includes ``cookies`` for the route to set.
    int
        Status code. This should be 200 if all goes well.
    dict
        Headers to add to the response.

    """
    form = parse(LoginForm, payload)
    email = domain.normalize_email(form.email.data)
    store = util.credentials()
    # The password is checked first, so that only someone who knows it can
    # learn whether the account is verified.
    if not store.password_matches(email, form.password.data):
        logger.debug('Authentication failed for %s from %s', email, ip)
        raise InvalidCredentials()
    account = store.find(email)
    if not account.verified:
        logger.debug('Login by unverified account %s', email)
        raise AccountNotVerified()
    pair = util.tokens().issue_pair(account.email)
    logger.info('Logged in %s from %s', email, ip)
    return util.token_data(pair, account), HTTPStatus.OK, {}


@recovers
def refresh_token(payload: Any, cookie: Optional[str] = None) -> ResponseData:
    """
    Exchange a refresh token for a new pair.

    The token may be given in the body as ``refreshToken``, or as a cookie.
    A token can be used only once: the old token is revoked, and any later
    use of it fails with :class:`TokenRevoked`.
    """
    form = parse(RefreshForm, payload)
    token = form.refreshToken.data or cookie
    if not token:
        raise ValidationError(errors={
            'refreshToken': ['This field is required.']
        })
    tokens = util.tokens()
    account_id = str(tokens.verify_refresh(token)['sub'])
    # Under the lock, so that a logout cannot miss the new session.
    with util.registry().lock(account_id):
        pair = tokens.rotate(token)
    account = util.find_account(account_id)
    if account is None or account.disabled:
        with util.registry().lock(account_id):
            tokens.revoke_all(account_id)
        raise TokenInvalid()
    return util.token_data(pair, account), HTTPStatus.OK, {}


@recovers
def logout(payload: Any, access_token: Optional[str] = None,
           refresh_token: Optional[str] = None) -> ResponseData:
    """
    Log out of every session of an account.

    The caller must hold either an access token or a live refresh token for
    the account. Outstanding access tokens stay good until they expire, but
    none of the account's refresh tokens can be used again.
    """
    form = parse(EmailForm, payload)
    email = domain.normalize_email(form.email.data)
    tokens = util.tokens()
    if not _holds_token(tokens, email, access_token, refresh_token):
        logger.debug('Logout for %s without a token for it', email)
        raise TokenInvalid()
    with util.registry().lock(email):
        count = tokens.revoke_all(email)
    logger.info('Logged out %s; revoked %i sessions', email, count)
    data = {'message': 'Logged out.', 'cookies': util.cleared_cookies()}
    return data, HTTPStatus.OK, {}


def _holds_token(tokens: TokenService, email: str,
                 access_token: Optional[str],
                 refresh_token: Optional[str]) -> bool:
    if access_token:
        try:
            if tokens.verify_access(access_token) == email:
                return True
        except (TokenExpired, TokenInvalid):
            pass
    if refresh_token:
        try:
            claims = tokens.verify_refresh(refresh_token)
        except (TokenExpired, TokenInvalid):
            return False
        return bool(claims['sub'] == email
                    and util.registry().is_active(claims['jti']))
    return False
