"""
Controllers for registration and account verification.

A new account starts out unverified. A one-time code is mailed to the
address given at registration; submitting it to :func:`register_auth` marks
the account verified, after which the account holder can log in.
"""

from typing import Any, Optional
from http import HTTPStatus
import logging

from .. import domain
from ..exceptions import TokenInvalid
from ..services.exceptions import ServiceError
from ..services.passwords import hash_password
from . import util
from .forms import EmailForm, OTPForm, RegistrationForm, ResendForm, parse
from .util import ResponseData, recovers

logger = logging.getLogger(__name__)

INTENTS = {
    'register': domain.Intent.REGISTER,
    'Register': domain.Intent.REGISTER,
    'reset_password': domain.Intent.RESET_PASSWORD,
    'Reset Password': domain.Intent.RESET_PASSWORD,
}
"""Values of ``event`` accepted by :func:`resend_otp`, and their intent."""

CODE_SENT = 'If the address belongs to an account, a new code has been sent.'


@recovers
def register(payload: Any, ip: str = '') -> ResponseData:
    """
    Create a new, unverified account and mail it a verification code.

    Parameters
    ----------
    payload : dict
        Should include ``email``, ``phone``, ``password``, ``first_name`` and
        ``last_name``; ``companyName`` is optional.
    ip : str
        IP address of the client.

    Returns
    -------
    dict
        Response data.
    int
        Status code; 201 if the account was created.
    dict
        Headers to add to the response.

    """
    form = parse(RegistrationForm, payload)
    email = domain.normalize_email(form.email.data)
    logger.debug('Registration request for %s from %s', email, ip)
    account = util.credentials().create(
        email,
        hash_password(form.password.data),
        name=domain.AccountName(forename=form.first_name.data.strip(),
                                surname=form.last_name.data.strip()),
        profile=domain.AccountProfile(
            phone=form.phone.data,
            company_name=form.companyName.data or None
        ),
        ip_address=ip
    )
    if not util.issue_code(account.email, domain.Intent.REGISTER):
        logger.warning('Verification code for %s was not delivered', email)
    data = {
        'message': 'Account created; a verification code has been sent.',
        'user': util.user_data(account)
    }
    return data, HTTPStatus.CREATED, {}


@recovers
def register_auth(payload: Any) -> ResponseData:
    """
    Verify a new account with the code that was mailed to it.

    The code is used up before the account is marked verified. If the
    database still fails after a few tries the response is
    ``internal_error``, and the account holder asks for a new code with
    :func:`resend_otp`.
    """
    form = parse(OTPForm, payload)
    email = domain.normalize_email(form.email.data)
    with util.registry().lock(email):
        util.otp_manager().verify(email, domain.Intent.REGISTER,
                                  form.otp.data)
        util.mark_verified(email)
    account = util.find_account(email)
    logger.info('Verified account for %s', email)
    data = {'message': 'Account verified.'}
    if account is not None:
        data['user'] = util.user_data(account)
    return data, HTTPStatus.OK, {}


@recovers
def resend_otp(payload: Any, ip: str = '') -> ResponseData:
    """
    Send a fresh code, replacing any earlier one.

    The response is the same whether or not the account exists. A
    registration code is only sent to an account that is not verified yet.
    """
    form = parse(ResendForm, payload)
    email = domain.normalize_email(form.email.data)
    intent = INTENTS[form.event.data]
    logger.debug('Resend of %s code for %s requested from %s',
                 intent, email, ip)
    account = util.find_account(email)
    if _should_send(account, intent):
        try:
            util.issue_code(email, intent)
        except ServiceError:
            logger.exception('Could not issue %s code for %s', intent, email)
    return {'message': CODE_SENT}, HTTPStatus.OK, {}


@recovers
def view_profile(email: Optional[str],
                 access_token: Optional[str]) -> ResponseData:
    """
    Get the profile of the account that holds ``access_token``.

    Raises :class:`TokenInvalid` (handled) if the token was issued to some
    other account.
    """
    form = parse(EmailForm, {'email': email} if email is not None else {})
    if not access_token:
        raise TokenInvalid('An access token is required.')
    account_id = util.tokens().verify_access(access_token)
    if account_id != domain.normalize_email(form.email.data):
        raise TokenInvalid()
    account = util.find_account(account_id)
    if account is None or account.disabled:
        raise TokenInvalid()
    return {'user': util.user_data(account)}, HTTPStatus.OK, {}


def _should_send(account: Optional[domain.Account], intent: str) -> bool:
    if account is None or account.disabled:
        return False
    if intent == domain.Intent.REGISTER and account.verified:
        return False
    return True
