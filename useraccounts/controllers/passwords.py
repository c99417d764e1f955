"""
Controllers for resetting a forgotten password.

The account holder asks for a reset code (:func:`forgot_password`), submits
it (:func:`reset_otp_auth`), and then has a few minutes to set a new password
(:func:`reset_password`). Setting it logs the account out everywhere.
"""

from typing import Any
from http import HTTPStatus
import logging

from .. import domain
from ..exceptions import ResetNotAuthorized
from ..services.exceptions import ServiceError
from ..services.passwords import hash_password
from . import util
from .forms import EmailForm, OTPForm, ResetPasswordForm, parse
from .util import ResponseData, recovers

logger = logging.getLogger(__name__)

CODE_SENT = 'If the address belongs to an account, a reset code has been sent.'


@recovers
def forgot_password(payload: Any, ip: str = '') -> ResponseData:
    """
    Mail a password reset code.

    The response is the same whether or not there is an account for the
    address, and whether or not the code could be sent.
    """
    form = parse(EmailForm, payload)
    email = domain.normalize_email(form.email.data)
    logger.debug('Password reset requested for %s from %s', email, ip)
    try:
        account = util.find_account(email)
        if account is not None and not account.disabled:
            util.issue_code(email, domain.Intent.RESET_PASSWORD)
    except ServiceError:
        logger.exception('Could not issue reset code for %s', email)
    return {'message': CODE_SENT}, HTTPStatus.OK, {}


@recovers
def reset_otp_auth(payload: Any) -> ResponseData:
    """
    Verify a password reset code.

    On success the account may change its password once, within
    ``RESET_GRANT_TTL`` seconds. This is not a login: no tokens are issued.

    The code is used up before the grant is written. If redis still fails
    after a few tries the response is ``internal_error``, and the account
    holder asks for a new code with :func:`forgot_password` or
    :func:`.registration.resend_otp`.
    """
    form = parse(OTPForm, payload)
    email = domain.normalize_email(form.email.data)
    with util.registry().lock(email):
        util.otp_manager().verify(email, domain.Intent.RESET_PASSWORD,
                                  form.otp.data)
        util.grant_reset(email)
    logger.info('Password reset authorized for %s', email)
    data = {'message': 'Code verified; you may now set a new password.'}
    return data, HTTPStatus.OK, {}


@recovers
def reset_password(payload: Any) -> ResponseData:
    """
    Set a new password, and revoke every session of the account.

    Raises :class:`ResetNotAuthorized` (handled) unless a reset code was
    verified for the account, and not used yet.
    """
    form = parse(ResetPasswordForm, payload)
    email = domain.normalize_email(form.email.data)
    password_hash = hash_password(form.newPassword.data)
    registry = util.registry()
    with registry.lock(email):
        if not registry.consume_reset(email):
            raise ResetNotAuthorized()
        util.credentials().update_password_hash(email, password_hash)
        count = util.tokens().revoke_all(email)
    logger.info('Password changed for %s; revoked %i sessions', email, count)
    data = {'message': 'Password changed; please log in again.'}
    return data, HTTPStatus.OK, {}
