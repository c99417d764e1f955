"""
One-time codes bound to an account and an intent.

A code is six random digits. Only a salted HMAC of it is stored. For any
(account, intent) there is at most one active code: issuing a new one marks
every earlier one superseded, in the same transaction that inserts the new
record. A code can be verified once; after ``max_attempts`` wrong guesses it
is locked out, even if the next guess would have been right.

Every guess first claims one of the ``max_attempts`` with a conditional
``UPDATE``, and only a guess that got one is compared. Consuming a right
guess is conditional too, so two requests that read the same record cannot
both succeed, and no number of concurrent guesses gets more comparisons than
the limit allows.
"""

from typing import Optional
import hashlib
import hmac
import logging
import secrets

from sqlalchemy.exc import OperationalError

from .. import domain
from ..exceptions import AuthError, OtpNotFound, OtpExpired, OtpMismatch, \
    OtpExhausted
from . import util
from .exceptions import Unavailable
from .models import DBOneTimeCode

logger = logging.getLogger(__name__)

CODE_LENGTH = 6


def _generate_code() -> str:
    return f'{secrets.randbelow(10 ** CODE_LENGTH):0{CODE_LENGTH}d}'


def _hash_code(code: str, salt: str) -> str:
    return hmac.new(salt.encode('ascii'), code.encode('utf-8'),
                    hashlib.sha256).hexdigest()


def _well_formed(code: str) -> bool:
    return len(code) == CODE_LENGTH and code.isdigit()


def _check_intent(intent: str) -> None:
    if intent not in domain.Intent.ALL:
        raise ValueError(f'Unknown intent: {intent}')


class OTPManager(object):
    """Issues and verifies one-time codes."""

    def __init__(self, ttl: int = 600, max_attempts: int = 5) -> None:
        self._ttl = ttl
        self._max_attempts = max_attempts

    def issue(self, email: str, intent: str) -> str:
        """
        Issue a new code, superseding any earlier one.

        Parameters
        ----------
        email : str
        intent : str
            One of :attr:`domain.Intent.ALL`.

        Returns
        -------
        str
            The plaintext code, for delivery to the account holder. It is not
            stored anywhere.

        """
        _check_intent(intent)
        email = domain.normalize_email(email)
        code = _generate_code()
        salt = secrets.token_hex(16)
        issued_at = util.now()
        try:
            with util.transaction() as session:
                superseded = _active(session, email, intent).update(
                    {DBOneTimeCode.superseded: 1},
                    synchronize_session=False
                )
                session.add(DBOneTimeCode(
                    email=email,
                    intent=intent,
                    code_hash=_hash_code(code, salt),
                    salt=salt,
                    issued_at=issued_at,
                    expires_at=issued_at + self._ttl,
                    consumed=0,
                    superseded=0,
                    attempts=0
                ))
                session.commit()
        except OperationalError as e:
            raise Unavailable('Database is temporarily unavailable') from e
        logger.debug('Issued %s code for %s, superseding %i',
                     intent, email, superseded)
        return code

    def resend(self, email: str, intent: str) -> str:
        """Issue a replacement code. Earlier codes stop working."""
        return self.issue(email, intent)

    def verify(self, email: str, intent: str, code: str) -> None:
        """
        Verify and consume a code.

        Raises
        ------
        :class:`OtpNotFound`
            There is no active code, e.g. it was already used or replaced.
        :class:`OtpExpired`
        :class:`OtpExhausted`
            No guesses left; checked before the code is compared.
        :class:`OtpMismatch`
            Wrong code. Every compared guess is counted.

        """
        _check_intent(intent)
        email = domain.normalize_email(email)
        code = (code or '').strip()
        failure: Optional[AuthError] = None
        try:
            with util.transaction() as session:
                record: Optional[DBOneTimeCode] = \
                    _active(session, email, intent) \
                    .order_by(DBOneTimeCode.otp_id.desc()) \
                    .first()
                if record is None:
                    failure = OtpNotFound()
                elif record.expires_at <= util.now():
                    failure = OtpExpired()
                elif record.attempts >= self._max_attempts:
                    failure = OtpExhausted()
                elif not _claim(session, record, self._max_attempts):
                    failure = _lost_claim(session, record)
                elif not self._matches(record, code):
                    failure = OtpMismatch()
                else:
                    consumed = _active(session, email, intent) \
                        .filter(DBOneTimeCode.otp_id == record.otp_id) \
                        .update({DBOneTimeCode.consumed: 1},
                                synchronize_session=False)
                    if consumed != 1:   # Someone else got there first.
                        failure = OtpNotFound()
                session.commit()
        except OperationalError as e:
            raise Unavailable('Database is temporarily unavailable') from e
        if failure is not None:
            logger.debug('Failed to verify %s code for %s: %s',
                         intent, email, failure.code)
            raise failure
        logger.debug('Verified %s code for %s', intent, email)

    def active(self, email: str, intent: str) -> Optional[domain.OneTimeCode]:
        """Get the current active code record, if any."""
        _check_intent(intent)
        with util.transaction() as session:
            record = _active(session, domain.normalize_email(email), intent) \
                .filter(DBOneTimeCode.expires_at > util.now()) \
                .order_by(DBOneTimeCode.otp_id.desc()) \
                .first()
            if record is None:
                return None
            return _to_domain(record)

    def prune(self, before: Optional[int] = None) -> int:
        """
        Delete codes that can no longer be verified.

        Nothing depends on this for correctness; it only keeps the table
        small.
        """
        before = util.now() if before is None else before
        with util.transaction() as session:
            deleted: int = session.query(DBOneTimeCode) \
                .filter(DBOneTimeCode.expires_at <= before) \
                .delete(synchronize_session=False)
            session.commit()
        logger.debug('Pruned %i one-time codes', deleted)
        return deleted

    def _matches(self, record: DBOneTimeCode, code: str) -> bool:
        if not _well_formed(code):
            return False
        return hmac.compare_digest(_hash_code(code, record.salt),
                                   record.code_hash)


def _active(session, email: str, intent: str):     # type: ignore
    return session.query(DBOneTimeCode) \
        .filter(DBOneTimeCode.email == email) \
        .filter(DBOneTimeCode.intent == intent) \
        .filter(DBOneTimeCode.consumed == 0) \
        .filter(DBOneTimeCode.superseded == 0)


def _claim(session, record: DBOneTimeCode, limit: int) -> bool:  # type: ignore
    claimed = _active(session, record.email, record.intent) \
        .filter(DBOneTimeCode.otp_id == record.otp_id) \
        .filter(DBOneTimeCode.attempts < limit) \
        .update({DBOneTimeCode.attempts: DBOneTimeCode.attempts + 1},
                synchronize_session=False)
    return bool(claimed == 1)


def _lost_claim(session, record: DBOneTimeCode) -> AuthError:  # type: ignore
    session.refresh(record)
    if record.consumed or record.superseded:
        return OtpNotFound()
    return OtpExhausted()


def _to_domain(record: DBOneTimeCode) -> domain.OneTimeCode:
    return domain.OneTimeCode(
        otp_id=str(record.otp_id),
        email=record.email,
        intent=record.intent,
        issued_at=util.from_epoch(record.issued_at),
        expires_at=util.from_epoch(record.expires_at),
        consumed=bool(record.consumed),
        superseded=bool(record.superseded),
        attempts=record.attempts
    )
