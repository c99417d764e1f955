"""
Provides the credential store: account records and password checks.

Account e-mail addresses are normalized before every read and write, so
uniqueness is case-insensitive. Accounts are never deleted; a disabled
account simply cannot authenticate.
"""

from typing import Optional
import logging

from sqlalchemy.exc import IntegrityError, OperationalError

from .. import domain
from ..exceptions import DuplicateAccount
from . import passwords, util
from .exceptions import NoSuchAccount, Unavailable
from .models import DBAccount

logger = logging.getLogger(__name__)


class CredentialStore(object):
    """Account records in the relational database."""

    def create(self, email: str, password_hash: str,
               name: Optional[domain.AccountName] = None,
               profile: Optional[domain.AccountProfile] = None,
               ip_address: str = '') -> domain.Account:
        """
        Create a new, unverified account.

        Parameters
        ----------
        email : str
        password_hash : str
            Produced by :func:`.passwords.hash_password`.
        name : :class:`domain.AccountName`
        profile : :class:`domain.AccountProfile`
        ip_address : str

        Returns
        -------
        :class:`domain.Account`

        Raises
        ------
        :class:`DuplicateAccount`
            Raised if an account with the same (normalized) address exists.

        """
        email = domain.normalize_email(email)
        name = name or domain.AccountName(forename='', surname='')
        profile = profile or domain.AccountProfile()
        try:
            with util.transaction() as session:
                exists = _query(session, email).first() is not None
        except OperationalError as e:
            raise Unavailable('Database is temporarily unavailable') from e
        if exists:
            raise DuplicateAccount()
        try:
            with util.transaction() as session:
                db_account = DBAccount(
                    email=email,
                    password_enc=password_hash,
                    password_storage=passwords.ALGORITHM,
                    first_name=name.forename,
                    last_name=name.surname,
                    phone=profile.phone,
                    company_name=profile.company_name,
                    joined_date=util.now(),
                    joined_ip_num=ip_address,
                    flag_email_verified=0,
                    flag_deleted=0
                )
                session.add(db_account)
                session.commit()
                account = _to_domain(db_account)
        except IntegrityError as e:     # Lost a race with another request.
            raise DuplicateAccount() from e
        except OperationalError as e:
            raise Unavailable('Database is temporarily unavailable') from e
        logger.debug('Created account %s for %s', account.user_id, email)
        return account

    def find(self, email: str) -> domain.Account:
        """
        Get an account by e-mail address.

        Raises
        ------
        :class:`NoSuchAccount`

        """
        try:
            with util.transaction() as session:
                db_account = _query(session, email).first()
                account = _to_domain(db_account) if db_account else None
        except OperationalError as e:
            raise Unavailable('Database is temporarily unavailable') from e
        if account is None:
            raise NoSuchAccount('No such account')
        return account

    def exists(self, email: str) -> bool:
        """Determine whether an enabled account exists for an address."""
        try:
            account = self.find(email)
        except NoSuchAccount:
            return False
        return not account.disabled

    def set_verified(self, email: str) -> None:
        """Mark the account's e-mail address as verified."""
        self._update(email, flag_email_verified=1)
        logger.debug('Verified account for %s', email)

    def update_password_hash(self, email: str, password_hash: str) -> None:
        """Replace the stored password hash."""
        self._update(email, password_enc=password_hash,
                     password_storage=passwords.ALGORITHM)
        logger.debug('Updated password for %s', email)

    def disable(self, email: str) -> None:
        """Soft-disable an account."""
        self._update(email, flag_deleted=1)
        logger.info('Disabled account for %s', email)

    def password_matches(self, email: str, password: str) -> bool:
        """
        Check a password for an account.

        Unknown and disabled accounts never match, but still cost as much as
        a real check.
        """
        try:
            with util.transaction() as session:
                db_account = _query(session, email).first()
                if db_account is None or db_account.flag_deleted:
                    found = None
                else:
                    found = (db_account.password_enc,
                             db_account.password_storage)
        except OperationalError as e:
            raise Unavailable('Database is temporarily unavailable') from e
        if found is None:
            passwords.burn_time(password)
            return False
        encrypted, storage = found
        if not passwords.check_password(password, encrypted, storage):
            return False
        if passwords.needs_rehash(encrypted):
            self.update_password_hash(email, passwords.hash_password(password))
        return True

    def _update(self, email: str, **values: object) -> None:
        try:
            with util.transaction() as session:
                updated = _query(session, email).update(
                    values, synchronize_session=False
                )
                session.commit()
        except OperationalError as e:
            raise Unavailable('Database is temporarily unavailable') from e
        if not updated:
            raise NoSuchAccount('No such account')


def _query(session, email: str):    # type: ignore
    return session.query(DBAccount) \
        .filter(DBAccount.email == domain.normalize_email(email))


def _to_domain(db_account: DBAccount) -> domain.Account:
    return domain.Account(
        email=db_account.email,
        user_id=str(db_account.user_id),
        name=domain.AccountName(
            forename=db_account.first_name or '',
            surname=db_account.last_name or ''
        ),
        profile=domain.AccountProfile(
            phone=db_account.phone,
            company_name=db_account.company_name
        ),
        verified=bool(db_account.flag_email_verified),
        disabled=bool(db_account.flag_deleted),
        joined=util.from_epoch(db_account.joined_date)
    )
