"""Defines account, code, token and session concepts for the service."""

from typing import Any, Optional, NamedTuple, Callable, get_args, \
    get_type_hints
from datetime import datetime
from functools import partial
import dateutil.parser
from pytz import UTC


def normalize_email(email: str) -> str:
    """Accounts are identified by case-insensitive e-mail address."""
    return email.strip().lower()


class Intent(object):
    """Purposes for which a one-time code may be issued."""

    REGISTER = 'register'
    """Prove possession of the address given at registration."""

    RESET_PASSWORD = 'reset_password'
    """Prove possession of the address before setting a new password."""

    ALL = (REGISTER, RESET_PASSWORD)


class AccountName(NamedTuple):
    """Represents an account holder's name."""

    forename: str
    """First name or given name."""

    surname: str
    """Last name or family name."""


class AccountProfile(NamedTuple):
    """Optional contact details."""

    phone: Optional[str] = None
    company_name: Optional[str] = None


class Account(NamedTuple):
    """Represents a user account. Never carries the password hash."""

    email: str
    """Normalized e-mail address; unique across all accounts."""

    user_id: Optional[str] = None
    """Unique identifier for the account. If ``None``, it does not exist."""

    name: Optional[AccountName] = None
    """The account holder's name (if available)."""

    profile: Optional[AccountProfile] = None

    verified: bool = False
    """Whether or not the e-mail address has been verified."""

    disabled: bool = False
    """Disabled accounts cannot authenticate. Accounts are never deleted."""

    joined: Optional[datetime] = None


class OneTimeCode(NamedTuple):
    """A one-time code record. The code itself is only stored hashed."""

    otp_id: str
    email: str
    intent: str
    issued_at: datetime
    expires_at: datetime
    consumed: bool = False
    superseded: bool = False
    attempts: int = 0

    @property
    def expired(self) -> bool:
        """Expired if the current time is later than :attr:`.expires_at`."""
        return datetime.now(tz=UTC) >= self.expires_at

    @property
    def active(self) -> bool:
        """Only an active code can be verified."""
        return not (self.consumed or self.superseded or self.expired)


class TokenPair(NamedTuple):
    """An access token and the refresh token that can renew it."""

    account_id: str
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    token_type: str = 'Bearer'
    expires_in: str = '15m'
    refresh_expires_in: str = '7d'

    @property
    def access_ttl(self) -> int:
        """Seconds until the access token expires."""
        return _seconds_until(self.access_expires_at)

    @property
    def refresh_ttl(self) -> int:
        """Seconds until the refresh token expires."""
        return _seconds_until(self.refresh_expires_at)


class SessionEntry(NamedTuple):
    """An outstanding refresh token, as tracked by the session registry."""

    account_id: str
    token_id: str
    issued_at: datetime
    expires_at: Optional[datetime] = None
    revoked: bool = False

    @property
    def expired(self) -> bool:
        """Expired if the current time is later than :attr:`.expires_at`."""
        return bool(self.expires_at is not None
                    and datetime.now(tz=UTC) >= self.expires_at)

    @property
    def active(self) -> bool:
        return not (self.revoked or self.expired)


def format_duration(seconds: int) -> str:
    """
    Express a duration compactly, e.g. ``15m`` or ``7d``.

    The largest unit that divides ``seconds`` evenly is used.
    """
    for unit, size in (('d', 86400), ('h', 3600), ('m', 60)):
        if seconds and seconds % size == 0:
            return f'{seconds // size}{unit}'
    return f'{seconds}s'


def _seconds_until(moment: datetime) -> int:
    return max(int((moment - datetime.now(tz=UTC)).total_seconds()), 0)


# Helpers and private functions.


def to_dict(obj: tuple) -> dict:
    """
    Generate a dict representation of a NamedTuple instance.

    This just uses the built-in ``_asdict`` method on the intance, but also
    calls this on any child NamedTuple instances (recursively) so that the
    entire tree is cast to ``dict``.

    Parameters
    ----------
    obj : tuple
        A NamedTuple instance.

    Returns
    -------
    dict

    """
    if not hasattr(obj, '_asdict'):  # NamedTuple-generated classes have this.
        return {}
    data = obj._asdict()  # type: ignore

    def _cast(obj: Any) -> Any:
        if hasattr(obj, '_asdict'):
            obj = to_dict(obj)
        elif isinstance(obj, datetime):
            obj = obj.isoformat()
        elif isinstance(obj, list):
            obj = [_cast(o) for o in obj]
        return obj

    return {key: _cast(value) for key, value in data.items()}


def from_dict(cls: type, data: dict) -> Any:
    """
    Generate a NamedTuple instance from a dict, with recursion.

    This is the inverse of :func:`to_dict`. Any field typed with another
    NamedTuple class is instantiated from the corresponding nested dict, and
    ISO-8601 strings are parsed for ``datetime`` fields.

    Parameters
    ----------
    cls: type
        Any NamedTuple class.

    data: dict
        Data with which to instantiate ``cls`` and its children.

    Returns
    -------
    NamedTuple
        An instance of ``cls``.
    """
    _data = {}
    for field, field_type in get_type_hints(cls).items():
        if field not in data:
            continue
        value = data[field]
        target_type = _get_cast_type(field_type, value)
        if target_type:
            value = target_type(value)
        _data[field] = value
    return cls(**_data)


def _candidates(field_type: type) -> tuple:
    """A type and, for ``Optional``/``Union``, its members."""
    return (field_type,) + get_args(field_type)


def _get_cast_type(field_type: type, value: Any) -> Optional[Callable]:
    """Get a casting callable for a field type/value."""
    candidates = _candidates(field_type)
    if type(value) is dict:
        for s_type in candidates:
            if hasattr(s_type, '_fields'):
                return partial(from_dict, s_type)
    elif type(value) is str and datetime in candidates:
        return dateutil.parser.parse
    return None
