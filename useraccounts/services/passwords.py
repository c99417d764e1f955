"""Password hashing with argon2id."""

from functools import lru_cache
import logging

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError

logger = logging.getLogger(__name__)

ALGORITHM = 'argon2id'
"""Tag stored next to every hash, so that the scheme can change later."""

_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    """Generate a salted, memory-hard hash of a password."""
    return _hasher.hash(password)


def check_password(password: str, encrypted: str,
                   storage: str = ALGORITHM) -> bool:
    """
    Check a password against a stored hash.

    The comparison is constant-time. Returns ``False`` rather than raising
    when the password does not match, or the hash cannot be read.
    """
    if storage != ALGORITHM:
        logger.warning('Unsupported password storage: %s', storage)
        return False
    try:
        return _hasher.verify(encrypted, password)
    except (VerificationError, InvalidHash):
        return False


def needs_rehash(encrypted: str) -> bool:
    """True if the hash was made with weaker parameters than the current."""
    return _hasher.check_needs_rehash(encrypted)


def burn_time(password: str) -> None:
    """
    Do the work of a password check that cannot succeed.

    Used when there is no account to check against, so that the response
    time does not reveal whether the account exists.
    """
    check_password(password, _dummy_hash())


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return _hasher.hash('not a real password')
