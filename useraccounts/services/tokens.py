"""
Functions for working with access and refresh tokens.

Both tokens are JWTs with ``sub`` (account), ``iat``, ``exp``, ``jti`` and
``typ`` claims. Access tokens are never recorded anywhere: checking one needs
only the signing secret. Refresh tokens are registered with the
:class:`.SessionRegistry`, and are good for a single use.
"""

from typing import Optional
from datetime import datetime, timedelta
import logging
import uuid

import jwt
from pytz import UTC

from .. import domain
from ..context import get_application_config
from ..exceptions import TokenExpired, TokenInvalid, TokenRevoked
from .exceptions import UnknownSession
from .sessions import SessionRegistry

logger = logging.getLogger(__name__)

ACCESS = 'access'
REFRESH = 'refresh'
REQUIRED_CLAIMS = ['sub', 'iat', 'exp', 'jti', 'typ']


class Signer(object):
    """Signs claims and verifies signed tokens."""

    def sign(self, claims: dict) -> str:
        """Encode and sign ``claims``."""
        raise NotImplementedError('Must be implemented by a child class')

    def verify(self, token: str) -> dict:
        """
        Check the signature and expiry of ``token``, and get its claims.

        Raises
        ------
        :class:`TokenExpired`
        :class:`TokenInvalid`

        """
        raise NotImplementedError('Must be implemented by a child class')


class JWTSigner(Signer):
    """Signs claims as a JWT with a shared secret."""

    def __init__(self, secret: str, algorithm: str = 'HS256',
                 leeway: int = 0) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._leeway = leeway

    def sign(self, claims: dict) -> str:
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> dict:
        try:
            return dict(jwt.decode(token, self._secret,
                                   algorithms=[self._algorithm],
                                   leeway=self._leeway,
                                   options={'require': REQUIRED_CLAIMS}))
        except jwt.exceptions.ExpiredSignatureError as e:
            raise TokenExpired() from e
        except (jwt.exceptions.InvalidTokenError, TypeError) as e:
            raise TokenInvalid() from e


class TokenService(object):
    """Issues, checks, and rotates token pairs."""

    def __init__(self, signer: Signer, registry: SessionRegistry,
                 access_ttl: int = 900, refresh_ttl: int = 604800) -> None:
        self._signer = signer
        self._registry = registry
        self._access_ttl = access_ttl
        self._refresh_ttl = refresh_ttl

    def issue_pair(self, account_id: str) -> domain.TokenPair:
        """
        Issue a fresh access token and refresh token for an account.

        The refresh token is registered with the session registry.

        Parameters
        ----------
        account_id : str

        Returns
        -------
        :class:`domain.TokenPair`

        """
        issued_at = datetime.now(tz=UTC).replace(microsecond=0)
        access_expires_at = issued_at + timedelta(seconds=self._access_ttl)
        refresh_expires_at = issued_at + timedelta(seconds=self._refresh_ttl)
        refresh_id = uuid.uuid4().hex
        access_token = self._signer.sign(_claims(
            account_id, ACCESS, uuid.uuid4().hex, issued_at, access_expires_at
        ))
        refresh_token = self._signer.sign(_claims(
            account_id, REFRESH, refresh_id, issued_at, refresh_expires_at
        ))
        self._registry.register(account_id, refresh_id, issued_at,
                                refresh_expires_at)
        return domain.TokenPair(
            account_id=account_id,
            access_token=access_token,
            refresh_token=refresh_token,
            access_expires_at=access_expires_at,
            refresh_expires_at=refresh_expires_at,
            expires_in=domain.format_duration(self._access_ttl),
            refresh_expires_in=domain.format_duration(self._refresh_ttl)
        )

    def verify_access(self, token: str) -> str:
        """
        Check an access token.

        This is the fast path: the session registry is not consulted, so an
        access token stays good until it expires, even after logout.

        Returns
        -------
        str
            The account the token was issued to.

        Raises
        ------
        :class:`TokenExpired`
        :class:`TokenInvalid`

        """
        claims = self._signer.verify(token)
        if claims['typ'] != ACCESS:
            raise TokenInvalid()
        return str(claims['sub'])

    def verify_refresh(self, token: str) -> dict:
        """Check the signature, expiry and type of a refresh token."""
        claims = self._signer.verify(token)
        if claims['typ'] != REFRESH:
            raise TokenInvalid()
        return claims

    def rotate(self, refresh_token: str) -> domain.TokenPair:
        """
        Exchange a refresh token for a new pair.

        The old refresh token is revoked first. Of several concurrent calls
        with the same token, exactly one gets a new pair.

        Raises
        ------
        :class:`TokenExpired`
        :class:`TokenInvalid`
        :class:`TokenRevoked`
            The token was already used, or its session was logged out.

        """
        claims = self.verify_refresh(refresh_token)
        token_id, account_id = claims['jti'], str(claims['sub'])
        try:
            entry = self._registry.load(token_id)
        except UnknownSession as e:
            raise TokenRevoked() from e
        if entry.account_id != account_id:
            logger.warning('Session %s does not belong to %s',
                           token_id, account_id)
            raise TokenInvalid()
        if entry.revoked or not self._registry.revoke(token_id):
            logger.info('Refresh token %s for %s was already revoked',
                        token_id, account_id)
            raise TokenRevoked()
        logger.debug('Rotating session %s for %s', token_id, account_id)
        return self.issue_pair(account_id)

    def revoke(self, refresh_token: str) -> bool:
        """Revoke the single session of a refresh token."""
        claims = self.verify_refresh(refresh_token)
        return self._registry.revoke(claims['jti'])

    def revoke_all(self, account_id: str) -> int:
        """Revoke every session of an account."""
        return self._registry.revoke_all_for_account(account_id)

    @classmethod
    def get_service(cls, app: Optional[object] = None,
                    registry: Optional[SessionRegistry] = None) \
            -> 'TokenService':
        """Build a :class:`.TokenService` from application config."""
        config = get_application_config(app)
        signer = JWTSigner(config['JWT_SECRET'],
                           config.get('JWT_ALGORITHM', 'HS256'))
        if registry is None:
            registry = SessionRegistry.current_registry()
        return cls(signer, registry,
                   access_ttl=int(config.get('ACCESS_TOKEN_TTL', 900)),
                   refresh_ttl=int(config.get('REFRESH_TOKEN_TTL', 604800)))


def _claims(account_id: str, token_type: str, token_id: str,
            issued_at: datetime, expires_at: datetime) -> dict:
    return {
        'sub': account_id,
        'iat': int(issued_at.timestamp()),
        'exp': int(expires_at.timestamp()),
        'jti': token_id,
        'typ': token_type
    }
