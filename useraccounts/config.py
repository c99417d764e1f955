"""Flask configuration."""
import secrets
import os

#################### General config for app ####################
URL_PREFIX = os.environ.get('URL_PREFIX', '/users')
"""Path prefix under which the API blueprint is mounted."""

MAX_CONTENT_LENGTH = int(os.environ.get('MAX_CONTENT_LENGTH', 64 * 1024))
"""Largest request body accepted, in bytes. Flask answers 413 beyond this."""

LOGLEVEL = os.environ.get('LOGLEVEL', 'INFO')

CREATE_DB = bool(int(os.environ.get('CREATE_DB', '0')))
"""Create the account tables when the application starts."""

SQLALCHEMY_DATABASE_URI = os.environ.get('SQLALCHEMY_DATABASE_URI',
                                         'sqlite:///useraccounts.db')
SQLALCHEMY_TRACK_MODIFICATIONS = False


#################### Tokens ####################
JWT_SECRET = os.environ.get('JWT_SECRET', secrets.token_urlsafe(16))
"""Secret used to sign access and refresh tokens."""

JWT_ALGORITHM = os.environ.get('JWT_ALGORITHM', 'HS256')

ACCESS_TOKEN_TTL = int(os.environ.get('ACCESS_TOKEN_TTL', '900'))
"""Lifetime of an access token, in seconds (15 minutes)."""

REFRESH_TOKEN_TTL = int(os.environ.get('REFRESH_TOKEN_TTL', '604800'))
"""Lifetime of a refresh token, in seconds (7 days)."""

ACCESS_TOKEN_COOKIE_NAME = os.environ.get('ACCESS_TOKEN_COOKIE_NAME',
                                          'accessToken')
REFRESH_TOKEN_COOKIE_NAME = os.environ.get('REFRESH_TOKEN_COOKIE_NAME',
                                           'refreshToken')
AUTH_COOKIE_DOMAIN = os.environ.get('AUTH_COOKIE_DOMAIN', None)
AUTH_COOKIE_SECURE = bool(int(os.environ.get('AUTH_COOKIE_SECURE', '1')))


#################### One-time codes ####################
OTP_TTL = int(os.environ.get('OTP_TTL', '600'))
"""Lifetime of a one-time code, in seconds."""

OTP_MAX_ATTEMPTS = int(os.environ.get('OTP_MAX_ATTEMPTS', '5'))
"""Failed attempts after which a code is locked out, right or wrong."""

RESET_GRANT_TTL = int(os.environ.get('RESET_GRANT_TTL', '600'))
"""How long a verified password-reset code authorizes a password change."""

PASSWORD_MIN_LENGTH = int(os.environ.get('PASSWORD_MIN_LENGTH', '8'))


#################### Redis ####################
REDIS_HOST = os.environ.get('REDIS_HOST', 'localhost')
REDIS_PORT = os.environ.get('REDIS_PORT', '6379')
REDIS_DATABASE = os.environ.get('REDIS_DATABASE', '0')
REDIS_TOKEN = os.environ.get('REDIS_TOKEN', None)
"""Password used to AUTH with redis."""
REDIS_CLUSTER = os.environ.get('REDIS_CLUSTER', '0')
REDIS_TIMEOUT = float(os.environ.get('REDIS_TIMEOUT', '2.0'))
"""Socket timeout for redis commands, in seconds."""

REDIS_FAKE = bool(int(os.environ.get('REDIS_FAKE', '0')))
"""Use the FakeRedis library instead of a redis service.

Useful for testing, dev, beta."""

REDIS_PREFIX = os.environ.get('REDIS_PREFIX', 'useraccounts')

LOCK_TIMEOUT = float(os.environ.get('LOCK_TIMEOUT', '10'))
"""Seconds after which a per-account lock is released regardless."""
LOCK_BLOCKING_TIMEOUT = float(os.environ.get('LOCK_BLOCKING_TIMEOUT', '3'))
"""Seconds to wait for a per-account lock before giving up."""


#################### Rate limits ####################
RATE_LIMIT_WINDOW = int(os.environ.get('RATE_LIMIT_WINDOW', '900'))
RATE_LIMIT_MAX = int(os.environ.get('RATE_LIMIT_MAX', '100'))
RATE_LIMIT_ENABLED = bool(int(os.environ.get('RATE_LIMIT_ENABLED', '1')))


#################### Mail ####################
MAIL_BACKEND = os.environ.get('MAIL_BACKEND', 'smtp')
"""``smtp`` to deliver mail, ``log`` to write messages to the log instead."""
MAIL_HOST = os.environ.get('MAIL_HOST', 'localhost')
MAIL_PORT = int(os.environ.get('MAIL_PORT', '25'))
MAIL_FROM = os.environ.get('MAIL_FROM', 'no-reply@localhost')
MAIL_TIMEOUT = float(os.environ.get('MAIL_TIMEOUT', '10'))
