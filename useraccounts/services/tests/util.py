"""Testing helpers."""

from typing import Any, Generator, Mapping, Optional
from contextlib import contextmanager

import fakeredis
from flask import Flask

from ...factory import create_web_app
from .. import util
from ..sessions import SessionRegistry

TEST_CONFIG = {
    'SQLALCHEMY_DATABASE_URI': 'sqlite://',
    'CREATE_DB': False,
    'JWT_SECRET': 'foosecret',
    'REDIS_FAKE': True,
    'MAIL_BACKEND': 'log',
    'RATE_LIMIT_ENABLED': False,
    'AUTH_COOKIE_SECURE': False,
    'LOGLEVEL': 'DEBUG',
}


def make_app(config: Optional[Mapping[str, Any]] = None) -> Flask:
    """Make an application with an in-memory database and fake redis."""
    return create_web_app(dict(TEST_CONFIG, **(config or {})))


@contextmanager
def temporary_db(config: Optional[Mapping[str, Any]] = None) \
        -> Generator[Flask, None, None]:
    """Provide an in-memory sqlite database for testing purposes."""
    app = make_app(config)
    with app.app_context():
        util.create_all()
        try:
            yield app
        finally:
            util.current_session().remove()
            util.drop_all()


def fake_registry(**kwargs: Any) -> SessionRegistry:
    """A session registry on its own fake redis server."""
    r = fakeredis.FakeStrictRedis(server=fakeredis.FakeServer(),
                                  decode_responses=True)
    return SessionRegistry(r, **kwargs)
