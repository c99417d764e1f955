"""Application factory for the account service."""

from typing import Any, Mapping, Optional
import logging

from flask import Flask, Response, g, has_request_context, jsonify
from werkzeug.exceptions import HTTPException, InternalServerError, NotFound

from .exceptions import InternalError
from .routes import api
from .services import mail, util
from .services.sessions import SessionRegistry


class RequestIdFilter(logging.Filter):
    """Stamp log records with the id of the request being handled."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = '-'
        if has_request_context():
            record.request_id = g.get('request_id', '-')
        return True


def configure_logging(level: str) -> None:
    """Set the level of the service's loggers, and add request ids."""
    logger = logging.getLogger('useraccounts')
    logger.setLevel(level.upper())
    for handler in logger.handlers:
        if any(isinstance(f, RequestIdFilter) for f in handler.filters):
            return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        '%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s'
    ))
    handler.addFilter(RequestIdFilter())
    logger.addHandler(handler)


def jsonify_exception(error: HTTPException) -> Response:
    """Render an HTTP error as JSON."""
    response = jsonify(error=(error.name or 'error').lower().replace(' ', '_'),
                       message=error.description)
    response.status_code = error.code or 500
    return response


def jsonify_not_found(error: NotFound) -> Response:
    """Say which endpoints there are."""
    response = jsonify(error='not_found', message='No such endpoint.',
                       endpoints=api.ENDPOINTS)
    response.status_code = 404
    return response


def jsonify_internal_error(error: Any) -> Response:
    """Never show the details of an unhandled error."""
    logging.getLogger(__name__).error('Unhandled error: %s', error)
    response = jsonify(InternalError().to_dict())
    response.status_code = 500
    return response


def create_web_app(config: Optional[Mapping[str, Any]] = None) -> Flask:
    """Initialize and configure the account service application."""
    app = Flask('useraccounts')
    app.config.from_pyfile('config.py')
    if config is not None:
        app.config.update(config)

    configure_logging(app.config.get('LOGLEVEL', 'INFO'))

    util.init_app(app)
    SessionRegistry.init_app(app)
    mail.init_app(app)

    app.register_blueprint(api.blueprint,
                           url_prefix=app.config.get('URL_PREFIX') or None)
    app.errorhandler(NotFound)(jsonify_not_found)
    app.errorhandler(InternalServerError)(jsonify_internal_error)
    app.errorhandler(HTTPException)(jsonify_exception)

    if app.config['CREATE_DB']:
        with app.app_context():
            util.create_all()

    return app
