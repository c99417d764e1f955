"""Provides the JSON API of the account service."""

from typing import Any, Callable, Optional
from datetime import timedelta
from functools import wraps
from http import HTTPStatus
import logging
import uuid

from flask import Blueprint, Response, current_app, g, jsonify, \
    make_response, request
from werkzeug.exceptions import BadRequest

from ..controllers import authentication, passwords, registration
from ..controllers.util import ResponseData
from ..exceptions import RateLimited
from ..services import util
from ..services.ratelimit import RateLimiter
from ..services.sessions import SessionRegistry

logger = logging.getLogger(__name__)
blueprint = Blueprint('api', __name__, url_prefix='')

ENDPOINTS = [
    'POST /register',
    'POST /register_auth',
    'POST /resend_otp',
    'POST /login',
    'POST /refresh-token',
    'GET /profile?email=',
    'POST /reset_pass_user_auth',
    'POST /reset_pass_otp_auth',
    'POST /reset_password',
    'POST /logout',
    'GET /health',
]


def rate_limited(scope: str) -> Callable:
    """Count requests by client IP and by e-mail address, if given."""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if current_app.config.get('RATE_LIMIT_ENABLED', True):
                limiter = RateLimiter.get_limiter()
                try:
                    limiter.hit(scope, f'ip:{request.remote_addr}')
                    email = _payload().get('email')
                    if isinstance(email, str) and email.strip():
                        limiter.hit(scope, f'email:{email.strip().lower()}')
                except RateLimited as e:
                    return _respond((e.to_dict(), e.status, {}))
            return func(*args, **kwargs)
        return wrapper
    return decorator


def set_cookies(response: Response, data: dict) -> None:
    """
    Update a :class:`.Response` with cookies in controller data.

    Controllers seeking to update cookies must include a 'cookies' key
    in their response data.
    """
    cookies = data.pop('cookies', None)
    if cookies is None:
        return None
    domain = current_app.config.get('AUTH_COOKIE_DOMAIN')
    params = dict(httponly=True, domain=domain)
    if current_app.config.get('AUTH_COOKIE_SECURE', True):
        params.update({'secure': True, 'samesite': 'lax'})
    for cookie_key, (cookie_value, expires) in cookies.items():
        cookie_name = current_app.config[f'{cookie_key.upper()}_NAME']
        logger.debug('Set cookie %s, max_age %s', cookie_name, expires)
        response.set_cookie(cookie_name, cookie_value,
                            max_age=timedelta(seconds=expires), **params)


def _respond(result: ResponseData) -> Response:
    data, code, headers = result
    response: Response = make_response(jsonify(data), code, headers)
    return response


def _respond_with_cookies(result: ResponseData) -> Response:
    data, code, headers = result
    cookies = {'cookies': data.pop('cookies', None)}
    response = _respond((data, code, headers))
    set_cookies(response, cookies)
    return response


def _payload() -> Any:
    """The JSON body of the request; malformed or missing JSON is ``{}``."""
    if 'payload' not in g:
        g.payload = request.get_json(silent=True)
        if g.payload is None and request.get_data():
            raise BadRequest('Request body must be JSON.')
    return g.payload if g.payload is not None else {}


def _bearer_token() -> Optional[str]:
    """Access token from the Authorization header, or else the cookie."""
    auth_header = request.headers.get('Authorization', '')
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == 'bearer':
        return parts[1]
    return request.cookies.get(current_app.config['ACCESS_TOKEN_COOKIE_NAME'])


def _refresh_cookie() -> Optional[str]:
    return request.cookies.get(current_app.config['REFRESH_TOKEN_COOKIE_NAME'])


@blueprint.before_app_request
def assign_request_id() -> None:
    """Use the caller's ``X-Request-ID``, or make one up."""
    g.request_id = request.headers.get('X-Request-ID') or uuid.uuid4().hex


@blueprint.after_app_request
def apply_response_headers(response: Response) -> Response:
    """Apply response headers to all responses."""
    response.headers['X-Request-ID'] = g.get('request_id', '')
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Cache-Control'] = 'no-store'
    return response


@blueprint.route('/register', methods=['POST'])
@rate_limited('register')
def register() -> Response:
    """Create a new account."""
    return _respond(registration.register(_payload(), request.remote_addr))


@blueprint.route('/register_auth', methods=['POST'])
def register_auth() -> Response:
    """Verify a new account with its code."""
    return _respond(registration.register_auth(_payload()))


@blueprint.route('/resend_otp', methods=['POST'])
@rate_limited('resend_otp')
def resend_otp() -> Response:
    """Send a fresh one-time code."""
    return _respond(registration.resend_otp(_payload(), request.remote_addr))


@blueprint.route('/login', methods=['POST'])
@rate_limited('login')
def login() -> Response:
    """Log in, and get a token pair."""
    result = authentication.login(_payload(), request.remote_addr)
    return _respond_with_cookies(result)


@blueprint.route('/refresh-token', methods=['POST'])
def refresh_token() -> Response:
    """Exchange a refresh token for a new pair."""
    result = authentication.refresh_token(_payload(), _refresh_cookie())
    return _respond_with_cookies(result)


@blueprint.route('/profile', methods=['GET'])
def profile() -> Response:
    """Get the profile of the logged-in account."""
    return _respond(registration.view_profile(request.args.get('email'),
                                              _bearer_token()))


@blueprint.route('/reset_pass_user_auth', methods=['POST'])
@rate_limited('reset_pass_user_auth')
def forgot_password() -> Response:
    """Ask for a password reset code."""
    return _respond(passwords.forgot_password(_payload(),
                                              request.remote_addr))


@blueprint.route('/reset_pass_otp_auth', methods=['POST'])
def reset_otp_auth() -> Response:
    """Verify a password reset code."""
    return _respond(passwords.reset_otp_auth(_payload()))


@blueprint.route('/reset_password', methods=['POST'])
def reset_password() -> Response:
    """Set a new password."""
    return _respond(passwords.reset_password(_payload()))


@blueprint.route('/logout', methods=['POST'])
def logout() -> Response:
    """Log out of every session."""
    result = authentication.logout(_payload(), _bearer_token(),
                                   _refresh_cookie())
    return _respond_with_cookies(result)


@blueprint.route('/health', methods=['GET'])
def health() -> Response:
    """Report whether the database and redis can be reached."""
    database = util.is_available()
    redis = SessionRegistry.current_registry().is_available()
    code = HTTPStatus.OK if database and redis \
        else HTTPStatus.SERVICE_UNAVAILABLE
    return _respond(({'database': database, 'redis': redis}, code, {}))
