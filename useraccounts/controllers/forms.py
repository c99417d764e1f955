"""Request payloads, validated before they reach a controller."""

from typing import Any, Type, TypeVar
import re

from werkzeug.datastructures import MultiDict
from wtforms import Form, PasswordField, StringField
from wtforms.validators import AnyOf, DataRequired, Email, Length, \
    Optional, Regexp
from wtforms.validators import ValidationError as FieldError

from ..context import get_application_config
from ..exceptions import ValidationError

F = TypeVar('F', bound=Form)

PHONE = r'^\+?[0-9]{7,15}$'

EVENTS = ['register', 'Register', 'reset_password', 'Reset Password']
"""Values of ``event`` accepted when a code is resent."""


def strong_password(form: Form, field: Any) -> None:
    """At least ``PASSWORD_MIN_LENGTH`` characters, a letter and a digit."""
    min_length = int(get_application_config().get('PASSWORD_MIN_LENGTH', 8))
    password = field.data or ''
    if len(password) < min_length:
        raise FieldError(f'Must be at least {min_length} characters long.')
    if not re.search(r'[A-Za-z]', password) or not re.search(r'\d', password):
        raise FieldError('Must contain at least one letter and one digit.')


class RegistrationForm(Form):
    """New account."""

    email = StringField('E-mail', validators=[DataRequired(), Email(),
                                              Length(max=255)])
    phone = StringField('Phone', validators=[DataRequired(), Regexp(PHONE)])
    password = PasswordField('Password', validators=[DataRequired(),
                                                     strong_password])
    first_name = StringField('First name', validators=[DataRequired(),
                                                       Length(max=50)])
    last_name = StringField('Last name', validators=[DataRequired(),
                                                     Length(max=50)])
    companyName = StringField('Company', validators=[Optional(),
                                                     Length(max=255)])


class EmailForm(Form):
    """Just an account."""

    email = StringField('E-mail', validators=[DataRequired(), Email(),
                                              Length(max=255)])


class OTPForm(EmailForm):
    """Submission of a one-time code."""

    otp = StringField('Code', validators=[DataRequired(),
                                          Regexp(r'^\s*\d{6}\s*$')])


class ResendForm(EmailForm):
    """Request to send a fresh code."""

    event = StringField('Event', validators=[DataRequired(), AnyOf(EVENTS)])


class LoginForm(EmailForm):
    """Log in form."""

    password = PasswordField('Password', validators=[DataRequired()])


class RefreshForm(Form):
    """The refresh token may also arrive as a cookie."""

    refreshToken = StringField('Refresh token', validators=[Optional()])


class ResetPasswordForm(EmailForm):
    """New password, after a reset code was verified."""

    newPassword = PasswordField('New password',
                                validators=[DataRequired(), strong_password])


def parse(form_class: Type[F], payload: Any) -> F:
    """
    Validate a JSON payload with a form.

    Raises
    ------
    :class:`ValidationError`
        If the payload is not an object, has fields the form does not know,
        or fails validation. Field errors are included.

    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object.')
    errors = {}
    data = MultiDict()
    for key, value in payload.items():
        if isinstance(value, (dict, list)):
            errors[key] = ['Must be a string.']
        elif value is not None:
            data[key] = value if isinstance(value, str) else str(value)
    form = form_class(data)
    for key in payload:
        if key not in form._fields:
            errors[key] = ['Unknown field.']
    if not form.validate() or errors:
        errors.update(form.errors)
        raise ValidationError(errors=errors)
    return form
