"""Provides a unified API for sending account e-mail."""

from email.message import EmailMessage
import logging
import smtplib

from .. import domain
from ..context import get_application_config, get_application_global
from .exceptions import DeliveryFailed

logger = logging.getLogger(__name__)

SUBJECTS = {
    domain.Intent.REGISTER: 'Verify your e-mail address',
    domain.Intent.RESET_PASSWORD: 'Reset your password',
}

BODIES = {
    domain.Intent.REGISTER:
        'Your verification code is {code}.\n\n'
        'It expires in {minutes} minutes.',
    domain.Intent.RESET_PASSWORD:
        'Your password reset code is {code}.\n\n'
        'It expires in {minutes} minutes. If you did not ask to reset your '
        'password, you can ignore this message.',
}


class MailSession(object):
    """A configured route to an SMTP service."""

    def __init__(self, host: str = 'localhost', port: int = 25,
                 sender: str = 'no-reply@localhost', timeout: float = 10,
                 backend: str = 'smtp', code_ttl: int = 600) -> None:
        self._host = host
        self._port = port
        self._sender = sender
        self._timeout = timeout
        self._backend = backend
        self._code_ttl = code_ttl

    def send_message(self, message: EmailMessage) -> None:
        """Send a message, or write it to the log with the ``log`` backend."""
        if message['From'] is None:
            message['From'] = self._sender
        if self._backend == 'log':
            logger.info('Mail to %s: %s', message['To'], message['Subject'])
            logger.debug('%s', message.get_content())
            return
        try:
            with smtplib.SMTP(host=self._host, port=self._port,
                              timeout=self._timeout) as conn:
                conn.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryFailed(f'Could not send to {message["To"]}') from e

    def send_otp(self, recipient: str, code: str, intent: str) -> bool:
        """
        Mail a one-time code.

        Returns
        -------
        bool
            Whether the message was handed off. A failure is logged; the code
            stays valid, and the user can ask for it to be sent again.

        """
        message = EmailMessage()
        message['To'] = recipient
        message['Subject'] = SUBJECTS[intent]
        message.set_content(BODIES[intent].format(
            code=code, minutes=max(self._code_ttl // 60, 1)
        ))
        try:
            self.send_message(message)
        except DeliveryFailed as e:
            logger.error('Could not send %s code to %s: %s',
                         intent, recipient, e)
            return False
        logger.debug('Sent %s code to %s', intent, recipient)
        return True


def init_app(app: object = None) -> None:
    """Set default configuration parameters for an application instance."""
    config = get_application_config(app)
    config.setdefault('MAIL_BACKEND', 'smtp')
    config.setdefault('MAIL_HOST', 'localhost')
    config.setdefault('MAIL_PORT', 25)
    config.setdefault('MAIL_FROM', 'no-reply@localhost')
    config.setdefault('MAIL_TIMEOUT', 10)


def get_mail_session(app: object = None) -> MailSession:
    """Get a new mail session."""
    config = get_application_config(app)
    return MailSession(
        host=config.get('MAIL_HOST', 'localhost'),
        port=int(config.get('MAIL_PORT', 25)),
        sender=config.get('MAIL_FROM', 'no-reply@localhost'),
        timeout=float(config.get('MAIL_TIMEOUT', 10)),
        backend=config.get('MAIL_BACKEND', 'smtp'),
        code_ttl=int(config.get('OTP_TTL', 600))
    )


def current_session() -> MailSession:
    """Get/create :class:`.MailSession` for this context."""
    g = get_application_global()
    if not g:
        return get_mail_session()
    if 'mail' not in g:
        g.mail = get_mail_session()
    return g.mail      # type: ignore


def send_otp(recipient: str, code: str, intent: str) -> bool:
    """Mail a one-time code using the session for this context."""
    return current_session().send_otp(recipient, code, intent)
