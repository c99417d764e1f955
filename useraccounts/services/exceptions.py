"""Provides exceptions occurring with external services."""


class ServiceError(RuntimeError):
    """An external service misbehaved."""


class Unavailable(ServiceError):
    """A store is temporarily unavailable."""


class NoSuchAccount(ServiceError):
    """Account does not exist."""


class SessionCreationFailed(ServiceError):
    """Failed to create a session in the session registry."""


class SessionDeletionFailed(ServiceError):
    """Failed to revoke a session in the session registry."""


class UnknownSession(ServiceError):
    """Failed to locate a session in the session registry."""


class DeliveryFailed(ServiceError):
    """Could not hand a message to the mail server."""
