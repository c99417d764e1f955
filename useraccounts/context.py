"""Access to application configuration and request globals."""

import os
from typing import Any, Mapping, Optional

from flask import current_app, g, has_app_context


def get_application_config(app: Optional[Any] = None) -> Mapping[str, Any]:
    """
    Get the configuration for an application.

    Parameters
    ----------
    app : :class:`flask.Flask` or None
        If not provided, the application in the current context is used. If
        there is no application context, falls back to ``os.environ``.

    Returns
    -------
    Mapping

    """
    if app is not None and hasattr(app, 'config'):
        return app.config    # type: ignore
    if has_app_context():
        return current_app.config
    return os.environ


def get_application_global() -> Optional[Any]:
    """Get the request/application global, if there is an app context."""
    if has_app_context():
        return g
    return None
