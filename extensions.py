"""Shared Flask extension instances.

Models and blueprints import from here instead of app.py to avoid circular imports.
"""

from flask import request
from flask_limiter import Limiter
from flask_sqlalchemy import SQLAlchemy


db = SQLAlchemy()


def get_client_ip() -> str:
    """Return the best-effort client IP.

    After ProxyFix, request.access_route[0] should be the real client IP.
    Falls back to request.remote_addr for local development.
    """
    try:
        if request.access_route:
            return request.access_route[0]
    except RuntimeError:
        pass
    return request.remote_addr or "0.0.0.0"


# Storage and default limits are set from app config in create_app().
limiter = Limiter(get_client_ip)
