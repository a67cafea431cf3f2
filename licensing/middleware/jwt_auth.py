"""
JWT Auth Middleware: Parses JWT from Authorization header, sets g.actor.

Resolution order:
  1. Authorization: Bearer <token>   →  g.actor = Actor(sub, role, name)
  2. X-Dev-Token (development only, when DEV_AUTH_TOKEN is configured)
                                     →  g.actor = Actor("dev-user", X-Dev-Role or DEV_AUTH_ROLE)

The hook never rejects a request by itself; endpoints that need an actor
are wrapped with ``require_actor``.
"""

import functools
import logging

import jwt as pyjwt
from flask import current_app, g, request

from licensing.core.actor import Actor
from licensing.services.jwt_service import decode_access_token
from licensing.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.actor = None
        g.jwt_claims = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
            try:
                claims = decode_access_token(token)
                g.jwt_claims = claims
                g.actor = Actor.from_claims(claims)
            except pyjwt.ExpiredSignatureError:
                logger.info("Expired token on %s", path)
            except pyjwt.InvalidTokenError as exc:
                logger.warning("Invalid token on %s: %s", path, exc)
            return

        dev_token = current_app.config.get("DEV_AUTH_TOKEN")
        if dev_token and current_app.config.get("DEBUG"):
            if request.headers.get("X-Dev-Token") == dev_token:
                role = request.headers.get("X-Dev-Role") or current_app.config.get("DEV_AUTH_ROLE")
                g.actor = Actor(id="dev-user", role=role, name="Developer")


def current_actor():
    """Actor attached to the current request, or None."""
    return getattr(g, "actor", None)


def require_actor(f):
    """Decorator: reject unauthenticated requests with 401."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_actor() is None:
            return api_error(E.UNAUTHENTICATED, "Authentication required")
        return f(*args, **kwargs)
    return decorated
