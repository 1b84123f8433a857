"""Socket connection authentication.

A connection is admitted only with a valid SimpleJWT access token. The token
is looked for, in order, in the Socket.IO ``auth`` payload, the
``Authorization: Bearer`` header and the access-token cookie.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from typing import Any

from django.conf import settings
from django.http.cookie import parse_cookie
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken
from socketio.exceptions import ConnectionRefusedError  # noqa: A004

from .exceptions import INVALID_CREDENTIAL
from .exceptions import NO_CREDENTIAL
from .exceptions import UNKNOWN_USER

if TYPE_CHECKING:
    from .gateway import PersistenceGateway
    from .models import UserIdentity

logger = logging.getLogger(__name__)

# Cookie name the single-page client sets after login.
LEGACY_ACCESS_COOKIE = "accessToken"


class InvalidCredential(Exception):
    pass


def _header(environ: dict[str, Any], name: str) -> str | None:
    """Read a request header from a WSGI-style environ or an ASGI scope."""

    wsgi_key = "HTTP_" + name.upper().replace("-", "_")
    value = environ.get(wsgi_key)
    if isinstance(value, str) and value:
        return value

    scope: Any = environ.get("asgi.scope", environ)
    if not isinstance(scope, dict):
        return None
    target = name.encode().lower()
    for key, raw in scope.get("headers", []) or []:
        if isinstance(key, (bytes, bytearray)) and key.lower() == target:
            return bytes(raw).decode("latin-1")
    return None


def _bearer(value: str | None) -> str | None:
    if not value:
        return None
    scheme, _, token = value.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def extract_credential(environ: dict[str, Any], auth: Any | None) -> str | None:
    """Return the raw access token for a connection attempt, if any."""

    if isinstance(auth, dict):
        token = auth.get("token")
        if isinstance(token, str) and token.strip():
            return token.strip()

    token = _bearer(_header(environ, "authorization"))
    if token:
        return token

    cookie_header = _header(environ, "cookie")
    if cookie_header:
        cookies = parse_cookie(cookie_header)
        cookie_name = getattr(settings, "JWT_AUTH_COOKIE", "access_token")
        for name in (cookie_name, LEGACY_ACCESS_COOKIE):
            value = cookies.get(name)
            if value:
                return value

    return None


def verify_access_token(token: str) -> str:
    """Validate signature and expiry and return the user id claim.

    Raises:
        InvalidCredential: the token is malformed, expired, or has no user id.
    """

    try:
        validated = AccessToken(token)
    except TokenError as exc:
        raise InvalidCredential(str(exc)) from exc

    user_id = validated.get(api_settings.USER_ID_CLAIM)
    if user_id in (None, ""):
        msg = "Token contained no recognizable user identification"
        raise InvalidCredential(msg)
    return str(user_id)


class ConnectionGate:
    """Resolve a connection attempt to a verified identity or refuse it."""

    def __init__(self, gateway: PersistenceGateway) -> None:
        self.gateway = gateway

    async def admit(self, environ: dict[str, Any], auth: Any | None) -> UserIdentity:
        token = extract_credential(environ, auth)
        if not token:
            raise ConnectionRefusedError(NO_CREDENTIAL)

        try:
            user_id = verify_access_token(token)
        except InvalidCredential as exc:
            logger.info("Rejected socket connection: %s", exc)
            raise ConnectionRefusedError(INVALID_CREDENTIAL) from exc

        try:
            user = await self.gateway.find_user(user_id)
        except Exception as exc:
            logger.exception("Socket.IO connect error")
            msg = "server error"
            raise ConnectionRefusedError(msg) from exc

        if user is None:
            logger.info("Rejected socket connection for unknown user %s", user_id)
            raise ConnectionRefusedError(UNKNOWN_USER)
        return user
