"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Credentials arrive only as an "Authorization: Bearer <access-token>" header.
A missing header or any other scheme is 401 "token manquant"; a token that
does not verify is 401 "token invalide"; a token for a deleted user is 401
"utilisateur non trouvé".

get_current_actor() resolves the header to an Actor or raises.
get_optional_actor() returns None when no header is sent at all, and still
raises when a header is present but bad -- used by POST /register, where an
authenticated caller becomes the new account's creator.

Errors are raised as core.errors types; api/main.py renders them.
"""

from __future__ import annotations

from fastapi import Request

from auth.service import AuthService
from core.errors import Unauthorized
from org.policy import Actor

_BEARER = "Bearer "


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization")
    if header is None:
        return None
    if not header.startswith(_BEARER) or not header[len(_BEARER) :].strip():
        raise Unauthorized("token manquant")
    return header[len(_BEARER) :].strip()


def get_current_actor(request: Request) -> Actor:
    """Require a valid bearer token.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(actor: Actor = Depends(get_current_actor)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise Unauthorized("token manquant")
    auth: AuthService = request.app.state.auth_service
    return auth.authenticate(token)


def get_optional_actor(request: Request) -> Actor | None:
    """Like get_current_actor(), but an absent header yields None."""
    token = _bearer_token(request)
    if token is None:
        return None
    auth: AuthService = request.app.state.auth_service
    return auth.authenticate(token)
